"""
Agent Service

Wires configuration, the API client, host primitives, the job
orchestrator and the reporter into the minute scheduler:

- every 5 minutes: ping, basic monitoring, running jobs, new jobs
- every hour: (nothing yet)
- every day: system info, updates, installed packages
"""

import asyncio
import signal
import socket

import httpx

from guardian.common.api import ApiClient
from guardian.common.config import AgentConfig
from guardian.common.logging_setup import get_service_logger
from guardian.common.scheduler import MinuteScheduler
from guardian.services.jobs.client import JobClient
from guardian.services.jobs.orchestrator import JobOrchestrator
from guardian.services.reporting.reporter import HostReporter
from guardian.services.system.metrics_collector import MetricsCollector
from guardian.services.system.uptime import ProcUptimeSource, UptimeSource

logger = get_service_logger("agent")

FIVE_MINUTES = 5
HOURLY = 60
DAILY = 1440


class GuardianAgent:
    """The long-running agent process"""

    def __init__(
        self,
        config: AgentConfig,
        hostname: str | None = None,
        uptime_source: UptimeSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.hostname = hostname or socket.gethostname()

        self.uptime_source = uptime_source or ProcUptimeSource()
        self.api = ApiClient(config, transport=transport)

        self.reporter = HostReporter(
            config=config,
            api=self.api,
            hostname=self.hostname,
            metrics_collector=MetricsCollector(self.uptime_source),
        )

        self.job_client = JobClient(self.api, self.hostname)
        self.orchestrator = JobOrchestrator(
            config=config,
            client=self.job_client,
            uptime_source=self.uptime_source,
            refresh_inventory=self.reporter.refresh_updates,
        )

        self.scheduler = MinuteScheduler()
        self.scheduler.add("five-minute", FIVE_MINUTES, [
            self.reporter.ping,
            self.reporter.report_monitoring,
            self.orchestrator.process_running_jobs,
            self.orchestrator.process_new_jobs,
        ])
        self.scheduler.add("hourly", HOURLY, [])
        self.scheduler.add("daily", DAILY, [self.reporter.report_inventory])

    async def run(self, one_shot: bool = False) -> None:
        """Run the scheduler until stopped (or once in one-shot mode)"""
        logger.info(
            f"Starting agent for {self.hostname}",
            extra={
                "api_url": self.config.api_url,
                "trusted_keys": len(self.config.host_security_keys),
                "one_shot": one_shot,
            },
        )
        if not self.config.host_security_keys:
            logger.warning("No host security keys configured, every job will be rejected")

        self._setup_signal_handlers()
        await self.scheduler.run(one_shot=one_shot)
        logger.info("Agent stopped", extra={"stats": self.scheduler.get_stats()})

    async def register(self) -> None:
        await self.reporter.register()

    def _setup_signal_handlers(self) -> None:
        """Stop after the current cycle on SIGTERM / SIGINT"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not available outside the main thread
                pass

    def _handle_shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self.scheduler.stop()
