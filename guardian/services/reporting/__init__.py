"""
Host Reporting

Monitoring (every 5 minutes) and inventory (daily) reports.
"""

from .reporter import HostReporter

__all__ = ["HostReporter"]
