"""
Cloud Guardian Agent

Host agent that reports monitoring and inventory data to the Cloud
Guardian API and executes signed jobs (package updates, reboots, shell
commands) dispatched by it.
"""

__version__ = "1.0.0"
