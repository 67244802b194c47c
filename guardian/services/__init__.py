"""
Cloud Guardian Agent Services

- jobs - Signed job fetching, verification and execution
- reporting - Monitoring and inventory reports
- system - Host primitives (uptime, shell, reboot, packages, metrics)
- agent - Wires everything into the minute scheduler
"""
