"""
Host Primitives

Responsibilities:
- Read the monotonic uptime counter
- Run shell commands
- Reboot the host
- Drive the package manager (apt / dnf)
- Collect telemetry
"""
