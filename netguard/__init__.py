"""
NetGuard Daemon - Device Blocking Enforcement

Translates "this device must not reach the network" decisions into
OS packet-filter rules (iptables/ebtables on Linux, netsh advfirewall
on Windows), tracks what was issued, and replays persisted block
decisions on startup.
"""

__version__ = "1.0.0"
