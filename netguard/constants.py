"""
Centralized constants for NetGuard.

Timeouts, rule naming conventions and file permissions used across
the enforcement engines, the security event log and the CLI.
"""


class Timeouts:
    """Timeout values in seconds."""
    # External firewall commands (iptables, ebtables, netsh)
    COMMAND_DEFAULT = 10.0
    COMMAND_QUICK = 5.0

    # Delay before restoring rules, lets the device store finish initializing
    RESTORE_DELAY = 5.0

    # Thread join on shutdown
    THREAD_JOIN = 5.0


class Naming:
    """Rule and chain naming conventions."""
    # Custom iptables chain linked into INPUT/FORWARD/OUTPUT
    LINUX_CHAIN = "WEBGUARD_BLOCK"
    LINUX_RULE_PREFIX = "BLOCK_"

    # netsh advfirewall rule name prefix, suffixed with _IN / _OUT
    WINDOWS_RULE_PREFIX = "WebGuard_Block_"
    WINDOWS_INBOUND_SUFFIX = "_IN"
    WINDOWS_OUTBOUND_SUFFIX = "_OUT"

    # iptables parent chains that jump into the custom chain
    LINUX_PARENT_CHAINS = ("INPUT", "FORWARD", "OUTPUT")

    # Upper bound on identical copies of one rule removed by repeated -D
    LINUX_MAX_RULE_COPIES = 16


class Permissions:
    """File permission modes."""
    LOG_FILE = 0o600
    LOG_DIR = 0o700
    DATA_FILE = 0o600
    DATA_DIR = 0o700


class Paths:
    """Default filesystem locations."""
    CONFIG_FILE = "/etc/netguard/netguard.yaml"
    DEVICE_STORE = "./data/devices.json"
    SECURITY_LOG = "./logs/security_chain.log"


class LogRotation:
    """Rotating file handler settings."""
    MAX_BYTES = 5 * 1024 * 1024
    BACKUP_COUNT = 3
