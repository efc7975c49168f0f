"""
Enforcement Module - OS-level device blocking

Components:
- CommandRunner: bounded execution of iptables/ebtables/netsh
- FirewallEngine: shared contract (validation, rule cache, locking, audit)
- LinuxIptablesEngine / WindowsFirewallEngine / NullFirewallEngine
- select_engine / get_engine_or_null: platform strategy selection
- RuleRestorationService: replays persisted blocks at startup
"""

from .models import (
    FirewallErrorCode,
    FirewallResult,
    FirewallRule,
    RuleDirection,
    RuleAction,
    DeviceStatus,
    DeviceRecord,
    normalize_mac,
    is_valid_mac,
)

from .command_runner import (
    CommandRunner,
    CommandResult,
)

from .engine import (
    FirewallEngine,
    NullFirewallEngine,
)

from .linux_engine import LinuxIptablesEngine
from .windows_engine import WindowsFirewallEngine

from .selector import (
    select_engine,
    get_engine_or_null,
    UnsupportedPlatformError,
)

from .restoration import (
    RuleRestorationService,
    RestorationState,
    RestorationReport,
)

__all__ = [
    'FirewallErrorCode',
    'FirewallResult',
    'FirewallRule',
    'RuleDirection',
    'RuleAction',
    'DeviceStatus',
    'DeviceRecord',
    'normalize_mac',
    'is_valid_mac',
    'CommandRunner',
    'CommandResult',
    'FirewallEngine',
    'NullFirewallEngine',
    'LinuxIptablesEngine',
    'WindowsFirewallEngine',
    'select_engine',
    'get_engine_or_null',
    'UnsupportedPlatformError',
    'RuleRestorationService',
    'RestorationState',
    'RestorationReport',
]
