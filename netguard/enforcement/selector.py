"""
Engine Selector - picks the firewall engine for the running OS.

The platform is read when select_engine() is called, not at import,
so a process in a container or under test sees the platform it
actually runs on (or the one it is told to assume).
"""

import logging
from typing import Optional

from .. import features
from ..config import GuardConfig
from .command_runner import CommandRunner
from .engine import FirewallEngine, NullFirewallEngine
from .linux_engine import LinuxIptablesEngine
from .windows_engine import WindowsFirewallEngine

logger = logging.getLogger(__name__)


class UnsupportedPlatformError(Exception):
    """No firewall engine exists for this platform."""

    def __init__(self, platform_name: str):
        self.platform_name = platform_name
        super().__init__(f"Firewall enforcement is not supported on {platform_name}")


def select_engine(
    platform_name: Optional[str] = None,
    config: Optional[GuardConfig] = None,
    **engine_kwargs,
) -> FirewallEngine:
    """
    Return the engine matching the platform.

    Args:
        platform_name: Override for sys.platform
        config: Naming, timeout and self-block settings (defaults when omitted)
        **engine_kwargs: Passed to the engine constructor (runner, security_log, ...)

    Raises:
        UnsupportedPlatformError: Neither Windows nor Linux
    """
    platform_name = platform_name or features.current_platform()
    config = config or GuardConfig()

    engine_kwargs.setdefault('runner', CommandRunner(timeout=config.command_timeout))
    engine_kwargs.setdefault('self_block_protection', config.self_block_protection)

    if features.is_windows(platform_name):
        logger.info("Using Windows Firewall engine")
        return WindowsFirewallEngine(
            platform_name=platform_name,
            rule_prefix=config.windows_rule_prefix,
            **engine_kwargs,
        )

    if features.is_linux(platform_name):
        logger.info("Using Linux iptables engine")
        return LinuxIptablesEngine(
            platform_name=platform_name,
            chain_name=config.chain_name,
            rule_prefix=config.linux_rule_prefix,
            **engine_kwargs,
        )

    logger.warning(f"Unsupported platform: {platform_name}")
    raise UnsupportedPlatformError(platform_name)


def get_engine_or_null(
    platform_name: Optional[str] = None,
    config: Optional[GuardConfig] = None,
    **engine_kwargs,
) -> FirewallEngine:
    """select_engine(), with the Null engine substituted on unsupported platforms."""
    try:
        return select_engine(platform_name, config, **engine_kwargs)
    except UnsupportedPlatformError as e:
        logger.warning(f"{e}; using Null engine")
        return NullFirewallEngine(platform_name=e.platform_name)
