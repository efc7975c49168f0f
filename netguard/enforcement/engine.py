"""
Firewall Engine - shared enforcement contract.

A FirewallEngine turns block/unblock intents for a device (MAC plus
optional IP) into OS packet-filter commands and keeps a private cache
of the rules it issued. Concrete engines only supply the OS command
sequences; validation, duplicate detection, locking, caching and audit
reporting live here so every platform behaves the same way.

Locking:
    _lock serializes all mutating operations of one engine instance,
    including the OS commands they run. _cache_lock only guards the
    rule dict itself, so is_device_blocked() and get_active_rules()
    never wait behind a running iptables/netsh call.

Usage:
    from netguard.enforcement import get_engine_or_null

    engine = get_engine_or_null(security_log=sink)
    result = engine.block_device("aa-bb-cc-dd-ee-ff", "192.168.1.50")
    if not result.success:
        print(result.error_code, result.error_details)
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .. import features
from ..event_logger import LogSeverity, NullSecurityLog, SecurityLogSink
from ..utils.error_handling import ErrorCategory, handle_error
from .command_runner import CommandRunner
from .models import (
    DeviceRecord,
    FirewallErrorCode,
    FirewallResult,
    FirewallRule,
    RuleAction,
    RuleDirection,
    is_valid_mac,
    normalize_ip,
    normalize_mac,
    rule_name_for,
)

logger = logging.getLogger(__name__)


class FirewallEngine(ABC):
    """
    Base class for platform firewall engines.

    Subclasses implement is_supported, engine_name, check_permissions and
    the _apply_* hooks. The hooks run with _lock held.
    """

    rule_prefix = "BLOCK_"

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        security_log: Optional[SecurityLogSink] = None,
        protected_macs: Optional[Iterable[str]] = None,
        self_block_protection: bool = True,
        platform_name: Optional[str] = None,
    ):
        """
        Args:
            runner: Command runner (a default CommandRunner when omitted)
            security_log: Audit sink for rule changes (NullSecurityLog when omitted)
            protected_macs: MACs that must never be blocked; when omitted the
                host's own interface addresses are discovered on first use
            self_block_protection: Refuse to block protected MACs
            platform_name: Override for sys.platform
        """
        self._runner = runner or CommandRunner()
        self._security_log = security_log or NullSecurityLog()
        self._self_block_protection = self_block_protection
        self._platform = platform_name

        self._protected_macs: Optional[Set[str]] = None
        if protected_macs is not None:
            self._protected_macs = {normalize_mac(m) for m in protected_macs}

        self._active_rules: Dict[str, FirewallRule] = {}
        self._lock = threading.Lock()
        self._cache_lock = threading.Lock()

    # -- Identity -----------------------------------------------------------

    @property
    def platform_name(self) -> str:
        return self._platform or features.current_platform()

    @property
    @abstractmethod
    def is_supported(self) -> bool:
        """True only when this engine matches the running OS."""
        ...

    @property
    @abstractmethod
    def engine_name(self) -> str:
        ...

    # -- Platform hooks -----------------------------------------------------

    @abstractmethod
    def _apply_block(self, mac: str, ip: Optional[str]) -> FirewallResult:
        """Issue the OS block sequence. Called with _lock held."""
        ...

    @abstractmethod
    def _apply_unblock(self, mac: str, ip: Optional[str]) -> None:
        """Issue the OS removal sequence, ignoring failures. Called with _lock held."""
        ...

    def _remove_address_rules(self, ip: str) -> None:
        """
        Remove rules keyed only by an IP address. Called with _lock held.

        Engines whose rules are named per MAC have nothing to do here.
        """

    @abstractmethod
    def _apply_clear_all(self, known_macs: List[str]) -> None:
        """Remove every rule this engine owns from the OS. Called with _lock held."""
        ...

    @abstractmethod
    def check_permissions(self) -> bool:
        """Run a cheap read-only firewall query and report whether it worked."""
        ...

    # -- Mutating operations ------------------------------------------------

    def block_device(self, mac_address: str, ip_address: Optional[str] = None) -> FirewallResult:
        """
        Block a device by MAC (and IP when given).

        Returns ALREADY_BLOCKED without touching the OS when the device is
        cached. On success the rule is cached and reported to the security log.
        """
        if not self.is_supported:
            return FirewallResult.fail(
                f"{self.engine_name} is not available on this platform",
                FirewallErrorCode.UNSUPPORTED_PLATFORM,
            )

        mac, ip, error = self._validate(mac_address, ip_address, check_self=True)
        if error is not None:
            return error

        with self._lock:
            if self.is_device_blocked(mac):
                return FirewallResult.fail(
                    f"Device {mac} is already blocked",
                    FirewallErrorCode.ALREADY_BLOCKED,
                )

            result = self._apply_block(mac, ip)
            if not result.success:
                logger.warning(f"Block failed for {mac}: {result.message} - {result.error_details}")
                return result

            rule = FirewallRule(
                rule_name=rule_name_for(mac, self.rule_prefix),
                mac_address=mac,
                ip_address=ip,
                direction=RuleDirection.BOTH,
                action=RuleAction.BLOCK,
            )
            with self._cache_lock:
                self._active_rules[mac] = rule

        logger.info(f"Device blocked via {self.engine_name}: MAC={mac}, IP={ip or 'N/A'}")
        self._report("log_firewall_rule_added", rule.rule_name, mac, ip)
        return result

    def unblock_device(self, mac_address: str, ip_address: Optional[str] = None) -> FirewallResult:
        """
        Remove a device's block rules.

        The removal commands are issued even when the device is not cached,
        so rules left by an earlier run or added by hand are cleaned up too.
        A missing rule is not an error.
        """
        if not self.is_supported:
            return FirewallResult.fail(
                f"{self.engine_name} is not available on this platform",
                FirewallErrorCode.UNSUPPORTED_PLATFORM,
            )

        mac, ip, error = self._validate(mac_address, ip_address, check_self=False)
        if error is not None:
            return error

        with self._lock:
            with self._cache_lock:
                cached = self._active_rules.get(mac)
            if ip is None and cached is not None:
                ip = cached.ip_address

            self._apply_unblock(mac, ip)

            # The device may have changed address since it was blocked
            if cached is not None and cached.ip_address and cached.ip_address != ip:
                logger.info(f"Removing rules for previous address {cached.ip_address} of {mac}")
                self._remove_address_rules(cached.ip_address)

            with self._cache_lock:
                self._active_rules.pop(mac, None)

        logger.info(f"Device unblocked: MAC={mac}")
        self._report("log_firewall_rule_removed", rule_name_for(mac, self.rule_prefix), mac, ip)
        return FirewallResult.ok(f"Device {mac} unblocked")

    def clear_all_rules(self) -> FirewallResult:
        """Remove every rule this engine knows or can find, and empty the cache."""
        if not self.is_supported:
            return FirewallResult.fail(
                f"{self.engine_name} is not available on this platform",
                FirewallErrorCode.UNSUPPORTED_PLATFORM,
            )

        with self._lock:
            with self._cache_lock:
                known_macs = list(self._active_rules)

            self._apply_clear_all(known_macs)

            with self._cache_lock:
                self._active_rules.clear()

        logger.info(f"All {self.engine_name} block rules removed ({len(known_macs)} cached)")
        if known_macs:
            self._report(
                "log_system_event",
                f"Removed {len(known_macs)} block rules",
                LogSeverity.WARNING,
            )
        return FirewallResult.ok("All rules removed")

    def restore_rules_from_database(
        self,
        devices: Iterable[DeviceRecord],
        stop_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Re-apply persisted block decisions.

        Only devices with status BLOCKED or is_blocked set are attempted.
        A failure on one device does not stop the others.

        Args:
            devices: Device records from the repository
            stop_event: When set, restoration stops before the next device

        Returns:
            Number of devices successfully blocked
        """
        restored = 0

        for device in devices:
            if not device.should_be_blocked:
                continue
            if stop_event is not None and stop_event.is_set():
                logger.info("Rule restoration cancelled")
                break

            result = self.block_device(device.mac_address, device.ip_address)
            if result.success:
                restored += 1
            else:
                logger.warning(f"Failed to restore rule for {device.mac_address}: {result.message}")

        logger.info(f"{self.engine_name} restoration: {restored} rules applied")
        if restored > 0:
            self._report(
                "log_system_event",
                f"Restored {restored} block rules at startup",
                LogSeverity.INFO,
            )
        return restored

    # -- Queries ------------------------------------------------------------

    def is_device_blocked(self, mac_address: str) -> bool:
        """Cache lookup only; no OS round-trip."""
        with self._cache_lock:
            return normalize_mac(mac_address) in self._active_rules

    def get_active_rules(self) -> List[FirewallRule]:
        """Snapshot of the rule cache."""
        with self._cache_lock:
            return list(self._active_rules.values())

    def get_status(self) -> Dict:
        return {
            'engine': self.engine_name,
            'supported': self.is_supported,
            'platform': self.platform_name,
            'active_rules': len(self.get_active_rules()),
        }

    # -- Internals ----------------------------------------------------------

    def _validate(
        self,
        mac_address: str,
        ip_address: Optional[str],
        check_self: bool,
    ) -> Tuple[str, Optional[str], Optional[FirewallResult]]:
        mac = normalize_mac(mac_address)
        if not is_valid_mac(mac):
            return mac, None, FirewallResult.fail(
                f"Invalid MAC address: {mac_address!r}",
                FirewallErrorCode.INVALID_MAC_ADDRESS,
            )

        if check_self and self._is_protected(mac):
            logger.warning(f"Refusing to block local interface address {mac}")
            return mac, None, FirewallResult.fail(
                f"Device {mac} is a local interface of this host",
                FirewallErrorCode.SELF_BLOCK_PREVENTED,
            )

        try:
            ip = normalize_ip(ip_address)
        except ValueError:
            return mac, None, FirewallResult.fail(
                f"Invalid IP address: {ip_address!r}",
                FirewallErrorCode.INVALID_IP_ADDRESS,
            )

        return mac, ip, None

    def _is_protected(self, mac: str) -> bool:
        if not self._self_block_protection:
            return False
        if self._protected_macs is None:
            try:
                self._protected_macs = features.get_local_mac_addresses()
            except (OSError, RuntimeError) as e:
                logger.warning(f"Could not enumerate local interfaces: {e}")
                self._protected_macs = set()
        return mac in self._protected_macs

    def _report(self, method: str, *args) -> None:
        """Forward to the security log; sink failures never fail an operation."""
        try:
            getattr(self._security_log, method)(*args)
        except Exception as e:
            handle_error(e, f"security_log.{method}", ErrorCategory.SECURITY_LOG)

    @staticmethod
    def _join_errors(errors: List[str]) -> Optional[str]:
        return "; ".join(errors) if errors else None


class NullFirewallEngine(FirewallEngine):
    """
    Engine for platforms without a firewall implementation.

    Every mutating call fails with UNSUPPORTED_PLATFORM and no command is
    ever run; queries return empty results.
    """

    @property
    def is_supported(self) -> bool:
        return False

    @property
    def engine_name(self) -> str:
        return "Null (unsupported)"

    def restore_rules_from_database(self, devices, stop_event=None) -> int:
        return 0

    def check_permissions(self) -> bool:
        return False

    def _apply_block(self, mac, ip):
        return FirewallResult.fail("Unsupported platform", FirewallErrorCode.UNSUPPORTED_PLATFORM)

    def _apply_unblock(self, mac, ip):
        pass

    def _apply_clear_all(self, known_macs):
        pass
