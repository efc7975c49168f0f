"""
Windows firewall engine - netsh advfirewall.

Each blocked device gets a named inbound and a named outbound rule
targeting its remote IP. Windows Firewall cannot filter on a bare
link-layer address, so a device without an IP is only registered in
the cache (degraded but non-failing).
"""

import logging
import re
from typing import List, Optional, Set

from ..constants import Naming, Timeouts
from .engine import FirewallEngine
from .models import FirewallErrorCode, FirewallResult, rule_name_for

logger = logging.getLogger(__name__)

NETSH = "netsh"

_RULE_NAME_PATTERN = re.compile(r'Rule Name:\s*(.+)')


class WindowsFirewallEngine(FirewallEngine):
    """netsh advfirewall implementation of the firewall engine contract."""

    rule_prefix = Naming.WINDOWS_RULE_PREFIX

    def __init__(self, *args, rule_prefix: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        if rule_prefix is not None:
            self.rule_prefix = rule_prefix

    @property
    def is_supported(self) -> bool:
        return self.platform_name == 'win32'

    @property
    def engine_name(self) -> str:
        return "Windows Firewall (netsh advfirewall)"

    def _rule_names(self, mac: str):
        base = rule_name_for(mac, self.rule_prefix)
        return base + Naming.WINDOWS_INBOUND_SUFFIX, base + Naming.WINDOWS_OUTBOUND_SUFFIX

    def _add_rule(self, name: str, direction: str, ip: str):
        return self._runner.run(NETSH, [
            "advfirewall", "firewall", "add", "rule",
            f"name={name}", f"dir={direction}", "action=block",
            f"remoteip={ip}", "enable=yes",
        ])

    def _delete_rule(self, name: str):
        return self._runner.run(NETSH, ["advfirewall", "firewall", "delete", "rule", f"name={name}"])

    def _apply_block(self, mac: str, ip: Optional[str]) -> FirewallResult:
        if not ip:
            logger.warning(f"Windows Firewall needs an IP address to block effectively. MAC: {mac}")
            return FirewallResult.ok(
                "Rule registered; Windows Firewall needs an IP address to block this device"
            )

        inbound_name, outbound_name = self._rule_names(mac)
        inbound = self._add_rule(inbound_name, "in", ip)
        outbound = self._add_rule(outbound_name, "out", ip)

        if not inbound.success and not outbound.success:
            return FirewallResult.fail(
                "Failed to create firewall rules",
                FirewallErrorCode.COMMAND_FAILED,
                f"IN: {inbound.error}, OUT: {outbound.error}",
            )

        details = None
        if not inbound.success:
            details = f"IN: {inbound.error}"
        elif not outbound.success:
            details = f"OUT: {outbound.error}"
        if details:
            logger.warning(f"Partial block for {mac}: {details}")

        return FirewallResult.ok(f"Device {mac} blocked", details=details)

    def _apply_unblock(self, mac: str, ip: Optional[str]) -> None:
        # netsh reports "No rules match" for absent rules; that is fine here
        for name in self._rule_names(mac):
            self._delete_rule(name)

    def _apply_clear_all(self, known_macs: List[str]) -> None:
        deleted: Set[str] = set()
        for mac in known_macs:
            for name in self._rule_names(mac):
                self._delete_rule(name)
                deleted.add(name)

        # Rules from earlier runs are only discoverable through the listing
        listing = self._runner.run(NETSH, ["advfirewall", "firewall", "show", "rule", "name=all"])
        if not listing.success:
            return

        for line in listing.stdout.splitlines():
            if self.rule_prefix not in line:
                continue
            match = _RULE_NAME_PATTERN.search(line)
            if not match:
                continue
            name = match.group(1).strip()
            if name in deleted:
                continue
            self._delete_rule(name)
            deleted.add(name)

    def check_permissions(self) -> bool:
        result = self._runner.run(NETSH, ["advfirewall", "show", "currentprofile"],
                                  timeout=Timeouts.COMMAND_QUICK)
        return result.success
