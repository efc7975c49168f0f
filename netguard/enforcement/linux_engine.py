"""
Linux firewall engine - iptables + ebtables.

Blocks live in one custom iptables chain that INPUT, FORWARD and OUTPUT
jump into, plus an ebtables FORWARD rule for the link layer. The
ebtables rule catches devices on the same bridged segment before they
hold an IP address (e.g. during ARP-based discovery).

Block attempts are independent: the device counts as blocked when ANY
command succeeds. Failures of the others are returned in error_details
so a caller can tell "blocked on every vector" from "blocked on one".

Rules survive a daemon restart, so each rule is checked with -C before
it is appended, and removal repeats -D until no copy is left.
"""

import logging
import shlex
from typing import List, Optional, Tuple

from ..constants import Naming, Timeouts
from .command_runner import CommandResult
from .engine import FirewallEngine
from .models import FirewallErrorCode, FirewallResult

logger = logging.getLogger(__name__)

IPTABLES = "iptables"
EBTABLES = "ebtables"


class LinuxIptablesEngine(FirewallEngine):
    """iptables/ebtables implementation of the firewall engine contract."""

    rule_prefix = Naming.LINUX_RULE_PREFIX

    def __init__(self, *args, chain_name: str = Naming.LINUX_CHAIN,
                 rule_prefix: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.chain_name = chain_name
        if rule_prefix is not None:
            self.rule_prefix = rule_prefix
        self._chain_initialized = False

    @property
    def is_supported(self) -> bool:
        return self.platform_name.startswith('linux')

    @property
    def engine_name(self) -> str:
        return "Linux iptables/ebtables"

    def _ensure_chain_exists(self):
        """Create the custom chain and link it into the parent chains, once."""
        if self._chain_initialized:
            return

        # Fails harmlessly with "Chain already exists" after a restart
        self._runner.run(IPTABLES, ["-N", self.chain_name])

        for parent in Naming.LINUX_PARENT_CHAINS:
            check = self._runner.run(IPTABLES, ["-C", parent, "-j", self.chain_name])
            if not check.success:
                self._runner.run(IPTABLES, ["-I", parent, "-j", self.chain_name])

        self._chain_initialized = True
        logger.info(f"iptables chain {self.chain_name} initialized")

    def _mac_rules(self, mac: str) -> List[Tuple[str, List[str]]]:
        """(command, rule spec) pairs for a MAC; the spec omits -A/-C/-D."""
        return [
            (IPTABLES, [self.chain_name, "-m", "mac", "--mac-source", mac, "-j", "DROP"]),
            (EBTABLES, ["FORWARD", "-s", mac, "-j", "DROP"]),
        ]

    def _address_rules(self, ip: str) -> List[Tuple[str, List[str]]]:
        return [
            (IPTABLES, [self.chain_name, "-s", ip, "-j", "DROP"]),
            (IPTABLES, [self.chain_name, "-d", ip, "-j", "DROP"]),
        ]

    def _block_rules(self, mac: str, ip: Optional[str]) -> List[Tuple[str, List[str]]]:
        mac_rules = self._mac_rules(mac)
        address_rules = self._address_rules(ip) if ip else []
        # iptables MAC rule, IP rules, then the ebtables rule
        return mac_rules[:1] + address_rules + mac_rules[1:]

    def _add_rule(self, command: str, spec: List[str]) -> CommandResult:
        """Append a rule unless an identical one is already in place."""
        if self._runner.run(command, ["-C", *spec]).success:
            logger.debug(f"Rule already present: {command} {' '.join(spec)}")
            return CommandResult(success=True, exit_code=0)
        return self._runner.run(command, ["-A", *spec])

    def _delete_rule(self, command: str, spec: List[str]) -> int:
        """Delete every copy of a rule. Returns the number of copies removed."""
        removed = 0
        while removed < Naming.LINUX_MAX_RULE_COPIES:
            if not self._runner.run(command, ["-D", *spec]).success:
                break
            removed += 1
        if removed > 1:
            logger.warning(f"Removed {removed} copies of {command} {' '.join(spec)}")
        return removed

    def _apply_block(self, mac: str, ip: Optional[str]) -> FirewallResult:
        self._ensure_chain_exists()

        any_success = False
        errors: List[str] = []

        for command, spec in self._block_rules(mac, ip):
            result = self._add_rule(command, spec)
            if result.success:
                any_success = True
            else:
                errors.append(f"{command} -A {' '.join(spec)}: {result.error}")

        if not any_success:
            return FirewallResult.fail(
                "Failed to block device via iptables",
                FirewallErrorCode.COMMAND_FAILED,
                self._join_errors(errors),
            )

        if errors:
            logger.warning(f"Partial block for {mac}: {'; '.join(errors)}")
        return FirewallResult.ok(f"Device {mac} blocked", details=self._join_errors(errors))

    def _apply_unblock(self, mac: str, ip: Optional[str]) -> None:
        for command, spec in self._block_rules(mac, ip):
            self._delete_rule(command, spec)

    def _remove_address_rules(self, ip: str) -> None:
        for command, spec in self._address_rules(ip):
            self._delete_rule(command, spec)

    def _apply_clear_all(self, known_macs: List[str]) -> None:
        self._runner.run(IPTABLES, ["-F", self.chain_name])

        for mac in known_macs:
            self._delete_rule(EBTABLES, ["FORWARD", "-s", mac, "-j", "DROP"])

        # Whatever the listing still shows, one delete per listed line;
        # best effort, output format varies
        listing = self._runner.run(EBTABLES, ["-L", "FORWARD", "--Lx"])
        if not listing.success:
            return

        for line in listing.stdout.splitlines():
            if "-j DROP" not in line or "-s" not in line:
                continue
            try:
                tokens = shlex.split(line)
            except ValueError:
                logger.debug(f"Unparseable ebtables line: {line!r}")
                continue
            if tokens and tokens[0] == EBTABLES:
                tokens = tokens[1:]
            if "-A" not in tokens:
                continue

            self._runner.run(EBTABLES, ["-D" if t == "-A" else t for t in tokens])

    def check_permissions(self) -> bool:
        result = self._runner.run(IPTABLES, ["-L", "-n"], timeout=Timeouts.COMMAND_QUICK)
        return result.success
