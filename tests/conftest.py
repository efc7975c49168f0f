"""
Shared fixtures for the NetGuard test suite.

RecordingRunner stands in for CommandRunner: it records every command and
fails the commands matched by fail_when(). For iptables/ebtables it keeps
the installed rules like the kernel would: -A/-I add a copy, -C succeeds
only while a copy exists, -D removes one copy (and fails when none is
left), -F empties a chain. Every other command succeeds.
"""

import os
import sys
import threading
from collections import Counter

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from netguard.enforcement import (
    CommandResult,
    CommandRunner,
    LinuxIptablesEngine,
    WindowsFirewallEngine,
)

RULE_TOOLS = ("iptables", "ebtables")
RULE_OPS = ("-A", "-I", "-C", "-D")


class RecordingRunner(CommandRunner):
    """CommandRunner that never touches the OS."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.outputs = {}
        self.hook = None
        self.rules = Counter()
        self._failures = []
        self._lock = threading.Lock()

    def fail_when(self, predicate, stderr="command failed"):
        """Fail every command for which predicate(command, args) is true."""
        self._failures.append((predicate, stderr))

    def set_output(self, command, args, stdout):
        self.outputs[(command, tuple(args))] = stdout

    def install(self, command, *spec):
        """Put a rule in place as if an earlier process had added it."""
        self.rules[(command, spec)] += 1

    def rule_count(self, command, *spec):
        return self.rules[(command, spec)]

    def run(self, command, args=(), timeout=None):
        args = list(args)
        with self._lock:
            self.calls.append((command, args))
        if self.hook is not None:
            self.hook(command, args)

        for predicate, stderr in self._failures:
            if predicate(command, args):
                return CommandResult(success=False, stderr=stderr, exit_code=1)

        if command in RULE_TOOLS and not self._apply_rule_op(command, args):
            return CommandResult(success=False, stderr="Bad rule (does a matching rule exist in that chain?)",
                                 exit_code=1)
        return CommandResult(
            success=True,
            stdout=self.outputs.get((command, tuple(args)), ""),
            exit_code=0,
        )

    def _apply_rule_op(self, command, args):
        with self._lock:
            if args[:1] == ["-F"] and len(args) > 1:
                for key in [k for k in self.rules if k[0] == command and k[1][:1] == (args[1],)]:
                    del self.rules[key]
                return True

            ops = [i for i, a in enumerate(args) if a in RULE_OPS]
            if not ops:
                return True
            op = args[ops[0]]
            key = (command, tuple(args[:ops[0]] + args[ops[0] + 1:]))

            if op in ("-A", "-I"):
                self.rules[key] += 1
                return True
            if self.rules[key] <= 0:
                return False
            if op == "-D":
                self.rules[key] -= 1
            return True

    def commands(self):
        return [" ".join([command, *args]) for command, args in self.calls]


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def linux_engine(runner):
    return LinuxIptablesEngine(runner=runner, protected_macs=set(), platform_name='linux')


@pytest.fixture
def windows_engine(runner):
    return WindowsFirewallEngine(runner=runner, protected_macs=set(), platform_name='win32')
