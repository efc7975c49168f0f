"""
Command Runner - executes external firewall tools.

Runs iptables/ebtables/netsh as argv lists (never through a shell) and
reports the outcome as a CommandResult. A missing binary, an exec
permission error or a timeout is a failed result, not an exception.
Interpreting stdout/stderr is left to the caller.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from ..constants import Timeouts
from ..utils.error_handling import normalize_platform_error

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of one external command."""
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = -1
    timed_out: bool = False

    @property
    def error(self) -> str:
        """Best available error text for diagnostics."""
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.exit_code}"


class CommandRunner:
    """
    Blocking executor for firewall commands.

    Every call is bounded by a timeout so a hung tool cannot hold an
    engine's lock forever.
    """

    def __init__(self, timeout: float = Timeouts.COMMAND_DEFAULT):
        self.timeout = timeout

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        Args:
            command: Executable name or path (e.g. 'iptables')
            args: Argument list, passed without shell interpretation
            timeout: Seconds before the process is killed (defaults to self.timeout)

        Returns:
            CommandResult with success == (exit_code == 0)
        """
        argv = [command, *args]
        effective_timeout = self.timeout if timeout is None else timeout

        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"{command} timed out after {effective_timeout}s: {' '.join(argv)}")
            return CommandResult(
                success=False,
                stdout=_decode(e.stdout),
                stderr=f"{command} timed out after {effective_timeout}s",
                exit_code=-1,
                timed_out=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            error_type, error_msg = normalize_platform_error(e)
            logger.debug(f"Command {command} unavailable: {error_type}: {error_msg}")
            return CommandResult(
                success=False,
                stderr=f"{command}: {error_msg}",
                exit_code=-1,
            )

        logger.debug(f"{' '.join(argv)} -> exit={proc.returncode}")
        return CommandResult(
            success=proc.returncode == 0,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            exit_code=proc.returncode,
        )


def _decode(output) -> str:
    """TimeoutExpired carries bytes even in text mode on some platforms."""
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors='replace')
    return output
