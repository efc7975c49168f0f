"""
Rule Restoration - replays persisted block decisions at startup.

OS firewall rules do not survive a reboot (iptables) or may have been
removed by hand (netsh), so on start the daemon re-applies a block for
every device the repository marks as blocked.

State machine:
    IDLE -> WAITING_FOR_STORE -> SELECTING -> RESTORING -> DONE
                                      |            |
                                      +-> SKIPPED  +-> FAILED

Usage:
    service = RuleRestorationService(repository, config=config, security_log=sink)
    service.start()      # background daemon thread
    ...
    service.stop()
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ..config import GuardConfig
from ..constants import Timeouts
from ..event_logger import NullSecurityLog, SecurityLogSink
from ..utils.error_handling import ErrorCategory, handle_error, safe_execute
from .engine import FirewallEngine, NullFirewallEngine
from .selector import UnsupportedPlatformError, select_engine

if TYPE_CHECKING:
    from ..device_repository import DeviceRepository

logger = logging.getLogger(__name__)


class RestorationState(Enum):
    IDLE = "idle"
    WAITING_FOR_STORE = "waiting_for_store"
    SELECTING = "selecting"
    RESTORING = "restoring"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RestorationReport:
    """Outcome of one restoration run."""
    state: RestorationState
    engine_name: Optional[str] = None
    total: int = 0
    restored: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'state': self.state.value,
            'engine_name': self.engine_name,
            'total': self.total,
            'restored': self.restored,
            'error': self.error,
        }


class RuleRestorationService:
    """
    Runs the startup restoration once, synchronously or in a daemon thread.

    Never raises out of run(); unexpected errors end in FAILED and are
    recorded through handle_error.
    """

    def __init__(
        self,
        repository: 'DeviceRepository',
        config: Optional[GuardConfig] = None,
        security_log: Optional[SecurityLogSink] = None,
        engine_factory: Optional[Callable[[], FirewallEngine]] = None,
        delay: Optional[float] = None,
        on_complete: Optional[Callable[[RestorationReport], None]] = None,
    ):
        """
        Args:
            repository: Source of persisted block decisions
            config: Engine naming/timeout settings and the default delay
            security_log: Audit sink handed to the selected engine
            engine_factory: Returns the engine to restore into (select_engine by default)
            delay: Seconds to wait for the device store (config.restore_delay by default)
            on_complete: Called with the final report (from the restoring thread)
        """
        self._repository = repository
        self._config = config or GuardConfig()
        self._security_log = security_log or NullSecurityLog()
        self._engine_factory = engine_factory or self._select_engine
        self._delay = self._config.restore_delay if delay is None else delay
        self._on_complete = on_complete

        self._state = RestorationState.IDLE
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.engine: Optional[FirewallEngine] = None
        self.report: Optional[RestorationReport] = None

    @property
    def state(self) -> RestorationState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: RestorationState):
        with self._state_lock:
            self._state = state
        logger.debug(f"Restoration state: {state.value}")

    def _select_engine(self) -> FirewallEngine:
        return select_engine(config=self._config, security_log=self._security_log)

    def _finish(self, state: RestorationState, engine_name: Optional[str] = None,
                total: int = 0, restored: int = 0,
                error: Optional[str] = None) -> RestorationReport:
        self._set_state(state)
        self.report = RestorationReport(state, engine_name, total, restored, error)
        return self.report

    def run(self) -> RestorationReport:
        """Run restoration in the calling thread."""
        try:
            report = self._run()
        except Exception as e:
            handle_error(e, "rule_restoration", ErrorCategory.FIREWALL)
            engine_name = self.engine.engine_name if self.engine else None
            report = self._finish(RestorationState.FAILED, engine_name, error=str(e))

        if self._on_complete is not None:
            with safe_execute("restoration on_complete", ErrorCategory.SECURITY_LOG):
                self._on_complete(report)
        return report

    def _run(self) -> RestorationReport:
        self._set_state(RestorationState.WAITING_FOR_STORE)
        if self._delay > 0 and self._stop_event.wait(self._delay):
            logger.info("Rule restoration cancelled before start")
            return self._finish(RestorationState.SKIPPED, error="cancelled")

        self._set_state(RestorationState.SELECTING)
        try:
            engine = self._engine_factory()
        except UnsupportedPlatformError as e:
            logger.info(f"{e}; no firewall rules to restore")
            self.engine = NullFirewallEngine(platform_name=e.platform_name)
            return self._finish(RestorationState.SKIPPED, self.engine.engine_name, error=str(e))
        self.engine = engine

        if not engine.is_supported:
            logger.info(f"{engine.engine_name} not supported on this platform; restoration skipped")
            return self._finish(RestorationState.SKIPPED, engine.engine_name, error="unsupported platform")

        if not engine.check_permissions():
            logger.warning(
                f"Insufficient permissions for {engine.engine_name}; "
                f"run as root/Administrator to restore firewall rules"
            )
            return self._finish(RestorationState.SKIPPED, engine.engine_name, error="permission denied")

        devices = self._repository.get_blocked_devices()
        if not devices:
            logger.info("No blocked devices in the store; nothing to restore")
            return self._finish(RestorationState.DONE, engine.engine_name)

        self._set_state(RestorationState.RESTORING)
        total = sum(1 for d in devices if d.should_be_blocked)
        restored = engine.restore_rules_from_database(devices, stop_event=self._stop_event)

        logger.info(f"Restored {restored}/{total} firewall rules via {engine.engine_name}")
        return self._finish(RestorationState.DONE, engine.engine_name, total, restored)

    def start(self):
        """Run restoration in a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Rule restoration already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="rule-restoration", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = Timeouts.THREAD_JOIN) -> bool:
        """
        Cancel a pending or running restoration.

        The device in progress finishes; no further device is attempted.

        Returns:
            True when the thread has ended (or never started)
        """
        self._stop_event.set()
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> Optional[RestorationReport]:
        """Block until the background run finishes; returns its report."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self.report
