#!/usr/bin/env python3
"""
NetGuard Daemon Entry Point

Restores persisted device blocks at startup, then stays up until
SIGINT/SIGTERM so the restoration thread and the security log have an
owning process:

    sudo python run_daemon.py --config /etc/netguard/netguard.yaml
"""

import argparse
import logging
import signal
import sys
import threading

from netguard import __version__
from netguard.config import ConfigError, load_config
from netguard.device_repository import FileDeviceRepository
from netguard.enforcement import RuleRestorationService
from netguard.event_logger import EventType, EventLogger, SecurityEventLog, load_signing_key
from netguard.features import log_feature_summary
from netguard.logging_config import setup_logging

logger = logging.getLogger("netguard.daemon")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='NetGuard - device blocking daemon')
    parser.add_argument('--config', help='Path to YAML config file')
    parser.add_argument('--log-level', help='Override the configured log level')
    parser.add_argument('--no-restore', action='store_true',
                        help='Do not re-apply stored blocks at startup')
    args = parser.parse_args()

    try:
        config = load_config(args.config)
        if args.log_level:
            config.log_level = args.log_level
            config.validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config.log_level, config.log_file)

    print("=" * 70)
    print(f"NetGuard Daemon {__version__} - Device Blocking Enforcement")
    print("=" * 70)
    log_feature_summary()

    try:
        event_logger = None
        security_log = None
        if config.security_log_path:
            signing_key = load_signing_key(config.signing_key_path) if config.signing_key_path else None
            event_logger = EventLogger(config.security_log_path, signing_key=signing_key)
            security_log = SecurityEventLog(event_logger)
            event_logger.log_event(EventType.DAEMON_START, f"NetGuard daemon {__version__} started",
                                   metadata={'config': config.to_dict()})

        def _record_restoration(report):
            logger.info(f"Restoration ended {report.state.value}: {report.restored}/{report.total}")
            if event_logger is not None:
                event_logger.log_event(EventType.RESTORATION,
                                       f"Startup restoration {report.state.value}",
                                       metadata=report.to_dict())

        repository = FileDeviceRepository(config.device_store_path)
        restoration = RuleRestorationService(repository, config=config, security_log=security_log,
                                             on_complete=_record_restoration)
    except (OSError, RuntimeError) as e:
        logger.critical(f"Startup failed: {e}")
        sys.exit(1)

    shutdown = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    if not args.no_restore:
        restoration.start()

    # Event.wait with a timeout keeps the main thread responsive to signals
    while not shutdown.wait(1.0):
        pass

    if not restoration.stop():
        logger.warning("Restoration thread did not stop in time")

    if event_logger is not None:
        event_logger.log_event(EventType.DAEMON_STOP, "NetGuard daemon stopped")
    logger.info("NetGuard daemon stopped")


if __name__ == '__main__':
    main()
