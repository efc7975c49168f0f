"""
NetGuard command line interface.

    netguard block AA:BB:CC:DD:EE:FF --ip 192.168.1.50
    netguard unblock AA:BB:CC:DD:EE:FF
    netguard status AA:BB:CC:DD:EE:FF
    netguard list
    netguard clear
    netguard restore
    netguard check
    netguard features
    netguard verify-log
    netguard keygen --output /etc/netguard/signing.key

Block and unblock change the OS firewall and record the decision in the
device store, so the daemon restores it on the next start.

Exit codes: 0 success, 1 operation failed, 2 usage or configuration error.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from . import __version__
from .config import ConfigError, GuardConfig, load_config
from .device_repository import FileDeviceRepository, RepositoryError
from .enforcement import (
    FirewallEngine,
    FirewallErrorCode,
    FirewallResult,
    RestorationState,
    RuleRestorationService,
    get_engine_or_null,
    normalize_mac,
)
from .event_logger import (
    EventLogger,
    SecurityLogSink,
    create_security_log,
    generate_signing_key,
    load_signing_key,
)
from .features import get_feature_status
from .logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='netguard',
        description='NetGuard - block network devices at the OS firewall',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--config', help='Path to YAML config file')
    parser.add_argument('--log-level', help='Override the configured log level')
    parser.add_argument('--json', action='store_true', help='Output as JSON')

    sub = parser.add_subparsers(dest='command', metavar='COMMAND')
    sub.required = True

    p = sub.add_parser('block', help='Block a device')
    p.add_argument('mac', help='MAC address (AA:BB:CC:DD:EE:FF or AA-BB-...)')
    p.add_argument('--ip', help='IP address of the device')
    p.add_argument('--reason', help='Reason recorded in the device store')

    p = sub.add_parser('unblock', help='Unblock a device')
    p.add_argument('mac', help='MAC address')
    p.add_argument('--ip', help='IP address of the device')

    p = sub.add_parser('status', help='Show the stored block state of a device')
    p.add_argument('mac', help='MAC address')

    sub.add_parser('list', help='List blocked devices')
    sub.add_parser('clear', help='Remove all block rules and unblock every stored device')
    sub.add_parser('restore', help='Re-apply stored block decisions now')
    sub.add_parser('check', help='Check firewall engine support and permissions')
    sub.add_parser('features', help='Show detected platform features')
    sub.add_parser('verify-log', help='Verify the security log hash chain and signatures')

    p = sub.add_parser('keygen', help='Create the Ed25519 key used to sign security log events')
    p.add_argument('--output', help='Key file path (default: configured signing_key_path)')
    p.add_argument('--force', action='store_true', help='Overwrite an existing key file')

    return parser


class CommandContext:
    """Collaborators shared by the subcommands of one invocation."""

    def __init__(self, config: GuardConfig, as_json: bool):
        self.config = config
        self.as_json = as_json
        self._engine: Optional[FirewallEngine] = None
        self._security_log: Optional[SecurityLogSink] = None
        self._repository: Optional[FileDeviceRepository] = None

    @property
    def security_log(self) -> SecurityLogSink:
        if self._security_log is None:
            self._security_log = create_security_log(
                self.config.security_log_path,
                self.config.signing_key_path,
            )
        return self._security_log

    @property
    def engine(self) -> FirewallEngine:
        if self._engine is None:
            self._engine = get_engine_or_null(config=self.config, security_log=self.security_log)
        return self._engine

    @property
    def repository(self) -> FileDeviceRepository:
        if self._repository is None:
            self._repository = FileDeviceRepository(self.config.device_store_path)
        return self._repository

    def emit(self, data: Dict, text: str):
        if self.as_json:
            print(json.dumps(data, indent=2, default=str))
        else:
            print(text)

    def emit_result(self, result: FirewallResult) -> int:
        text = result.message
        if result.error_details:
            text += f"\n  details: {result.error_details}"
        if not result.success:
            text += f"\n  error: {result.error_code.value}"
        self.emit(result.to_dict(), text)
        return EXIT_OK if result.success else EXIT_FAILED


def cmd_block(ctx: CommandContext, args) -> int:
    record = ctx.repository.get_by_mac(args.mac)
    if record is not None and record.should_be_blocked:
        # A fresh process has an empty rule cache; the store is the duplicate check
        return ctx.emit_result(FirewallResult.fail(
            f"Device {normalize_mac(args.mac)} is already blocked",
            FirewallErrorCode.ALREADY_BLOCKED,
        ))

    result = ctx.engine.block_device(args.mac, args.ip)
    if result.success:
        ctx.repository.set_blocked(args.mac, True, reason=args.reason, ip_address=args.ip)
    return ctx.emit_result(result)


def cmd_unblock(ctx: CommandContext, args) -> int:
    ip = args.ip
    if ip is None:
        record = ctx.repository.get_by_mac(args.mac)
        ip = record.ip_address if record else None

    result = ctx.engine.unblock_device(args.mac, ip)
    if result.success:
        ctx.repository.set_blocked(args.mac, False)
    return ctx.emit_result(result)


def cmd_status(ctx: CommandContext, args) -> int:
    mac = normalize_mac(args.mac)
    record = ctx.repository.get_by_mac(mac)
    if record is None:
        ctx.emit({'mac_address': mac, 'known': False}, f"{mac}: unknown device")
        return EXIT_FAILED

    state = "blocked" if record.should_be_blocked else "not blocked"
    text = f"{mac}: {state}"
    if record.ip_address:
        text += f" (IP {record.ip_address})"
    if record.blocked_at:
        text += f" since {record.blocked_at}"
    if record.block_reason:
        text += f" - {record.block_reason}"
    ctx.emit(dict(record.to_dict(), known=True), text)
    return EXIT_OK


def cmd_list(ctx: CommandContext, args) -> int:
    devices = ctx.repository.get_blocked_devices()
    lines: List[str] = [f"{len(devices)} blocked device(s)"]
    for d in devices:
        lines.append(f"  {d.mac_address}  {d.ip_address or '-':15}  {d.blocked_at or '-'}")
    ctx.emit({'devices': [d.to_dict() for d in devices]}, "\n".join(lines))
    return EXIT_OK


def cmd_clear(ctx: CommandContext, args) -> int:
    result = ctx.engine.clear_all_rules()
    if result.success:
        for device in ctx.repository.get_blocked_devices():
            ctx.repository.set_blocked(device.mac_address, False)
    return ctx.emit_result(result)


def cmd_restore(ctx: CommandContext, args) -> int:
    engine = ctx.engine
    service = RuleRestorationService(
        ctx.repository,
        config=ctx.config,
        security_log=ctx.security_log,
        engine_factory=lambda: engine,
        delay=0,
    )
    report = service.run()
    text = f"Restoration {report.state.value}: {report.restored}/{report.total} rules"
    if report.error:
        text += f" ({report.error})"
    ctx.emit(report.to_dict(), text)
    return EXIT_OK if report.state == RestorationState.DONE else EXIT_FAILED


def cmd_check(ctx: CommandContext, args) -> int:
    engine = ctx.engine
    status = engine.get_status()
    status['permissions'] = engine.is_supported and engine.check_permissions()
    text = (
        f"Engine: {status['engine']}\n"
        f"Platform: {status['platform']}\n"
        f"Supported: {status['supported']}\n"
        f"Permissions: {'ok' if status['permissions'] else 'insufficient'}"
    )
    ctx.emit(status, text)
    return EXIT_OK if status['permissions'] else EXIT_FAILED


def cmd_features(ctx: CommandContext, args) -> int:
    status = get_feature_status()
    lines = []
    for name, info in status.items():
        mark = "+" if info['available'] else "-"
        lines.append(f"  [{mark}] {name}: {info['reason']}")
    ctx.emit(status, "\n".join(lines))
    return EXIT_OK


def cmd_verify_log(ctx: CommandContext, args) -> int:
    path = ctx.config.security_log_path
    if not path:
        ctx.emit({'valid': False, 'error': 'no security_log_path configured'},
                 "No security log configured (security_log_path)")
        return EXIT_FAILED

    signing_key = load_signing_key(ctx.config.signing_key_path) if ctx.config.signing_key_path else None
    event_logger = EventLogger(path, signing_key=signing_key)

    valid, error = event_logger.verify_chain()
    report = {'valid': valid, 'error': error, 'events': event_logger.get_event_count()}
    if valid and signing_key is not None:
        valid, error = event_logger.verify_signatures()
        report.update(valid=valid, error=error, signed=True)

    text = f"Security log {'OK' if valid else 'INVALID'}: {report['events']} events"
    if error:
        text += f" ({error})"
    ctx.emit(report, text)
    return EXIT_OK if valid else EXIT_FAILED


def cmd_keygen(ctx: CommandContext, args) -> int:
    path = args.output or ctx.config.signing_key_path
    if not path:
        ctx.emit({'created': False, 'error': 'no --output and no signing_key_path configured'},
                 "No key path given (--output or signing_key_path)")
        return EXIT_FAILED
    if os.path.exists(path) and not args.force:
        ctx.emit({'created': False, 'path': path, 'error': 'key file exists'},
                 f"Key file {path} already exists (use --force to replace it)")
        return EXIT_FAILED

    verify_key = generate_signing_key(path)
    logger.info(f"Signing key written to {path}")
    ctx.emit({'created': True, 'path': path, 'verify_key': verify_key},
             f"Signing key written to {path}\nVerify key: {verify_key}")
    return EXIT_OK


COMMANDS = {
    'block': cmd_block,
    'unblock': cmd_unblock,
    'status': cmd_status,
    'list': cmd_list,
    'clear': cmd_clear,
    'restore': cmd_restore,
    'check': cmd_check,
    'features': cmd_features,
    'verify-log': cmd_verify_log,
    'keygen': cmd_keygen,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        if args.log_level:
            config.log_level = args.log_level
            config.validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(config.log_level, config.log_file)

    ctx = CommandContext(config, args.json)
    try:
        return COMMANDS[args.command](ctx, args)
    except (RepositoryError, RuntimeError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == '__main__':
    sys.exit(main())
