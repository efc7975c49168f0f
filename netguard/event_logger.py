"""
Security Event Log - tamper-evident record of firewall changes.

Every rule added or removed and every system event (restoration,
clear-all, daemon start/stop) is appended to a JSON-lines file. Each
event carries the hash of the previous one, so edits or deletions
break the chain and are caught by verify_chain(). With a signing key,
every event hash is also signed with Ed25519.

The engines talk to this through the SecurityLogSink interface; the
sink is optional and NullSecurityLog is used when none is configured.

SECURITY:
- Log files are created with 0o600 permissions, directories with 0o700
- fsync() after each write
"""

import hashlib
import json
import logging
import os
import secrets
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import nacl.encoding
import nacl.exceptions
import nacl.signing

from .constants import Permissions

logger = logging.getLogger(__name__)

LOG_FILE_PERMS = Permissions.LOG_FILE
LOG_DIR_PERMS = Permissions.LOG_DIR


class LogSeverity(Enum):
    """Severity of a security event."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class EventType(Enum):
    """Types of security events"""
    FIREWALL_RULE_ADDED = "firewall_rule_added"
    FIREWALL_RULE_REMOVED = "firewall_rule_removed"
    SYSTEM_EVENT = "system_event"
    RESTORATION = "restoration"
    DAEMON_START = "daemon_start"
    DAEMON_STOP = "daemon_stop"


@dataclass
class SecurityEvent:
    """A single event in the security log"""
    event_id: str
    timestamp: str
    event_type: EventType
    severity: LogSeverity
    details: str
    metadata: Dict
    hash_chain: str  # Hash of previous event
    signature: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            'event_id': self.event_id,
            'timestamp': self.timestamp,
            'event_type': self.event_type.value,
            'severity': self.severity.value,
            'details': self.details,
            'metadata': self.metadata,
            'hash_chain': self.hash_chain,
        }
        if self.signature is not None:
            data['signature'] = self.signature
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    def compute_hash(self) -> str:
        """SHA-256 over every field except the signature."""
        data = self.to_dict()
        data.pop('signature', None)
        return hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()

    @classmethod
    def from_dict(cls, data: Dict) -> 'SecurityEvent':
        return cls(
            event_id=data['event_id'],
            timestamp=data['timestamp'],
            event_type=EventType(data['event_type']),
            severity=LogSeverity(data.get('severity', LogSeverity.INFO.value)),
            details=data['details'],
            metadata=data.get('metadata', {}),
            hash_chain=data['hash_chain'],
            signature=data.get('signature'),
        )


def generate_signing_key(path: str) -> str:
    """
    Create a new Ed25519 signing key file (hex seed, 0o600).

    Returns:
        The hex-encoded verify (public) key
    """
    key = nacl.signing.SigningKey.generate()
    key_dir = os.path.dirname(path)
    if key_dir:
        os.makedirs(key_dir, exist_ok=True)
    fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, Permissions.DATA_FILE)
    with os.fdopen(fd, 'w') as f:
        f.write(key.encode(encoder=nacl.encoding.HexEncoder).decode())
    return key.verify_key.encode(encoder=nacl.encoding.HexEncoder).decode()


def load_signing_key(path: str) -> bytes:
    """Read a hex-encoded Ed25519 seed written by generate_signing_key()."""
    with open(path, 'r') as f:
        return nacl.encoding.HexEncoder.decode(f.read().strip().encode())


class EventLogger:
    """
    Append-only, hash-chained security event logger.

    Thread-safe; one instance per log file.
    """

    def __init__(
        self,
        log_file_path: str,
        secure_permissions: bool = True,
        signing_key: Optional[bytes] = None,
    ):
        """
        Args:
            log_file_path: Path to the JSON-lines log file
            secure_permissions: Apply 0o600/0o700 permissions
            signing_key: Optional 32-byte Ed25519 seed for per-event signatures
        """
        self.log_file_path = log_file_path
        self._lock = threading.Lock()
        # Per-instance genesis so independent logs never share a first link
        self._last_hash: str = hashlib.sha256(
            f"genesis:{secrets.token_hex(16)}".encode()
        ).hexdigest()
        self._event_count = 0
        self._secure_permissions = secure_permissions

        self._signing_key: Optional[nacl.signing.SigningKey] = None
        if signing_key:
            self._signing_key = nacl.signing.SigningKey(signing_key)

        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            if self._secure_permissions:
                try:
                    os.chmod(log_dir, LOG_DIR_PERMS)
                except OSError as e:
                    logger.warning(f"Could not set secure directory permissions: {e}")

        self._load_existing_log()

    @property
    def verify_key(self) -> Optional[str]:
        """Hex-encoded Ed25519 public key, or None when unsigned."""
        if self._signing_key is None:
            return None
        return self._signing_key.verify_key.encode(encoder=nacl.encoding.HexEncoder).decode()

    def _load_existing_log(self):
        """Resume the chain from the last event of an existing file"""
        if not os.path.exists(self.log_file_path):
            return

        try:
            with open(self.log_file_path, 'r') as f:
                lines = [l.strip() for l in f if l.strip()]
            if lines:
                last = SecurityEvent.from_dict(json.loads(lines[-1]))
                self._last_hash = last.compute_hash()
                self._event_count = len(lines)
        except (OSError, ValueError, KeyError) as e:
            # Starting a fresh chain over a corrupted file would hide tampering
            raise RuntimeError(
                f"Failed to load existing security log {self.log_file_path}: {e}. "
                f"Hash chain integrity cannot be guaranteed."
            )

    def log_event(
        self,
        event_type: EventType,
        details: str,
        severity: LogSeverity = LogSeverity.INFO,
        metadata: Optional[Dict] = None,
    ) -> SecurityEvent:
        """
        Append an event to the log.

        Returns:
            The logged event
        """
        with self._lock:
            event = SecurityEvent(
                event_id=str(uuid.uuid4()),
                timestamp=datetime.utcnow().isoformat() + "Z",
                event_type=event_type,
                severity=severity,
                details=details,
                metadata=metadata or {},
                hash_chain=self._last_hash,
            )
            event_hash = event.compute_hash()
            if self._signing_key is not None:
                event.signature = self._signing_key.sign(event_hash.encode()).signature.hex()

            self._append_to_log(event)

            self._last_hash = event_hash
            self._event_count += 1
            return event

    def _append_to_log(self, event: SecurityEvent):
        try:
            if self._secure_permissions:
                fd = os.open(self.log_file_path,
                             os.O_CREAT | os.O_WRONLY | os.O_APPEND,
                             LOG_FILE_PERMS)
                f = os.fdopen(fd, 'a')
            else:
                f = open(self.log_file_path, 'a')
            with f:
                f.write(event.to_json() + '\n')
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            logger.critical(f"Failed to write to security log: {e}")
            raise

    def get_event_count(self) -> int:
        with self._lock:
            return self._event_count

    def get_last_hash(self) -> str:
        with self._lock:
            return self._last_hash

    def _read_events(self) -> List[SecurityEvent]:
        if not os.path.exists(self.log_file_path):
            return []
        with open(self.log_file_path, 'r') as f:
            return [SecurityEvent.from_dict(json.loads(l)) for l in f if l.strip()]

    def verify_chain(self) -> Tuple[bool, Optional[str]]:
        """
        Verify the integrity of the whole event chain.

        Returns:
            (is_valid, error_message)
        """
        try:
            events = self._read_events()
        except (OSError, ValueError, KeyError) as e:
            return (False, f"Error reading log: {e}")

        expected_hash = None
        for i, event in enumerate(events):
            # First event's link is the genesis hash
            if expected_hash is not None and event.hash_chain != expected_hash:
                return (False, f"Hash chain broken at event {i}")
            expected_hash = event.compute_hash()

        return (True, None)

    def verify_signatures(self, verify_key_hex: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        """
        Check every event's Ed25519 signature.

        Args:
            verify_key_hex: Public key to check against (defaults to this logger's key)
        """
        key_hex = verify_key_hex or self.verify_key
        if key_hex is None:
            return (False, "No verify key available")

        verify_key = nacl.signing.VerifyKey(key_hex.encode(), encoder=nacl.encoding.HexEncoder)
        try:
            events = self._read_events()
        except (OSError, ValueError, KeyError) as e:
            return (False, f"Error reading log: {e}")

        for i, event in enumerate(events):
            if not event.signature:
                return (False, f"Event {i} is unsigned")
            try:
                verify_key.verify(event.compute_hash().encode(), bytes.fromhex(event.signature))
            except (nacl.exceptions.BadSignatureError, ValueError):
                return (False, f"Bad signature at event {i}")

        return (True, None)

    def get_recent_events(self, count: int = 100) -> List[SecurityEvent]:
        """Most recent events, newest first."""
        if count <= 0:
            return []
        try:
            events = self._read_events()
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error reading recent events: {e}")
            return []
        return list(reversed(events[-count:]))


class SecurityLogSink(ABC):
    """Receiver for firewall audit events."""

    @abstractmethod
    def log_firewall_rule_added(self, rule_name: str, mac_address: Optional[str],
                                ip_address: Optional[str]) -> None:
        ...

    @abstractmethod
    def log_firewall_rule_removed(self, rule_name: str, mac_address: Optional[str],
                                  ip_address: Optional[str]) -> None:
        ...

    @abstractmethod
    def log_system_event(self, message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
        ...


class NullSecurityLog(SecurityLogSink):
    """Sink that discards everything."""

    def log_firewall_rule_added(self, rule_name, mac_address, ip_address):
        pass

    def log_firewall_rule_removed(self, rule_name, mac_address, ip_address):
        pass

    def log_system_event(self, message, severity=LogSeverity.INFO):
        pass


class SecurityEventLog(SecurityLogSink):
    """SecurityLogSink backed by a hash-chained EventLogger."""

    def __init__(self, event_logger: EventLogger):
        self.event_logger = event_logger

    def log_firewall_rule_added(self, rule_name, mac_address, ip_address):
        self.event_logger.log_event(
            EventType.FIREWALL_RULE_ADDED,
            f"Rule '{rule_name}' added to block {mac_address or ip_address}",
            metadata={'rule_name': rule_name, 'mac_address': mac_address, 'ip_address': ip_address},
        )

    def log_firewall_rule_removed(self, rule_name, mac_address, ip_address):
        self.event_logger.log_event(
            EventType.FIREWALL_RULE_REMOVED,
            f"Rule '{rule_name}' removed for {mac_address or ip_address}",
            metadata={'rule_name': rule_name, 'mac_address': mac_address, 'ip_address': ip_address},
        )

    def log_system_event(self, message, severity=LogSeverity.INFO):
        self.event_logger.log_event(EventType.SYSTEM_EVENT, message, severity=severity)


def create_security_log(
    log_file_path: Optional[str],
    signing_key_path: Optional[str] = None,
    secure_permissions: bool = True,
) -> SecurityLogSink:
    """Build the configured sink, or a NullSecurityLog when no path is set."""
    if not log_file_path:
        return NullSecurityLog()
    signing_key = load_signing_key(signing_key_path) if signing_key_path else None
    return SecurityEventLog(EventLogger(
        log_file_path,
        secure_permissions=secure_permissions,
        signing_key=signing_key,
    ))
