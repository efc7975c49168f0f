"""
Result, rule and device models shared by all firewall engines.

Every mutating engine operation returns a FirewallResult. Expected
failures (unsupported platform, already blocked, invalid address,
command failure...) are values carrying a FirewallErrorCode, never
exceptions.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

# Canonical MAC form: uppercase, colon separated
_MAC_PATTERN = re.compile(r'^([0-9A-F]{2}:){5}[0-9A-F]{2}$')
_BARE_MAC_PATTERN = re.compile(r'^[0-9A-F]{12}$')


class FirewallErrorCode(Enum):
    """Closed set of firewall operation outcomes."""
    NONE = "none"
    UNKNOWN = "unknown"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    ALREADY_BLOCKED = "already_blocked"
    NOT_BLOCKED = "not_blocked"
    INVALID_MAC_ADDRESS = "invalid_mac_address"
    INVALID_IP_ADDRESS = "invalid_ip_address"
    COMMAND_FAILED = "command_failed"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    SELF_BLOCK_PREVENTED = "self_block_prevented"


class RuleDirection(Enum):
    """Traffic direction a rule applies to."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    BOTH = "both"


class RuleAction(Enum):
    """What a rule does with matching traffic."""
    BLOCK = "block"
    ALLOW = "allow"


class DeviceStatus(Enum):
    """Device status as persisted by the device repository."""
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"
    BLOCKED = "blocked"


@dataclass
class FirewallResult:
    """Outcome of a firewall operation."""
    success: bool
    message: str = ""
    error_details: Optional[str] = None
    error_code: FirewallErrorCode = FirewallErrorCode.NONE

    @classmethod
    def ok(cls, message: str = "Operation succeeded",
           details: Optional[str] = None) -> 'FirewallResult':
        return cls(success=True, message=message, error_details=details)

    @classmethod
    def fail(
        cls,
        message: str,
        code: FirewallErrorCode = FirewallErrorCode.UNKNOWN,
        details: Optional[str] = None,
    ) -> 'FirewallResult':
        return cls(success=False, message=message, error_details=details, error_code=code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'message': self.message,
            'error_details': self.error_details,
            'error_code': self.error_code.value,
        }


@dataclass
class FirewallRule:
    """Record of one enforced block decision."""
    rule_name: str
    mac_address: str
    ip_address: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    direction: RuleDirection = RuleDirection.BOTH
    action: RuleAction = RuleAction.BLOCK

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule_name': self.rule_name,
            'mac_address': self.mac_address,
            'ip_address': self.ip_address,
            'created_at': self.created_at.isoformat() + "Z",
            'direction': self.direction.value,
            'action': self.action.value,
        }


@dataclass
class DeviceRecord:
    """A device as known to the device repository."""
    mac_address: str
    ip_address: Optional[str] = None
    status: DeviceStatus = DeviceStatus.UNKNOWN
    is_blocked: bool = False
    hostname: Optional[str] = None
    blocked_at: Optional[str] = None
    block_reason: Optional[str] = None

    @property
    def should_be_blocked(self) -> bool:
        """True when the persisted state says this device must be blocked."""
        return self.status == DeviceStatus.BLOCKED or self.is_blocked

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mac_address': self.mac_address,
            'ip_address': self.ip_address,
            'status': self.status.value,
            'is_blocked': self.is_blocked,
            'hostname': self.hostname,
            'blocked_at': self.blocked_at,
            'block_reason': self.block_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceRecord':
        return cls(
            mac_address=data['mac_address'],
            ip_address=data.get('ip_address'),
            status=DeviceStatus(data.get('status', DeviceStatus.UNKNOWN.value)),
            is_blocked=bool(data.get('is_blocked', False)),
            hostname=data.get('hostname'),
            blocked_at=data.get('blocked_at'),
            block_reason=data.get('block_reason'),
        )


def normalize_mac(mac: str) -> str:
    """
    Normalize a MAC address to uppercase, colon-separated form.

    Hyphens become colons and case is folded; the result is not validated
    (see is_valid_mac). A bare 12-digit hex string gets colons inserted.
    """
    normalized = (mac or "").strip().replace("-", ":").upper()
    if _BARE_MAC_PATTERN.match(normalized):
        normalized = ":".join(normalized[i:i + 2] for i in range(0, 12, 2))
    return normalized


def is_valid_mac(mac: str) -> bool:
    """Check that an already normalized MAC has the canonical form."""
    return bool(_MAC_PATTERN.match(mac))


def normalize_ip(ip: Optional[str]) -> Optional[str]:
    """
    Validate and normalize an IPv4/IPv6 address.

    Returns None for an empty value. Raises ValueError for a malformed one.
    """
    if ip is None or not ip.strip():
        return None
    return str(ipaddress.ip_address(ip.strip()))


def rule_name_for(mac: str, prefix: str) -> str:
    """Deterministic rule name: prefix followed by the MAC without colons."""
    return f"{prefix}{normalize_mac(mac).replace(':', '')}"
