"""
Device Repository - persisted block decisions.

The enforcement engines never read storage themselves; restoration asks
a DeviceRepository for the devices that must be blocked and replays
them. FileDeviceRepository keeps the records in a JSON file:

    {
      "devices": [
        {"mac_address": "AA:BB:CC:DD:EE:FF", "ip_address": "192.168.1.50",
         "status": "blocked", "is_blocked": true, "blocked_at": "...", ...}
      ]
    }
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from .constants import Permissions
from .enforcement.models import DeviceRecord, DeviceStatus, normalize_mac

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Device store could not be read or written."""


class DeviceRepository(ABC):
    """Source of persisted device state."""

    @abstractmethod
    def get_blocked_devices(self) -> List[DeviceRecord]:
        """Devices marked blocked (status BLOCKED or is_blocked), newest block first."""
        ...


class FileDeviceRepository(DeviceRepository):
    """
    JSON file backed repository.

    Thread-safe within one process. Writes go to a temp file that is
    then renamed over the store, so a crash never leaves half a file.
    """

    def __init__(self, file_path: str, secure_permissions: bool = True):
        self.file_path = file_path
        self._secure_permissions = secure_permissions
        self._lock = threading.Lock()

    # -- File I/O -----------------------------------------------------------

    def _load(self) -> Dict[str, DeviceRecord]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                raw = f.read()
        except OSError as e:
            raise RepositoryError(f"Cannot read device store {self.file_path}: {e}") from e

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
            records = [DeviceRecord.from_dict(d) for d in data.get('devices', [])]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise RepositoryError(f"Invalid device store {self.file_path}: {e}") from e

        return {normalize_mac(r.mac_address): r for r in records}

    def _save(self, devices: Dict[str, DeviceRecord]):
        payload = json.dumps(
            {'devices': [d.to_dict() for d in devices.values()]},
            indent=2,
        )

        store_dir = os.path.dirname(self.file_path)
        if store_dir:
            os.makedirs(store_dir, exist_ok=True)
            if self._secure_permissions:
                try:
                    os.chmod(store_dir, Permissions.DATA_DIR)
                except OSError as e:
                    logger.warning(f"Could not set secure directory permissions: {e}")

        temp_path = f"{self.file_path}.tmp"
        try:
            fd = os.open(temp_path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, Permissions.DATA_FILE)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.file_path)
        except OSError as e:
            raise RepositoryError(f"Cannot write device store {self.file_path}: {e}") from e

    # -- Queries ------------------------------------------------------------

    def get_all_devices(self) -> List[DeviceRecord]:
        with self._lock:
            return list(self._load().values())

    def get_by_mac(self, mac_address: str) -> Optional[DeviceRecord]:
        with self._lock:
            return self._load().get(normalize_mac(mac_address))

    def get_blocked_devices(self) -> List[DeviceRecord]:
        with self._lock:
            blocked = [d for d in self._load().values() if d.should_be_blocked]
        # ISO timestamps sort chronologically; never-stamped records go last
        blocked.sort(key=lambda d: d.blocked_at or "", reverse=True)
        return blocked

    # -- Mutations ----------------------------------------------------------

    def add_or_update(self, record: DeviceRecord) -> DeviceRecord:
        """Insert or replace a device, keyed by normalized MAC."""
        record.mac_address = normalize_mac(record.mac_address)
        with self._lock:
            devices = self._load()
            devices[record.mac_address] = record
            self._save(devices)
        return record

    def set_blocked(self, mac_address: str, blocked: bool,
                    reason: Optional[str] = None,
                    ip_address: Optional[str] = None) -> DeviceRecord:
        """
        Record a block decision, creating the device if it is unknown.

        Unblocking clears blocked_at and block_reason and sets the status
        back to UNKNOWN.
        """
        mac = normalize_mac(mac_address)
        with self._lock:
            devices = self._load()
            record = devices.get(mac) or DeviceRecord(mac_address=mac)
            if ip_address:
                record.ip_address = ip_address

            record.is_blocked = blocked
            if blocked:
                record.status = DeviceStatus.BLOCKED
                record.blocked_at = datetime.utcnow().isoformat() + "Z"
                record.block_reason = reason
            else:
                record.status = DeviceStatus.UNKNOWN
                record.blocked_at = None
                record.block_reason = None

            devices[mac] = record
            self._save(devices)

        logger.debug(f"Device {mac} marked {'blocked' if blocked else 'unblocked'}")
        return record
