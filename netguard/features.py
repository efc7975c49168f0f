"""
Feature Detection Module for NetGuard

Reports which firewall tooling is usable on this host and which
hardware addresses belong to the host itself.

Usage:
    from netguard.features import FEATURES, get_feature_status, log_feature_summary

    if FEATURES.is_available("IPTABLES"):
        ...
"""

import logging
import re
import shutil
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import psutil

logger = logging.getLogger(__name__)

_ZERO_MAC = "00:00:00:00:00:00"
_MAC_PATTERN = re.compile(r'^([0-9A-F]{2}:){5}[0-9A-F]{2}$')


def current_platform() -> str:
    """Platform string read at call time (patched in tests)."""
    return sys.platform


def is_windows(platform_name: Optional[str] = None) -> bool:
    return (platform_name or current_platform()) == 'win32'


def is_linux(platform_name: Optional[str] = None) -> bool:
    return (platform_name or current_platform()).startswith('linux')


@dataclass
class FeatureInfo:
    """Information about a feature's availability."""
    available: bool
    reason: str = ""
    dependencies: List[str] = field(default_factory=list)
    platform_notes: str = ""


class Features:
    """
    Firewall tooling availability.

    Detection runs on construction; call refresh() after installing tools.
    """

    def __init__(self, platform_name: Optional[str] = None):
        self._platform = platform_name
        self._features: Dict[str, FeatureInfo] = {}
        self._detect_all()

    def refresh(self):
        self._features.clear()
        self._detect_all()

    def _detect_all(self):
        platform_name = self._platform or current_platform()

        self._detect_binary(
            "IPTABLES", "iptables",
            required_platform=is_linux(platform_name),
            platform_notes="Linux only - requires root (CAP_NET_ADMIN)",
        )
        self._detect_binary(
            "EBTABLES", "ebtables",
            required_platform=is_linux(platform_name),
            platform_notes="Linux only - link-layer filtering on bridged segments",
        )
        self._detect_binary(
            "NETSH", "netsh",
            required_platform=is_windows(platform_name),
            platform_notes="Windows only - requires an elevated process",
        )

        try:
            macs = get_local_mac_addresses()
            self._features["SELF_BLOCK_GUARD"] = FeatureInfo(
                available=True,
                reason=f"{len(macs)} local interface address(es) protected",
                dependencies=["psutil"],
            )
        except (OSError, RuntimeError) as e:
            self._features["SELF_BLOCK_GUARD"] = FeatureInfo(
                available=False,
                reason=f"Interface enumeration failed: {e}",
                dependencies=["psutil"],
            )

    def _detect_binary(self, name: str, binary: str, required_platform: bool,
                       platform_notes: str = ""):
        if not required_platform:
            self._features[name] = FeatureInfo(
                available=False,
                reason="Not applicable on this platform",
                platform_notes=platform_notes,
            )
            return

        path = shutil.which(binary)
        self._features[name] = FeatureInfo(
            available=path is not None,
            reason=f"Found at {path}" if path else f"{binary} not found in PATH",
            platform_notes=platform_notes,
        )

    def is_available(self, name: str) -> bool:
        info = self._features.get(name)
        return info is not None and info.available

    def get_info(self, name: str) -> Optional[FeatureInfo]:
        return self._features.get(name)

    def get_all(self) -> Dict[str, FeatureInfo]:
        return dict(self._features)


def get_local_mac_addresses() -> Set[str]:
    """
    Hardware addresses of this host's interfaces, normalized.

    All-zero addresses (loopback) are skipped.
    """
    macs: Set[str] = set()
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != psutil.AF_LINK or not addr.address:
                continue
            mac = addr.address.replace("-", ":").upper()
            if _MAC_PATTERN.match(mac) and mac != _ZERO_MAC:
                macs.add(mac)
    return macs


FEATURES = Features()


def get_feature_status() -> Dict[str, Dict]:
    """Feature availability as a plain dict."""
    return {
        name: {
            'available': info.available,
            'reason': info.reason,
            'dependencies': info.dependencies,
            'platform_notes': info.platform_notes,
        }
        for name, info in FEATURES.get_all().items()
    }


def log_feature_summary():
    """Log one line per feature at startup."""
    logger.info(f"Platform: {current_platform()}")
    for name, info in FEATURES.get_all().items():
        status = "available" if info.available else "unavailable"
        logger.info(f"  {name}: {status} ({info.reason})")
