"""
Tests for netguard/features.py - platform and tool detection
"""

from types import SimpleNamespace
from unittest.mock import patch

import psutil
import pytest

from netguard import features
from netguard.features import Features, get_feature_status, get_local_mac_addresses


def nic(family, address):
    return SimpleNamespace(family=family, address=address)


class TestPlatformHelpers:

    @pytest.mark.unit
    def test_explicit_platform(self):
        assert features.is_windows('win32')
        assert not features.is_windows('linux')
        assert features.is_linux('linux')
        assert not features.is_linux('darwin')

    @pytest.mark.unit
    def test_current_platform_is_patchable(self):
        with patch('netguard.features.current_platform', return_value='win32'):
            assert features.is_windows()
            assert not features.is_linux()


class TestLocalMacAddresses:

    @pytest.mark.unit
    def test_link_layer_addresses_are_normalized(self):
        fake = {
            'eth0': [nic(psutil.AF_LINK, "aa-bb-cc-dd-ee-ff"), nic(2, "192.168.1.10")],
            'wlan0': [nic(psutil.AF_LINK, "11:22:33:44:55:66")],
            'lo': [nic(psutil.AF_LINK, "00:00:00:00:00:00")],
            'tun0': [nic(psutil.AF_LINK, "")],
        }
        with patch('psutil.net_if_addrs', return_value=fake):
            assert get_local_mac_addresses() == {"AA:BB:CC:DD:EE:FF", "11:22:33:44:55:66"}


class TestFeatures:

    @pytest.mark.unit
    def test_linux_tools(self):
        with patch('shutil.which', side_effect=lambda b: f"/usr/sbin/{b}" if b == "iptables" else None):
            detected = Features(platform_name='linux')

        assert detected.is_available("IPTABLES")
        assert not detected.is_available("EBTABLES")
        assert not detected.is_available("NETSH")
        assert "not applicable" in detected.get_info("NETSH").reason.lower()

    @pytest.mark.unit
    def test_windows_tools(self):
        with patch('shutil.which', return_value="C:\\Windows\\System32\\netsh.exe"):
            detected = Features(platform_name='win32')

        assert detected.is_available("NETSH")
        assert not detected.is_available("IPTABLES")

    @pytest.mark.unit
    def test_unknown_feature(self):
        assert not Features(platform_name='linux').is_available("NOPE")

    @pytest.mark.unit
    def test_self_block_guard_reports_interface_failure(self):
        with patch('psutil.net_if_addrs', side_effect=OSError("no netlink")):
            detected = Features(platform_name='linux')
        assert not detected.is_available("SELF_BLOCK_GUARD")

    @pytest.mark.unit
    def test_feature_status_shape(self):
        status = get_feature_status()
        assert {'IPTABLES', 'EBTABLES', 'NETSH', 'SELF_BLOCK_GUARD'} <= set(status)
        for info in status.values():
            assert set(info) == {'available', 'reason', 'dependencies', 'platform_notes'}
