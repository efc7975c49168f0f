"""
Tests for netguard/enforcement/selector.py and the Null engine
"""

from unittest.mock import patch

import pytest

from netguard.config import GuardConfig
from netguard.enforcement import (
    FirewallErrorCode,
    LinuxIptablesEngine,
    NullFirewallEngine,
    UnsupportedPlatformError,
    WindowsFirewallEngine,
    get_engine_or_null,
    select_engine,
)
from netguard.enforcement.models import DeviceRecord, DeviceStatus


class TestSelectEngine:

    @pytest.mark.unit
    def test_windows(self):
        engine = select_engine('win32')
        assert isinstance(engine, WindowsFirewallEngine)
        assert engine.is_supported

    @pytest.mark.unit
    @pytest.mark.parametrize("platform_name", ["linux", "linux2"])
    def test_linux(self, platform_name):
        engine = select_engine(platform_name)
        assert isinstance(engine, LinuxIptablesEngine)
        assert engine.is_supported

    @pytest.mark.unit
    @pytest.mark.parametrize("platform_name", ["darwin", "freebsd13", "cygwin"])
    def test_unsupported_raises(self, platform_name):
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            select_engine(platform_name)
        assert exc_info.value.platform_name == platform_name

    @pytest.mark.unit
    def test_platform_is_read_at_call_time(self):
        with patch('netguard.features.current_platform', return_value='win32'):
            assert isinstance(select_engine(), WindowsFirewallEngine)
        with patch('netguard.features.current_platform', return_value='linux'):
            assert isinstance(select_engine(), LinuxIptablesEngine)

    @pytest.mark.unit
    def test_config_is_applied(self):
        config = GuardConfig(chain_name="TESTCHAIN", linux_rule_prefix="T_",
                             command_timeout=3.0, self_block_protection=False)
        engine = select_engine('linux', config)
        assert engine.chain_name == "TESTCHAIN"
        assert engine.rule_prefix == "T_"
        assert engine._runner.timeout == 3.0
        assert engine._self_block_protection is False

    @pytest.mark.unit
    def test_windows_prefix_from_config(self):
        engine = select_engine('win32', GuardConfig(windows_rule_prefix="Lab_"))
        assert engine.rule_prefix == "Lab_"

    @pytest.mark.unit
    def test_injected_runner_wins(self, runner):
        engine = select_engine('linux', runner=runner)
        assert engine._runner is runner


class TestGetEngineOrNull:

    @pytest.mark.unit
    def test_unsupported_gets_null_engine(self):
        engine = get_engine_or_null('darwin')
        assert isinstance(engine, NullFirewallEngine)
        assert engine.platform_name == 'darwin'

    @pytest.mark.unit
    def test_supported_gets_real_engine(self):
        assert isinstance(get_engine_or_null('linux'), LinuxIptablesEngine)


class TestNullEngine:

    @pytest.mark.unit
    def test_never_runs_commands(self, runner):
        engine = NullFirewallEngine(runner=runner, platform_name='darwin')
        mac = "AA:BB:CC:DD:EE:FF"

        assert engine.block_device(mac, "10.0.0.1").error_code == FirewallErrorCode.UNSUPPORTED_PLATFORM
        assert engine.unblock_device(mac).error_code == FirewallErrorCode.UNSUPPORTED_PLATFORM
        assert engine.clear_all_rules().error_code == FirewallErrorCode.UNSUPPORTED_PLATFORM
        assert engine.is_device_blocked(mac) is False
        assert engine.get_active_rules() == []
        assert engine.check_permissions() is False
        assert engine.restore_rules_from_database(
            [DeviceRecord(mac, status=DeviceStatus.BLOCKED)]
        ) == 0

        assert runner.calls == []

    @pytest.mark.unit
    def test_identity(self):
        engine = NullFirewallEngine()
        assert engine.is_supported is False
        assert engine.engine_name == "Null (unsupported)"
