"""
Tests for netguard/utils/error_handling.py
"""

import errno

import pytest

from netguard.utils.error_handling import (
    ErrorAggregator,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    determine_severity,
    get_error_aggregator,
    handle_error,
    normalize_platform_error,
    safe_execute,
)


@pytest.fixture(autouse=True)
def clean_aggregator():
    get_error_aggregator().clear()
    yield
    get_error_aggregator().clear()


class TestSeverity:

    @pytest.mark.unit
    @pytest.mark.parametrize("error,category,expected", [
        (PermissionError("denied"), ErrorCategory.FIREWALL, ErrorSeverity.ERROR),
        (ValueError("x"), ErrorCategory.SECURITY_LOG, ErrorSeverity.CRITICAL),
        (FileNotFoundError("gone"), ErrorCategory.STORAGE, ErrorSeverity.WARNING),
        (RuntimeError("iptables timed out"), ErrorCategory.FIREWALL, ErrorSeverity.WARNING),
        (RuntimeError("boom"), ErrorCategory.UNKNOWN, ErrorSeverity.ERROR),
    ])
    def test_determine_severity(self, error, category, expected):
        assert determine_severity(error, category) == expected


class TestHandleError:

    @pytest.mark.unit
    def test_records_context(self):
        context = handle_error(RuntimeError("store corrupted"), "rule_restoration",
                               ErrorCategory.FIREWALL, additional_context={'devices': 3})

        assert context.operation == "rule_restoration"
        assert context.severity == ErrorSeverity.ERROR
        recent = get_error_aggregator().get_recent_errors()
        assert recent[-1]['error_message'] == "store corrupted"
        assert recent[-1]['additional_context'] == {'devices': 3}

    @pytest.mark.unit
    def test_reraise(self):
        with pytest.raises(ValueError):
            handle_error(ValueError("bad"), "parse", reraise=True)

    @pytest.mark.unit
    def test_safe_execute_swallows_and_records(self):
        with safe_execute("reading store", ErrorCategory.STORAGE, default_return=[]) as result:
            result.value = ["partial"]
            raise OSError("disk gone")

        assert result.success is False
        assert result.value == []
        assert result.error.category == ErrorCategory.STORAGE

    @pytest.mark.unit
    def test_safe_execute_success(self):
        with safe_execute("reading store", ErrorCategory.STORAGE) as result:
            result.value = 42
        assert result.success
        assert result.value == 42


class TestErrorAggregator:

    @pytest.mark.unit
    def test_deduplicates_within_window(self):
        aggregator = ErrorAggregator(dedup_window_seconds=60)
        make = lambda: ErrorContext(RuntimeError("x"), ErrorCategory.FIREWALL, ErrorSeverity.ERROR, "op")

        assert aggregator.add_error(make()) is True
        assert aggregator.add_error(make()) is False

        summary = aggregator.get_error_summary()
        assert summary['total_errors'] == 1
        assert summary['deduplicated_counts'] == {"firewall:RuntimeError:op": 2}

    @pytest.mark.unit
    def test_max_errors(self):
        aggregator = ErrorAggregator(max_errors=3, dedup_window_seconds=0)
        for i in range(5):
            aggregator.add_error(ErrorContext(RuntimeError(str(i)), ErrorCategory.STORAGE,
                                              ErrorSeverity.ERROR, f"op{i}"))
        assert [e['error_message'] for e in aggregator.get_recent_errors()] == ["2", "3", "4"]


class TestNormalizePlatformError:

    @pytest.mark.unit
    def test_errno_mapping(self, monkeypatch):
        monkeypatch.setattr('netguard.utils.error_handling.IS_WINDOWS', False)
        error = FileNotFoundError(errno.ENOENT, "No such file or directory: 'ebtables'")
        assert normalize_platform_error(error) == ('FileNotFoundError', 'No such file or directory')

    @pytest.mark.unit
    def test_winerror_mapping(self, monkeypatch):
        monkeypatch.setattr('netguard.utils.error_handling.IS_WINDOWS', True)
        error = OSError("[WinError 740] The requested operation requires elevation")
        assert normalize_platform_error(error) == ('PermissionError', 'Elevation required')

    @pytest.mark.unit
    def test_unknown_passthrough(self):
        assert normalize_platform_error(ValueError("weird")) == ('ValueError', 'weird')
