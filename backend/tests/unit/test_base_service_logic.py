# backend/tests/unit/test_base_service_logic.py
"""
Unit tests for BaseService transaction handling and cache helpers.

The session is a Mock so only the service logic is exercised.
"""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from clinic_booking.core.exceptions import (
    RepositoryException,
    TransientInfraException,
    ValidationException,
)
from clinic_booking.services.base import BaseService, is_transient_storage_error


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"))


class TestTransactionManagement:
    def test_commits_on_success(self):
        mock_db = Mock(spec=Session)
        service = BaseService(mock_db)

        with service.transaction():
            pass

        mock_db.commit.assert_called_once()
        mock_db.rollback.assert_not_called()

    def test_rolls_back_and_reraises_business_errors(self):
        mock_db = Mock(spec=Session)
        service = BaseService(mock_db)

        with pytest.raises(ValidationException):
            with service.transaction():
                raise ValidationException("bad input")

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()

    def test_connection_failure_becomes_transient(self):
        mock_db = Mock(spec=Session)
        service = BaseService(mock_db)

        with pytest.raises(TransientInfraException) as exc_info:
            with service.transaction():
                raise _operational_error()

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"
        mock_db.rollback.assert_called_once()

    def test_wrapped_connection_failure_becomes_transient(self):
        mock_db = Mock(spec=Session)
        service = BaseService(mock_db)

        with pytest.raises(TransientInfraException):
            with service.transaction():
                try:
                    raise _operational_error()
                except OperationalError as e:
                    raise RepositoryException("Failed to create Booking") from e

    def test_commit_failure_is_translated(self):
        mock_db = Mock(spec=Session)
        mock_db.commit.side_effect = _operational_error()
        service = BaseService(mock_db)

        with pytest.raises(TransientInfraException):
            with service.transaction():
                pass

        mock_db.rollback.assert_called_once()

    def test_integrity_error_is_not_transient(self):
        error = IntegrityError("INSERT", {}, Exception("unique violation"))
        assert is_transient_storage_error(error) is False


class TestStorageGuard:
    def test_passes_through_other_errors(self):
        service = BaseService(Mock(spec=Session))
        with pytest.raises(KeyError):
            with service.storage_guard():
                raise KeyError("x")

    def test_translates_connection_failures(self):
        service = BaseService(Mock(spec=Session))
        with pytest.raises(TransientInfraException):
            with service.storage_guard():
                raise _operational_error()


class TestCacheHelpers:
    def test_invalidate_without_cache_is_noop(self):
        service = BaseService(Mock(spec=Session))
        service.invalidate_cache("book:1")
        service.invalidate_pattern("avail:*")

    def test_invalidate_swallows_cache_errors(self):
        cache = Mock()
        cache.delete.side_effect = RuntimeError("redis down")
        cache.delete_pattern.side_effect = RuntimeError("redis down")
        service = BaseService(Mock(spec=Session), cache)

        service.invalidate_cache("book:1", "book:2")
        service.invalidate_pattern("avail:p1:*")

        assert cache.delete.call_count == 2
        cache.delete_pattern.assert_called_once_with("avail:p1:*")


class TestMeasureOperation:
    def test_records_success_and_failure(self):
        class RecordingService(BaseService):
            @BaseService.measure_operation("lookup")
            def lookup(self, fail: bool = False) -> str:
                if fail:
                    raise ValueError("boom")
                return "ok"

        service = RecordingService(Mock(spec=Session))
        assert service.lookup() == "ok"
        with pytest.raises(ValueError):
            service.lookup(fail=True)

        metrics = service.get_metrics()["lookup"]
        assert metrics["count"] >= 2
        assert 0 < metrics["success_rate"] < 1
