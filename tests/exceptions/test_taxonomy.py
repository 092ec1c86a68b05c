"""Tests for the archgraph error taxonomy."""

import pytest

from archgraph.exceptions import (
    ArchGraphError,
    ArchGraphFailure,
    ConfigurationError,
    ErrorCode,
    IntegrityViolationError,
    InvalidConfigError,
    MergeError,
    PersistenceError,
    ResolutionError,
    ReviewItemNotFoundError,
    SnapshotNotFoundError,
)


class TestErrorCode:
    """Test ErrorCode enum."""

    def test_merge_error_codes(self):
        """Merge errors are AG1xx."""
        assert ErrorCode.AG100.value == "AG100"  # Wrong project
        assert ErrorCode.AG101.value == "AG101"  # Not approved
        assert ErrorCode.AG102.value == "AG102"  # Merged content immutable

    def test_store_error_codes(self):
        """Snapshot store errors are AG2xx."""
        assert ErrorCode.AG200.value == "AG200"  # Version not found
        assert ErrorCode.AG201.value == "AG201"  # Duplicate version
        assert ErrorCode.AG202.value == "AG202"  # Two active snapshots
        assert ErrorCode.AG205.value == "AG205"  # Duplicate node/edge key

    def test_resolution_error_codes(self):
        """Resolution errors are AG3xx."""
        assert ErrorCode.AG300.value == "AG300"  # Review item not found
        assert ErrorCode.AG302.value == "AG302"  # Rename target invalid


class TestArchGraphFailure:
    """Test ArchGraphFailure base exception."""

    def test_basic_creation(self):
        err = ArchGraphFailure(message="Test error", code=ErrorCode.AG200)
        assert err.message == "Test error"
        assert err.recoverable is True
        assert err.context == {}
        assert err.recovery_hint is None

    def test_str_includes_code(self):
        err = SnapshotNotFoundError(message="Snapshot version 9 not found", code=ErrorCode.AG200)
        assert str(err) == "[AG200] Snapshot version 9 not found"

    def test_to_json(self):
        err = IntegrityViolationError(
            message="Two active",
            code=ErrorCode.AG202,
            context={"project_id": "p"},
            recoverable=False,
        )
        data = err.to_json()
        assert data["error_code"] == "AG202"
        assert data["context"] == {"project_id": "p"}
        assert data["recoverable"] is False
        assert data["recovery_hint"] is None

    def test_is_exception(self):
        with pytest.raises(ArchGraphFailure) as exc_info:
            raise MergeError(message="nope", code=ErrorCode.AG101)
        assert exc_info.value.code == ErrorCode.AG101


class TestHierarchy:
    def test_store_errors(self):
        assert issubclass(SnapshotNotFoundError, PersistenceError)
        assert issubclass(IntegrityViolationError, PersistenceError)
        assert issubclass(PersistenceError, ArchGraphFailure)

    def test_resolution_errors(self):
        assert issubclass(ReviewItemNotFoundError, ResolutionError)
        assert issubclass(ResolutionError, ArchGraphFailure)

    def test_config_errors(self):
        err = InvalidConfigError("history_limit", 0, "must be at least 1")
        assert isinstance(err, ConfigurationError)
        assert isinstance(err, ArchGraphError)
        assert err.details["reason"] == "must be at least 1"
        assert "history_limit" in str(err)
