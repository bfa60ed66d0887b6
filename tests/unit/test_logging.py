"""
Unit tests for the contextual logging helpers.
"""

import logging

import pytest

from mdb_odm.observability.logging import (
    ContextualLoggerAdapter,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    get_logging_context,
    log_operation,
    model_context,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def clean_context():
    yield
    clear_correlation_id()


class TestLoggingContext:
    """Test correlation IDs and model context."""

    def test_generated_correlation_id(self):
        correlation_id = set_correlation_id()
        assert correlation_id
        assert get_correlation_id() == correlation_id

    def test_explicit_correlation_id(self):
        set_correlation_id("abc")
        assert get_logging_context()["correlation_id"] == "abc"
        clear_correlation_id()
        assert "correlation_id" not in get_logging_context()

    def test_model_context(self):
        with model_context("Foo", collection_name="foos"):
            context = get_logging_context()
            assert context["model"] == "Foo"
            assert context["collection_name"] == "foos"
            assert context["correlation_id"]
            assert "timestamp" in context

        assert "model" not in get_logging_context()
        assert get_correlation_id() is None

    def test_nested_model_context(self):
        """Test an inner context restores the outer one and shares its correlation ID."""
        with model_context("Bar", operation="delete_one"):
            outer_id = get_correlation_id()
            with model_context("Foo", operation="delete_many"):
                assert get_logging_context()["model"] == "Foo"
                assert get_correlation_id() == outer_id
            assert get_logging_context()["operation"] == "delete_one"
            assert get_correlation_id() == outer_id

    def test_model_context_keeps_caller_correlation_id(self):
        set_correlation_id("request-1")
        with model_context("Foo"):
            assert get_correlation_id() == "request-1"
        assert get_correlation_id() == "request-1"

    def test_model_context_is_restored_on_error(self):
        with pytest.raises(ValueError):
            with model_context("Foo"):
                raise ValueError("boom")
        assert "model" not in get_logging_context()
        assert get_correlation_id() is None


class TestContextualLogger:
    """Test the logger adapter and log_operation()."""

    def test_get_logger(self):
        adapter = get_logger("mdb_odm.test")
        assert isinstance(adapter, ContextualLoggerAdapter)
        assert adapter.logger.name == "mdb_odm.test"

    def test_adapter_adds_context(self, caplog):
        adapter = get_logger("mdb_odm.test")

        with caplog.at_level(logging.INFO, logger="mdb_odm.test"):
            with model_context("Foo"):
                adapter.info("hello", extra={"db_name": "test_db"})

        record = caplog.records[-1]
        assert record.model == "Foo"
        assert record.db_name == "test_db"
        assert record.correlation_id

    def test_log_operation_failure(self, caplog):
        logger = logging.getLogger("mdb_odm.test")

        with caplog.at_level(logging.WARNING, logger="mdb_odm.test"):
            log_operation(
                logger,
                "model.insert_one",
                level=logging.WARNING,
                success=False,
                duration_ms=12.345,
                model="Foo",
            )

        record = caplog.records[-1]
        assert record.getMessage() == "Operation failed: model.insert_one (duration: 12.35ms)"
        assert record.operation == "model.insert_one"
        assert record.success is False
        assert record.duration_ms == 12.35
        assert record.model == "Foo"
