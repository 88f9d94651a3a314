"""Tests for the kopf handler adapter."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import kopf
import pytest

from vpce_operator.handlers import vpc_endpoint as handler
from vpce_operator.handlers.vpc_endpoint import backoff_delay, run_reconcile
from vpce_operator.reconcilers.driver import ReconcileResult


def driver_returning(result=None, error=None):
    driver = MagicMock()
    if error is not None:
        driver.reconcile.side_effect = error
    else:
        driver.reconcile.return_value = result
    return driver


class TestBackoffDelay:
    """Test cases for backoff_delay."""

    @pytest.mark.parametrize(
        "retry,expected",
        [
            (0, 1.0),
            (1, 2.0),
            (5, 32.0),
            (12, 4096.0),
            (13, 5000.0),
            (1000, 5000.0),
            (-3, 1.0),
        ],
    )
    def test_delay(self, retry, expected):
        """Test the doubling schedule and its cap."""
        assert backoff_delay(retry) == expected


class TestRunReconcile:
    """Test cases for run_reconcile."""

    def test_polled_regular_requeue_is_quiet(self):
        """Test that the standard requeue is left to the timer."""
        result = run_reconcile(driver_returning(ReconcileResult(30.0)), "ns", "api")

        assert result.requeue_after == 30.0

    def test_short_requeue_raises(self):
        """Test that an early requeue is handed to kopf."""
        with pytest.raises(kopf.TemporaryError) as exc_info:
            run_reconcile(driver_returning(ReconcileResult(5.0)), "ns", "api")

        assert exc_info.value.delay == 5.0

    def test_unpolled_requeue_raises(self):
        """Test that deletion requeues are always handed to kopf."""
        with pytest.raises(kopf.TemporaryError) as exc_info:
            run_reconcile(driver_returning(ReconcileResult(30.0)), "ns", "api", polled=False)

        assert exc_info.value.delay == 30.0

    def test_done_returns(self):
        """Test that a finished pass does not retry."""
        result = run_reconcile(driver_returning(ReconcileResult()), "ns", "api", polled=False)

        assert result.requeue_after is None

    def test_error_uses_backoff(self):
        """Test that failures retry with exponential backoff."""
        with pytest.raises(kopf.TemporaryError) as exc_info:
            run_reconcile(driver_returning(error=RuntimeError("boom")), "ns", "api", retry=3)

        assert exc_info.value.delay == 8.0
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_same_lock_per_object(self):
        """Test that passes for one object share a lock."""
        assert handler._lock_for("ns", "api") is handler._lock_for("ns", "api")
        assert handler._lock_for("ns", "api") is not handler._lock_for("ns", "other")

    def test_released_object_lock_dropped(self):
        """Test that the lock of an object whose finalizer was removed is dropped."""
        handler._lock_for("ns", "deleted")

        run_reconcile(driver_returning(ReconcileResult(released=True)), "ns", "deleted", polled=False)

        assert ("ns", "deleted") not in handler._key_locks

    def test_live_object_lock_kept(self):
        """Test that ordinary passes keep the object's lock."""
        run_reconcile(driver_returning(ReconcileResult(30.0)), "ns", "live")

        assert ("ns", "live") in handler._key_locks

    def test_failed_deletion_keeps_lock(self):
        """Test that a failed teardown keeps the lock for its retry."""
        with pytest.raises(kopf.TemporaryError):
            run_reconcile(driver_returning(error=RuntimeError("DependencyViolation")), "ns", "stuck", polled=False)

        assert ("ns", "stuck") in handler._key_locks


class TestHandlers:
    """Test cases for the kopf entry points."""

    @patch("vpce_operator.handlers.vpc_endpoint.get_driver")
    def test_event_handler(self, mock_get_driver):
        """Test that event handlers reconcile by namespace and name."""
        mock_get_driver.return_value = driver_returning(ReconcileResult(30.0))

        handler.handle_vpc_endpoint(meta={"namespace": "ns", "name": "api"}, retry=0)

        mock_get_driver.return_value.reconcile.assert_called_once_with("ns", "api")

    @patch("vpce_operator.handlers.vpc_endpoint.get_driver")
    def test_delete_handler_requeues(self, mock_get_driver):
        """Test that the delete handler retries on requested requeues."""
        mock_get_driver.return_value = driver_returning(ReconcileResult(30.0))

        with pytest.raises(kopf.TemporaryError):
            handler.handle_vpc_endpoint_delete(meta={"namespace": "ns", "name": "api"}, retry=0)
