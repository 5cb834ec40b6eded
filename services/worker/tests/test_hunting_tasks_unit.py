"""Unit tests for hunting tasks.

Tests cover:
- Task registration and retry policy
- Cycle summary passthrough
- Failure handling for the cycle and for manual runs
"""

from unittest.mock import AsyncMock, patch

import pytest
from celery.exceptions import Retry


CYCLE_SUMMARY = {
    "sessions_found": 2,
    "processed": 2,
    "failed": 0,
    "no_connection": 0,
    "deferred": 0,
    "posts_scanned": 40,
    "leads_created": 3,
}


class TestRunCycleTask:
    """Tests for hunting.run_cycle."""

    def test_task_is_registered(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_cycle

        assert run_cycle.name == "hunting.run_cycle"
        assert "hunting.run_cycle" in eager_app.tasks

    def test_task_retries_once(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_cycle

        assert run_cycle.max_retries == 1

    def test_routed_to_hunting_queue(self, eager_app):
        assert eager_app.conf.task_routes["hunting.*"] == {"queue": "hunting"}
        assert eager_app.conf.beat_schedule["hunting-cycle-periodic"]["task"] == "hunting.run_cycle"

    def test_success_returns_summary(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_cycle

        with patch(
            "leadhunter_worker.tasks.hunting._run_cycle",
            new=AsyncMock(return_value=dict(CYCLE_SUMMARY)),
        ):
            result = run_cycle.apply().get()

        assert result["status"] == "success"
        assert result["leads_created"] == 3
        assert result["processed"] == 2

    def test_failure_requests_retry(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_cycle

        with patch(
            "leadhunter_worker.tasks.hunting._run_cycle",
            new=AsyncMock(side_effect=ConnectionError("redis down")),
        ), patch.object(run_cycle, "retry", side_effect=Retry()) as retry:
            with pytest.raises(Retry):
                run_cycle.run()

        assert isinstance(retry.call_args.kwargs["exc"], ConnectionError)

    def test_failure_after_retries_reports_failed(self, eager_app, retried_request):
        from leadhunter_worker.tasks.hunting import run_cycle

        retried_request(run_cycle, retries=1)
        with patch(
            "leadhunter_worker.tasks.hunting._run_cycle",
            new=AsyncMock(side_effect=ConnectionError("redis down")),
        ):
            result = run_cycle.run()

        assert result == {"status": "failed", "error": "redis down"}


class TestRunTenantTask:
    """Tests for hunting.run_tenant."""

    def test_task_is_registered_without_retries(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_tenant

        assert run_tenant.name == "hunting.run_tenant"
        assert run_tenant.max_retries == 0

    def test_success_returns_run_result(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_tenant

        run_result = {"tenant_id": 7, "status": "completed", "leads_created": 1}
        with patch(
            "leadhunter_worker.tasks.hunting._run_tenant",
            new=AsyncMock(return_value=run_result),
        ) as runner:
            result = run_tenant.apply(kwargs={"tenant_id": 7}).get()

        runner.assert_awaited_once_with(7)
        assert result == run_result

    def test_unknown_tenant(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_tenant

        with patch(
            "leadhunter_worker.tasks.hunting._run_tenant",
            new=AsyncMock(return_value={"status": "not_found", "tenant_id": 99}),
        ):
            result = run_tenant.apply(kwargs={"tenant_id": 99}).get()

        assert result["status"] == "not_found"

    def test_failure_is_reported_not_raised(self, eager_app):
        from leadhunter_worker.tasks.hunting import run_tenant

        with patch(
            "leadhunter_worker.tasks.hunting._run_tenant",
            new=AsyncMock(side_effect=RuntimeError("inference not configured")),
        ):
            result = run_tenant.apply(kwargs={"tenant_id": 7}).get()

        assert result == {
            "status": "failed",
            "tenant_id": 7,
            "error": "inference not configured",
        }
