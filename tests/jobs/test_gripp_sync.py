"""Unit tests for the Gripp sync job."""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, Mock, patch

from src.integrations.gripp import GrippAPIClient
from src.jobs.gripp_sync import GrippSyncJob, run_gripp_sync, three_month_window
from src.models import Employee, Hour, Offer, Project, ProjectLine
from src.services.job_lock import SyncInProgressError


def hour_row(hour_id, work_date, amount="2.5", project_id=1001, line_id=501, employee_id=7):
    return {
        "id": hour_id,
        "date": {"date": f"{work_date} 00:00:00.000000", "timezone": "Europe/Amsterdam"},
        "amount": amount,
        "description": "Work",
        "employee": {"id": employee_id, "searchname": "Jan Jansen"},
        "status": {"id": 2, "searchname": "Gefiatteerd"},
        "offerprojectbase": {"id": project_id, "searchname": "Acme - Website", "discr": "opdracht"},
        "offerprojectline": {"id": line_id, "searchname": "Development"},
    }


@pytest.fixture
def sync_job(mock_gripp_client, session_factory):
    return GrippSyncJob(gripp_client=mock_gripp_client, session_factory=session_factory)


class TestGrippSyncJob:
    def test_sync_projects_upserts_projects_and_lines(self, sync_job, db_session):
        counts = sync_job.sync_projects()

        assert counts == {"projects": 1, "project_lines": 2}
        project = db_session.get(Project, 1001)
        assert project.name == "Acme - Website relaunch"
        assert project.company_name == "Acme B.V."
        assert project.phase_name == "Uitvoering"
        assert project.tags == [{"id": 28, "searchname": "Vaste prijs"}]
        assert project.total_excl_vat == Decimal("12000.00")
        assert project.selling_price == Decimal("115.00")
        assert [line.id for line in project.lines] == [501, 502]

    def test_sync_projects_twice_replaces_lines(self, sync_job, mock_gripp_client, db_session):
        sync_job.sync_projects()
        mock_gripp_client.get_project_lines.return_value = [
            {"id": 503, "amount": "1", "sellingprice": "90", "invoicebasis": {"id": 2}}
        ]

        sync_job.sync_projects()

        lines = db_session.query(ProjectLine).all()
        assert [line.id for line in lines] == [503]
        assert lines[0].invoice_basis_id == 2
        assert db_session.query(Project).count() == 1

    def test_archived_projects_keep_lines(self, sync_job, mock_gripp_client):
        mock_gripp_client.get_projects.return_value[0]["archived"] = True

        counts = sync_job.sync_projects()

        assert counts["project_lines"] == 0
        mock_gripp_client.get_project_lines.assert_not_called()

    def test_sync_offers(self, sync_job, db_session):
        assert sync_job.sync_offers() == {"offers": 1}

        offer = db_session.query(Offer).filter_by(offer_id=2001).one()
        assert offer.offer_name == "Acme - Phase 2"
        assert offer.client_name == "Acme B.V."
        assert offer.discr == "offerte"

    def test_sync_hours_replaces_range(self, sync_job, mock_gripp_client, db_session):
        db_session.add(Hour(id=1, date=date(2024, 3, 1), amount=Decimal("1")))
        db_session.add(Hour(id=2, date=date(2023, 12, 31), amount=Decimal("1")))
        db_session.commit()
        mock_gripp_client.get_hours.return_value = [
            hour_row(10, "2024-01-15"),
            hour_row(10, "2024-01-15"),
            hour_row(11, "2024-02-01", amount="4"),
            {"id": 12, "amount": "1"},
        ]

        counts = sync_job.sync_hours(date(2024, 1, 1), date(2024, 12, 31))

        assert counts == {"deleted": 1, "inserted": 2, "skipped": 2}
        db_session.expire_all()
        assert sorted(h.id for h in db_session.query(Hour).all()) == [2, 10, 11]
        hour = db_session.get(Hour, 11)
        assert hour.amount == Decimal("4")
        assert hour.project_id == 1001
        assert hour.project_line_id == 501
        assert db_session.get(Employee, 7).name == "Jan Jansen"

    def test_failed_hours_sync_keeps_existing_rows(self, sync_job, mock_gripp_client, db_session):
        db_session.add(Hour(id=1, date=date(2024, 3, 1), amount=Decimal("1")))
        db_session.commit()
        mock_gripp_client.get_hours.side_effect = RuntimeError("Gripp down")

        with pytest.raises(RuntimeError):
            sync_job.sync_hours(date(2024, 1, 1), date(2024, 12, 31))

        assert db_session.query(Hour).count() == 1

    @patch("src.integrations.gripp.requests.post")
    def test_page_cap_keeps_existing_hours(self, mock_post, session_factory, db_session):
        db_session.add_all(
            [Hour(id=i, date=date(2024, 3, i), amount=Decimal("1")) for i in range(1, 5)]
        )
        db_session.commit()
        response = Mock()
        response.raise_for_status = Mock()
        response.json.return_value = [
            {"id": 1, "result": {"rows": [hour_row(90, "2024-03-01")], "more_items_in_collection": True}}
        ]
        mock_post.return_value = response
        client = GrippAPIClient(api_key="k", page_size=1, max_pages=2)
        client.min_request_interval = 0
        job = GrippSyncJob(gripp_client=client, session_factory=session_factory)

        stats = job.run("hours", year=2024)

        assert stats["success"] is False
        assert "more than 2 pages" in stats["error"]
        db_session.expire_all()
        assert sorted(h.id for h in db_session.query(Hour).all()) == [1, 2, 3, 4]

    def test_run_returns_stats(self, sync_job):
        stats = sync_job.run("offers")

        assert stats["success"] is True
        assert stats["offers"] == 1
        assert "start_time" in stats
        assert "end_time" in stats
        assert stats["duration_seconds"] >= 0

    def test_run_hours_uses_whole_year(self, sync_job, mock_gripp_client):
        sync_job.run("hours", year=2024)

        mock_gripp_client.get_hours.assert_called_once_with(date(2024, 1, 1), date(2024, 12, 31))

    def test_run_last_three_months(self, sync_job, mock_gripp_client):
        sync_job.run("last-three-months", today=date(2024, 2, 20))

        mock_gripp_client.get_hours.assert_called_once_with(date(2023, 12, 1), date(2024, 2, 20))

    def test_run_reports_failure(self, sync_job, mock_gripp_client):
        mock_gripp_client.get_offers.side_effect = RuntimeError("boom")

        stats = sync_job.run("offers")

        assert stats["success"] is False
        assert stats["error"] == "boom"

    def test_run_rejects_unknown_type(self, sync_job):
        stats = sync_job.run("employees")

        assert stats["success"] is False
        assert "Unknown sync type" in stats["error"]


class TestRunGrippSync:
    def test_lock_is_released_after_success(self):
        job = MagicMock()
        job.run.return_value = {"success": True, "duration_seconds": 3.2}
        lock = MagicMock()
        lock.acquire.return_value = True

        stats = run_gripp_sync("projects", job=job, lock=lock)

        assert stats["success"] is True
        lock.release.assert_called_once_with(success=True, duration_seconds=3.2, error=None)

    def test_lock_is_released_after_failure(self):
        job = MagicMock()
        job.run.side_effect = RuntimeError("crash")
        lock = MagicMock()
        lock.acquire.return_value = True

        stats = run_gripp_sync("hours", job=job, lock=lock, year=2024)

        assert stats["success"] is False
        assert lock.release.call_args[1]["success"] is False
        assert lock.release.call_args[1]["error"] == "crash"

    def test_held_lock_raises(self):
        job = MagicMock()
        lock = MagicMock()
        lock.acquire.return_value = False

        with pytest.raises(SyncInProgressError) as exc_info:
            run_gripp_sync("last-three-months", job=job, lock=lock)

        assert exc_info.value.sync_type == "hours"
        job.run.assert_not_called()
        lock.release.assert_not_called()


@pytest.mark.parametrize(
    "today, expected_start",
    [
        (date(2024, 5, 31), date(2024, 3, 1)),
        (date(2024, 1, 15), date(2023, 11, 1)),
        (date(2024, 2, 29), date(2023, 12, 1)),
    ],
)
def test_three_month_window(today, expected_start):
    assert three_month_window(today) == (expected_start, today)
