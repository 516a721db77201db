"""
Gripp Sync Job

Copies projects, project lines, quotes and time registrations from Gripp into
the local cache the revenue reports read from. Each sync type is guarded by a
job lock so it never runs twice at the same time.

Hours are replaced per date range (a whole year, or the last three months)
inside one transaction: a failed sync leaves the previous data untouched.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session, sessionmaker

from src.integrations.gripp import GrippAPIClient
from src.models import Employee, Hour, Offer, Project, ProjectLine
from src.models.dtos import parse_gripp_date
from src.services.job_lock import SYNC_JOB_NAMES, JobLock, SyncInProgressError
from src.utils.database import get_engine
from src.utils.numbers import to_decimal, to_int

logger = logging.getLogger(__name__)


def _nested(row: Dict[str, Any], key: str, field: str = "id") -> Any:
    value = row.get(key)
    if isinstance(value, dict):
        return value.get(field)
    return None


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _tags(row: Dict[str, Any]) -> List[Dict[str, Any]]:
    tags = []
    for tag in row.get("tags") or []:
        if isinstance(tag, dict):
            tags.append({"id": to_int(tag.get("id")), "searchname": tag.get("searchname")})
        else:
            tags.append({"id": to_int(tag), "searchname": None})
    return tags


def three_month_window(today: date):
    """First day of the month two months back, through ``today``."""
    start = (today - relativedelta(months=2)).replace(day=1)
    return start, today


class GrippSyncJob:
    """Job to sync Gripp data into the local database"""

    def __init__(
        self,
        gripp_client: Optional[GrippAPIClient] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.gripp_client = gripp_client or GrippAPIClient()
        self.Session = session_factory or sessionmaker(bind=get_engine())

    def sync_projects(self, include_lines: bool = True) -> Dict[str, int]:
        """Upsert all projects and, for active projects, replace their lines."""
        rows = self.gripp_client.get_projects()
        session = self.Session()
        projects_synced = 0
        lines_synced = 0

        try:
            for row in rows:
                project_id = to_int(row.get("id"))
                if project_id is None:
                    logger.warning(f"Skipping Gripp project without id: {row}")
                    continue

                project = session.get(Project, project_id) or Project(id=project_id)
                project.name = row.get("name") or row.get("searchname") or f"Project {project_id}"
                project.number = str(row["number"]) if row.get("number") is not None else None
                project.client_reference = row.get("clientreference")
                project.description = row.get("description")
                project.company_id = to_int(_nested(row, "company"))
                project.company_name = _nested(row, "company", "searchname")
                project.phase_name = _nested(row, "phase", "searchname")
                project.tags = _tags(row)
                project.discr = row.get("discr") or "opdracht"
                project.total_excl_vat = to_decimal(row.get("totalexclvat"))
                project.selling_price = to_decimal(row.get("sellingprice"))
                project.archived = _bool(row.get("archived"))
                archived_on = parse_gripp_date(row.get("archivedon"))
                project.archived_on = (
                    datetime.combine(archived_on, datetime.min.time()) if archived_on else None
                )
                session.add(project)
                projects_synced += 1

                if include_lines and not project.archived:
                    lines_synced += self._replace_project_lines(session, project_id)

            session.commit()
            logger.info(f"Synced {projects_synced} projects and {lines_synced} project lines")
            return {"projects": projects_synced, "project_lines": lines_synced}

        except Exception as e:
            session.rollback()
            logger.error(f"Error syncing projects: {e}")
            raise
        finally:
            session.close()

    def _replace_project_lines(self, session: Session, project_id: int) -> int:
        rows = self.gripp_client.get_project_lines(project_id)
        session.query(ProjectLine).filter(ProjectLine.project_id == project_id).delete(
            synchronize_session=False
        )

        count = 0
        for row in rows:
            line_id = to_int(row.get("id"))
            if line_id is None:
                continue
            session.add(
                ProjectLine(
                    id=line_id,
                    project_id=project_id,
                    searchname=row.get("searchname") or _nested(row, "product", "searchname"),
                    amount=to_decimal(row.get("amount")),
                    amount_written=to_decimal(row.get("amountwritten")),
                    selling_price=to_decimal(row.get("sellingprice")),
                    invoice_basis_id=to_int(_nested(row, "invoicebasis")),
                    invoice_basis_name=_nested(row, "invoicebasis", "searchname"),
                    row_type_id=to_int(_nested(row, "rowtype")),
                    row_type_name=_nested(row, "rowtype", "searchname"),
                )
            )
            count += 1
        return count

    def sync_offers(self) -> Dict[str, int]:
        """Upsert all quotes into ``iris_offers``."""
        rows = self.gripp_client.get_offers()
        session = self.Session()
        synced = 0

        try:
            for row in rows:
                offer_id = to_int(row.get("id"))
                if offer_id is None:
                    continue

                offer = session.query(Offer).filter_by(offer_id=offer_id).first()
                if offer is None:
                    offer = Offer(offer_id=offer_id)
                    session.add(offer)

                offer.offer_name = row.get("name") or row.get("searchname") or f"Offerte {offer_id}"
                offer.client_id = to_int(_nested(row, "company"))
                offer.client_name = _nested(row, "company", "searchname")
                offer.discr = row.get("discr") or "offerte"
                offer.total_excl_vat = to_decimal(row.get("totalexclvat"))
                synced += 1

            session.commit()
            logger.info(f"Synced {synced} offers")
            return {"offers": synced}

        except Exception as e:
            session.rollback()
            logger.error(f"Error syncing offers: {e}")
            raise
        finally:
            session.close()

    def sync_hours(self, start_date: date, end_date: date) -> Dict[str, int]:
        """Replace all hours with a work date in ``[start_date, end_date]``."""
        rows = self.gripp_client.get_hours(start_date, end_date)
        session = self.Session()
        inserted = 0
        skipped = 0
        seen_ids = set()
        employees: Dict[int, Optional[str]] = {}

        try:
            deleted = (
                session.query(Hour)
                .filter(Hour.date >= start_date, Hour.date <= end_date)
                .delete(synchronize_session=False)
            )

            for row in rows:
                hour_id = to_int(row.get("id"))
                work_date = parse_gripp_date(row.get("date"))
                if hour_id is None or work_date is None or hour_id in seen_ids:
                    skipped += 1
                    continue
                seen_ids.add(hour_id)

                employee_id = to_int(_nested(row, "employee"))
                if employee_id is not None:
                    employees[employee_id] = _nested(row, "employee", "searchname")

                # merge: the hour may still exist locally under an older date
                session.merge(
                    Hour(
                        id=hour_id,
                        employee_id=employee_id,
                        date=work_date,
                        amount=to_decimal(row.get("amount")),
                        description=row.get("description"),
                        status_id=to_int(_nested(row, "status")),
                        status_name=_nested(row, "status", "searchname"),
                        project_id=to_int(_nested(row, "offerprojectbase")),
                        project_name=_nested(row, "offerprojectbase", "searchname"),
                        project_line_id=to_int(_nested(row, "offerprojectline")),
                        project_line_name=_nested(row, "offerprojectline", "searchname"),
                        offerprojectbase_discr=_nested(row, "offerprojectbase", "discr"),
                    )
                )
                inserted += 1

            for employee_id, name in employees.items():
                session.merge(Employee(id=employee_id, name=name))

            session.commit()
            logger.info(
                f"Replaced hours {start_date}..{end_date}: "
                f"deleted {deleted}, inserted {inserted}, skipped {skipped}"
            )
            return {"deleted": deleted, "inserted": inserted, "skipped": skipped}

        except Exception as e:
            session.rollback()
            logger.error(f"Error syncing hours: {e}")
            raise
        finally:
            session.close()

    def run(self, sync_type: str, **kwargs) -> Dict[str, Any]:
        """
        Run one sync and return execution statistics.

        Args:
            sync_type: "projects", "offers", "hours" or "last-three-months"
            **kwargs: ``year`` for "hours", ``today`` for "last-three-months"
        """
        start_time = datetime.now()
        logger.info(f"Starting Gripp {sync_type} sync")

        try:
            if sync_type == "projects":
                counts = self.sync_projects()
            elif sync_type == "offers":
                counts = self.sync_offers()
            elif sync_type == "hours":
                year = kwargs["year"]
                counts = self.sync_hours(date(year, 1, 1), date(year, 12, 31))
            elif sync_type == "last-three-months":
                start, end = three_month_window(kwargs.get("today") or date.today())
                counts = self.sync_hours(start, end)
            else:
                raise ValueError(f"Unknown sync type: {sync_type}")

            end_time = datetime.now()
            duration = (end_time - start_time).total_seconds()

            stats = {
                "success": True,
                "sync_type": sync_type,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "duration_seconds": duration,
                **counts,
            }
            logger.info(f"Gripp {sync_type} sync completed in {duration:.2f}s: {stats}")
            return stats

        except Exception as e:
            end_time = datetime.now()
            duration = (end_time - start_time).total_seconds()
            logger.error(f"Gripp {sync_type} sync failed after {duration:.2f}s: {e}")

            return {
                "success": False,
                "sync_type": sync_type,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "duration_seconds": duration,
                "error": str(e),
            }


def _lock_key(sync_type: str) -> str:
    return "hours" if sync_type in ("hours", "last-three-months") else sync_type


def run_gripp_sync(
    sync_type: str,
    job: Optional[GrippSyncJob] = None,
    lock: Optional[JobLock] = None,
    **kwargs,
) -> Dict[str, Any]:
    """
    Entry point for a guarded Gripp sync.

    Raises:
        SyncInProgressError: If a sync of the same type is already running
    """
    lock_key = _lock_key(sync_type)
    lock = lock or JobLock(SYNC_JOB_NAMES[lock_key])

    if not lock.acquire():
        raise SyncInProgressError(lock_key)

    stats: Dict[str, Any] = {"success": False, "error": "sync did not run"}
    try:
        job = job or GrippSyncJob()
        stats = job.run(sync_type, **kwargs)
        return stats
    except Exception as e:
        logger.error(f"Failed to initialize or run Gripp {sync_type} sync: {e}", exc_info=True)
        stats = {
            "success": False,
            "sync_type": sync_type,
            "error": str(e),
            "start_time": datetime.now().isoformat(),
            "end_time": datetime.now().isoformat(),
            "duration_seconds": 0,
        }
        return stats
    finally:
        lock.release(
            success=bool(stats.get("success")),
            duration_seconds=stats.get("duration_seconds"),
            error=stats.get("error"),
        )


if __name__ == "__main__":
    import argparse

    from config.settings import settings

    logging.basicConfig(
        level=getattr(logging, settings.agent.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Sync Gripp data into the IRIS database")
    parser.add_argument(
        "sync_type", choices=["projects", "offers", "hours", "last-three-months"]
    )
    parser.add_argument("--year", type=int, default=date.today().year)
    args = parser.parse_args()

    from src.utils.database import init_database

    init_database()
    print(f"Running Gripp {args.sync_type} sync manually...")
    result = run_gripp_sync(args.sync_type, year=args.year)
    print(f"\nJob completed: {result}")
