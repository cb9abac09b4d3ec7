from dataclasses import asdict
from datetime import datetime, timedelta
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from caseintake.db_models import CaseRecord, ImportRecord, ImportStatus, utc_now
from caseintake.errors import ImportNotFoundError, ImportStateError
from caseintake.schemas import ImportBatchResult


logger = logging.getLogger(__name__)


def derive_import_status(result: ImportBatchResult) -> ImportStatus:
    if not result.failed:
        return ImportStatus.COMPLETED
    if not result.successful:
        return ImportStatus.FAILED
    return ImportStatus.PARTIAL


def error_details_payload(result: ImportBatchResult) -> dict[str, object] | None:
    if not result.failed:
        return None
    return {
        "errors": [
            {"case_id": failed.row.case_id, "row": asdict(failed.row), "error": failed.error}
            for failed in result.failed
        ]
    }


def create_import_record(db: Session, *, filename: str, total_rows: int, created_by: str) -> ImportRecord:
    record = ImportRecord(
        filename=filename,
        total_rows=total_rows,
        created_by=created_by,
        status=ImportStatus.PROCESSING,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "import record created",
        extra={"import_id": record.id, "import_filename": filename, "total_rows": total_rows},
    )
    return record


def get_import_record(db: Session, import_id: str) -> ImportRecord:
    record = db.get(ImportRecord, import_id)
    if record is None:
        raise ImportNotFoundError(f"Import with ID {import_id} not found")
    return record


def get_processing_import(db: Session, import_id: str) -> ImportRecord:
    record = get_import_record(db, import_id)
    if record.status != ImportStatus.PROCESSING:
        # Terminal imports are never reopened.
        raise ImportStateError(f"Import {import_id} is already {record.status}")
    return record


def finalize_import_record(db: Session, import_id: str, result: ImportBatchResult) -> ImportRecord:
    record = get_processing_import(db, import_id)

    status = derive_import_status(result)
    record.status = status
    record.success_count = len(result.successful)
    record.failure_count = len(result.failed)
    record.error_details = error_details_payload(result)
    record.completed_at = utc_now()
    db.commit()

    logger.info(
        "import record finalized",
        extra={
            "import_id": import_id,
            "status": str(status),
            "success_count": record.success_count,
            "failure_count": record.failure_count,
        },
    )
    return record


def list_import_records(db: Session, *, created_by: str | None = None) -> list[tuple[ImportRecord, int]]:
    case_count = (
        select(func.count(CaseRecord.id))
        .where(CaseRecord.import_id == ImportRecord.id)
        .correlate(ImportRecord)
        .scalar_subquery()
    )
    stmt = select(ImportRecord, case_count).order_by(ImportRecord.created_at.desc())
    if created_by is not None:
        stmt = stmt.where(ImportRecord.created_by == created_by)
    return [(record, count) for record, count in db.execute(stmt).all()]


def recent_cases_for_import(db: Session, import_id: str, *, limit: int = 100) -> list[CaseRecord]:
    stmt = (
        select(CaseRecord)
        .where(CaseRecord.import_id == import_id)
        .order_by(CaseRecord.created_at.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def find_stuck_imports(db: Session, *, older_than: timedelta, now: datetime | None = None) -> list[ImportRecord]:
    cutoff = (now or utc_now()) - older_than
    stmt = (
        select(ImportRecord)
        .where(ImportRecord.status == ImportStatus.PROCESSING, ImportRecord.created_at < cutoff)
        .order_by(ImportRecord.created_at)
    )
    return list(db.execute(stmt).scalars().all())
