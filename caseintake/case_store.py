from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from caseintake.db_models import CaseHistory, CasePriority, CaseRecord, CaseStatus
from caseintake.errors import CaseConflictError, CaseNotFoundError
from caseintake.normalize import parse_date
from caseintake.schemas import NormalizedFields


UPDATABLE_FIELDS = (
    "applicant_name",
    "dob",
    "email",
    "phone",
    "category",
    "priority",
    "status",
    "notes",
)


def find_case_by_identifier(db: Session, case_id: str) -> CaseRecord | None:
    stmt = select(CaseRecord).where(CaseRecord.case_id == case_id)
    return db.execute(stmt).scalar_one_or_none()


def get_case(db: Session, case_pk: str) -> CaseRecord:
    case = db.get(CaseRecord, case_pk)
    if case is None:
        raise CaseNotFoundError(f"Case with ID {case_pk} not found")
    return case


def create_history_entry(
    db: Session,
    *,
    case_pk: str,
    action: str,
    field: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> CaseHistory:
    entry = CaseHistory(
        case_pk=case_pk,
        action=action,
        field=field,
        old_value=old_value,
        new_value=new_value,
        metadata_json=metadata,
    )
    db.add(entry)
    db.commit()
    return entry


def create_case(
    db: Session,
    fields: NormalizedFields,
    *,
    created_by: str,
    import_id: str | None = None,
) -> CaseRecord:
    if fields.case_id and find_case_by_identifier(db, fields.case_id) is not None:
        raise CaseConflictError(fields.case_id)

    dob = parse_date(fields.dob)
    if dob is None:
        raise ValueError(f"Invalid date of birth: {fields.dob!r}")

    case = CaseRecord(
        case_id=fields.case_id,
        applicant_name=fields.applicant_name,
        dob=dob.date(),
        email=fields.email,
        phone=fields.phone,
        category=fields.category,
        priority=fields.priority or CasePriority.LOW,
        status=CaseStatus.PENDING,
        notes=fields.notes,
        created_by=created_by,
        import_id=import_id,
    )
    db.add(case)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # A concurrent submission may win the race after the existence check.
        if fields.case_id and find_case_by_identifier(db, fields.case_id) is not None:
            raise CaseConflictError(fields.case_id) from exc
        raise

    db.refresh(case)
    create_history_entry(
        db,
        case_pk=case.id,
        action="CREATED",
        metadata={"source": "import" if import_id else "manual"},
    )
    return case


def update_case(db: Session, case_pk: str, changes: dict[str, Any]) -> CaseRecord:
    case = get_case(db, case_pk)

    changed: list[tuple[str, Any, Any]] = []
    for field, new_value in changes.items():
        if field not in UPDATABLE_FIELDS:
            raise ValueError(f"Field {field!r} cannot be updated")
        if field == "dob" and isinstance(new_value, str):
            parsed = parse_date(new_value)
            if parsed is None:
                raise ValueError(f"Invalid date of birth: {new_value!r}")
            new_value = parsed.date()
        old_value = getattr(case, field)
        if old_value != new_value:
            setattr(case, field, new_value)
            changed.append((field, old_value, new_value))
    db.commit()

    for field, old_value, new_value in changed:
        create_history_entry(
            db,
            case_pk=case.id,
            action="UPDATED",
            field=field,
            old_value=str(old_value) if old_value is not None else None,
            new_value=str(new_value) if new_value is not None else None,
        )
    return case


def count_cases_for_import(db: Session, import_id: str) -> int:
    stmt = select(func.count()).select_from(CaseRecord).where(CaseRecord.import_id == import_id)
    return db.execute(stmt).scalar_one()
