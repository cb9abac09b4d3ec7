from datetime import datetime
import logging
import re

from caseintake.db_models import CaseCategory, CasePriority
from caseintake.normalize import (
    normalize_applicant_name,
    normalize_email,
    normalize_phone,
    validate_date_of_birth,
)
from caseintake.schemas import FieldError, NormalizedFields, RawRow, ValidationOutcome


EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)
E164_PATTERN = re.compile(r"^\+[1-9]\d{0,14}$")

CATEGORIES = tuple(category.value for category in CaseCategory)
PRIORITIES = tuple(priority.value for priority in CasePriority)

logger = logging.getLogger(__name__)


def _clean(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip()


def normalize_row(record: RawRow) -> NormalizedFields:
    category = _clean(record.get("category"))
    priority = _clean(record.get("priority"))
    return NormalizedFields(
        case_id=_clean(record.get("case_id")),
        applicant_name=normalize_applicant_name(record.get("applicant_name")),
        dob=record.get("dob"),
        email=normalize_email(record.get("email")),
        phone=normalize_phone(record.get("phone")),
        category=category.upper() if category else category,
        priority=priority.upper() if priority else CasePriority.LOW.value,
        notes=_clean(record.get("notes")) or None,
    )


def _is_iso_date(value: str) -> bool:
    try:
        datetime.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def check_fields(fields: NormalizedFields) -> list[FieldError]:
    errors: list[FieldError] = []

    for name in ("case_id", "applicant_name"):
        value = getattr(fields, name)
        if not isinstance(value, str) or not value.strip():
            errors.append(FieldError(name, f"{name} should not be empty", value))

    if not fields.dob:
        errors.append(FieldError("dob", "dob should not be empty", fields.dob))
    elif not _is_iso_date(fields.dob):
        errors.append(FieldError("dob", "dob must be a valid ISO 8601 date string", fields.dob))

    if fields.email is not None and not EMAIL_PATTERN.match(fields.email):
        errors.append(FieldError("email", "email must be an email", fields.email))

    if fields.phone is not None and not E164_PATTERN.match(fields.phone):
        errors.append(FieldError("phone", "Phone must be in E.164 format (e.g., +14155552671)", fields.phone))

    if not fields.category:
        errors.append(FieldError("category", "category should not be empty", fields.category))
    elif fields.category not in CATEGORIES:
        errors.append(
            FieldError(
                "category",
                f"category must be one of the following values: {', '.join(CATEGORIES)}",
                fields.category,
            )
        )

    if fields.priority is not None and fields.priority not in PRIORITIES:
        errors.append(
            FieldError(
                "priority",
                f"priority must be one of the following values: {', '.join(PRIORITIES)}",
                fields.priority,
            )
        )

    return errors


def check_case(fields: NormalizedFields, *, now: datetime | None = None) -> list[FieldError]:
    errors = check_fields(fields)

    # Bounds are checked even when the format check already failed, so one
    # row can report two dob errors.
    if fields.dob:
        dob_check = validate_date_of_birth(fields.dob, now=now)
        if not dob_check.is_valid:
            errors.append(FieldError("dob", dob_check.error or "Invalid date format", fields.dob))

    return errors


def describe_errors(errors: list[FieldError]) -> str:
    return "; ".join(f"{error.field}: {error.message}" for error in errors)


def validate_row(record: RawRow, row_number: int, *, now: datetime | None = None) -> ValidationOutcome:
    fields = normalize_row(record)
    errors = check_case(fields, now=now)

    if errors:
        logger.debug("row failed validation", extra={"row": row_number, "error_count": len(errors)})

    return ValidationOutcome(data=fields, errors=tuple(errors))
