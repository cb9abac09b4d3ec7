from datetime import date

import pytest
from sqlalchemy import select

from caseintake.case_store import (
    count_cases_for_import,
    create_case,
    find_case_by_identifier,
    get_case,
    update_case,
)
from caseintake.db_models import CaseHistory, CaseStatus
from caseintake.errors import CaseConflictError, CaseNotFoundError


def test_create_case_stores_fields_and_history(db, case_factory) -> None:
    case = create_case(db, case_factory("S-1", priority="HIGH"), created_by="user-1")

    assert case.dob == date(1990, 5, 1)
    assert case.status == CaseStatus.PENDING
    assert case.priority == "HIGH"
    assert case.import_id is None
    assert find_case_by_identifier(db, "S-1").id == case.id

    history = db.execute(select(CaseHistory).where(CaseHistory.case_pk == case.id)).scalars().all()
    assert [(entry.action, entry.metadata_json) for entry in history] == [("CREATED", {"source": "manual"})]


def test_duplicate_identifier_raises_conflict(db, case_factory) -> None:
    create_case(db, case_factory("S-2"), created_by="user-1")

    with pytest.raises(CaseConflictError, match="S-2"):
        create_case(db, case_factory("S-2", applicant_name="Someone Else"), created_by="user-2")


def test_update_case_appends_one_entry_per_changed_field(db, case_factory) -> None:
    case = create_case(db, case_factory("S-3"), created_by="user-1")

    update_case(db, case.id, {"status": "IN_PROGRESS", "priority": "LOW", "notes": "called applicant"})

    entries = db.execute(
        select(CaseHistory).where(CaseHistory.case_pk == case.id, CaseHistory.action == "UPDATED")
    ).scalars().all()
    changes = {entry.field: (entry.old_value, entry.new_value) for entry in entries}
    assert changes == {
        "status": ("PENDING", "IN_PROGRESS"),
        "notes": (None, "called applicant"),
    }


def test_update_case_rejects_unknown_fields(db, case_factory) -> None:
    case = create_case(db, case_factory("S-4"), created_by="user-1")

    with pytest.raises(ValueError):
        update_case(db, case.id, {"case_id": "S-5"})


def test_get_case_raises_for_missing_case(db) -> None:
    with pytest.raises(CaseNotFoundError):
        get_case(db, "missing")


def test_count_cases_for_import_is_zero_for_unknown_import(db) -> None:
    assert count_cases_for_import(db, "missing") == 0
