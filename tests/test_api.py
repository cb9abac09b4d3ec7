from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from caseintake.api import create_app
from caseintake.case_store import create_case


ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}
OPERATOR_HEADERS = {"X-User-Id": "operator-1", "X-User-Role": "operator"}

CSV_BODY = (
    "case_id, applicant_name, dob, email, phone, category, priority\n"
    'C-1001, "jane  doe", 1990-05-01, JANE@X.COM, 9876543210, tax, \n'
    "C-1002, john smith, 1899-01-01, not-an-email, 9876543210, housing, low\n"
)


@pytest.fixture()
def client(test_settings, session_factory) -> Generator[TestClient, None, None]:
    with TestClient(create_app(test_settings, session_factory)) as test_client:
        yield test_client


def upload(client: TestClient, headers: dict[str, str], body: str = CSV_BODY, name: str = "cases.csv"):
    return client.post(
        "/imports/upload",
        headers=headers,
        files={"file": (name, body.encode("utf-8"), "text/csv")},
    )


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_identity_are_rejected(client: TestClient) -> None:
    assert client.get("/imports").status_code == 401
    assert client.get("/imports", headers={"X-User-Id": "x", "X-User-Role": "GUEST"}).status_code == 403


def test_upload_returns_normalized_rows_and_errors(client: TestClient) -> None:
    response = upload(client, OPERATOR_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["filename"] == "cases.csv"
    assert body["totalRows"] == 2
    assert body["validRows"] == 1
    assert body["invalidRows"] == 1
    assert body["validData"] == [
        {
            "caseId": "C-1001",
            "applicantName": "Jane Doe",
            "dob": "1990-05-01",
            "email": "jane@x.com",
            "phone": "+19876543210",
            "category": "TAX",
            "priority": "LOW",
            "notes": None,
        }
    ]
    invalid = body["errors"][0]
    assert invalid["row"] == 3
    assert invalid["data"]["case_id"] == "C-1002"
    assert {error["field"] for error in invalid["errors"]} == {"dob", "email", "category"}
    assert invalid["suggestions"] is None


def test_upload_includes_suggestions_for_admins(client: TestClient) -> None:
    body = upload(client, ADMIN_HEADERS).json()

    suggestions = body["errors"][0]["suggestions"]
    assert {suggestion["field"] for suggestion in suggestions} == {"applicant_name", "phone"}


def test_upload_rejects_non_csv_and_malformed_files(client: TestClient) -> None:
    not_csv = client.post(
        "/imports/upload",
        headers=OPERATOR_HEADERS,
        files={"file": ("cases.txt", b"hello", "text/plain")},
    )
    malformed = upload(client, OPERATOR_HEADERS, body="")

    assert not_csv.status_code == 400
    assert malformed.status_code == 400
    assert "Failed to parse CSV file" in malformed.json()["detail"]


def test_submit_reports_partial_failure(client: TestClient, db, case_factory) -> None:
    create_case(db, case_factory("C-2"), created_by="someone")
    cases = [
        {"caseId": f"C-{number}", "applicantName": "Jane Doe", "dob": "1990-05-01", "category": "TAX"}
        for number in range(1, 4)
    ]

    response = client.post("/imports/submit", headers=OPERATOR_HEADERS, json={"filename": "cases.csv", "cases": cases})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "PARTIAL"
    assert body["totalProcessed"] == 3
    assert len(body["successful"]) == 2
    assert body["failed"] == [
        {
            "row": {
                "caseId": "C-2",
                "applicantName": "Jane Doe",
                "dob": "1990-05-01",
                "email": None,
                "phone": None,
                "category": "TAX",
                "priority": "LOW",
                "notes": None,
            },
            "error": "Case with ID C-2 already exists",
        }
    ]

    detail = client.get(f"/imports/{body['importId']}", headers=OPERATOR_HEADERS).json()
    assert detail["status"] == "PARTIAL"
    assert detail["successCount"] == 2
    assert detail["failureCount"] == 1
    assert detail["caseCount"] == 2
    assert sorted(case["caseId"] for case in detail["cases"]) == ["C-1", "C-3"]
    assert detail["errorDetails"]["errors"][0]["error"] == "Case with ID C-2 already exists"


def test_operators_only_see_their_own_imports(client: TestClient) -> None:
    payload = {"filename": "cases.csv", "cases": []}
    mine = client.post("/imports/submit", headers=OPERATOR_HEADERS, json=payload).json()
    theirs = client.post(
        "/imports/submit",
        headers={"X-User-Id": "operator-2", "X-User-Role": "OPERATOR"},
        json=payload,
    ).json()

    listed = client.get("/imports", headers=OPERATOR_HEADERS).json()
    assert [item["id"] for item in listed] == [mine["importId"]]
    assert len(client.get("/imports", headers=ADMIN_HEADERS).json()) == 2

    assert client.get(f"/imports/{theirs['importId']}", headers=OPERATOR_HEADERS).status_code == 403
    assert client.get(f"/imports/{theirs['importId']}", headers=ADMIN_HEADERS).status_code == 200
    assert client.get("/imports/missing", headers=ADMIN_HEADERS).status_code == 404


def test_feature_flags_are_evaluated_for_caller(client: TestClient) -> None:
    admin = client.get("/feature-flags", headers=ADMIN_HEADERS).json()
    operator = client.get("/feature-flags", headers=OPERATOR_HEADERS).json()

    assert admin["advanced_validation"] is True
    assert operator["advanced_validation"] is False


def test_submit_bulk_edit_is_limited_to_enabled_users(client: TestClient) -> None:
    cases = [
        {"caseId": f"B-{number}", "applicantName": "Jane Doe", "dob": "1990-05-01", "category": "TAX"}
        for number in range(1, 3)
    ]
    payload = {
        "filename": "cases.csv",
        "cases": cases,
        "bulkEdit": {"field": "priority", "value": "HIGH", "rows": [1]},
    }

    denied = client.post("/imports/submit", headers=OPERATOR_HEADERS, json=payload)
    applied = client.post("/imports/submit", headers=ADMIN_HEADERS, json=payload)
    bad_field = client.post(
        "/imports/submit",
        headers=ADMIN_HEADERS,
        json={**payload, "bulkEdit": {"field": "caseId", "value": "B-9"}},
    )

    assert denied.status_code == 403
    assert applied.status_code == 200
    detail = client.get(f"/imports/{applied.json()['importId']}", headers=ADMIN_HEADERS).json()
    assert {case["caseId"]: case["priority"] for case in detail["cases"]} == {"B-1": "LOW", "B-2": "HIGH"}
    assert bad_field.status_code == 400


def test_submit_rejects_rows_edited_into_invalid_values(client: TestClient) -> None:
    cases = [{"caseId": "V-1", "applicantName": "Jane Doe", "dob": "1990-05-01", "category": "BOGUS"}]

    body = client.post("/imports/submit", headers=OPERATOR_HEADERS, json={"filename": "cases.csv", "cases": cases}).json()

    assert body["status"] == "FAILED"
    assert body["failed"][0]["error"].startswith("category: ")
