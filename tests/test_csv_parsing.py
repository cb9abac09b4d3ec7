import pytest

from caseintake.csv_parsing import parse_csv
from caseintake.errors import MalformedInputError


def test_parses_rows_keyed_by_trimmed_header() -> None:
    content = (
        "case_id, applicant_name, dob, email, phone, category, priority\n"
        'C-1001, "jane  doe", 1990-05-01, JANE@X.COM, 9876543210, tax, \n'
    ).encode("utf-8")

    rows = parse_csv(content)

    assert rows == [
        {
            "case_id": "C-1001",
            "applicant_name": "jane  doe",
            "dob": "1990-05-01",
            "email": "JANE@X.COM",
            "phone": "9876543210",
            "category": "tax",
            "priority": "",
        }
    ]


def test_blank_lines_are_skipped_and_bom_is_tolerated() -> None:
    content = b"\xef\xbb\xbfcase_id,category\nA-1,TAX\n\n,\nA-2,PERMIT\n"

    rows = parse_csv(content)

    assert [row["case_id"] for row in rows] == ["A-1", "A-2"]


def test_short_rows_leave_columns_absent() -> None:
    rows = parse_csv(b"case_id,category,notes\nA-1,TAX\n")

    assert rows == [{"case_id": "A-1", "category": "TAX"}]


def test_empty_file_is_rejected() -> None:
    with pytest.raises(MalformedInputError):
        parse_csv(b"   \n")


def test_non_utf8_file_is_rejected() -> None:
    with pytest.raises(MalformedInputError, match="UTF-8"):
        parse_csv(b"case_id\n\xff\xfe\xfa\n")


def test_oversized_upload_is_rejected() -> None:
    with pytest.raises(MalformedInputError, match="limit"):
        parse_csv(b"case_id\nA-1\n", max_bytes=4)
