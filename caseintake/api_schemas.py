"""
Request and response models for the import HTTP endpoints.

JSON keys are camelCase on the wire; Python attributes stay snake_case.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_snake

from caseintake.schemas import BulkEdit, NormalizedFields


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CaseData(ApiModel):
    """
    One normalized case row, as produced by validation or edited by a user.
    """

    case_id: str | None = None
    applicant_name: str | None = None
    dob: str | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    priority: str | None = None
    notes: str | None = None

    def to_fields(self) -> NormalizedFields:
        return NormalizedFields(
            case_id=self.case_id,
            applicant_name=self.applicant_name,
            dob=self.dob,
            email=self.email,
            phone=self.phone,
            category=self.category,
            priority=self.priority or "LOW",
            notes=self.notes,
        )


class FieldErrorResponse(ApiModel):
    field: str
    message: str
    value: Any = None


class FixSuggestionResponse(ApiModel):
    field: str
    original: str
    suggested: str | None = None
    type: str


class InvalidRowResponse(ApiModel):
    row: int = Field(..., ge=2)
    data: dict[str, str]
    errors: list[FieldErrorResponse]
    suggestions: list[FixSuggestionResponse] | None = None


class UploadResponse(ApiModel):
    filename: str
    total_rows: int = Field(..., ge=0)
    valid_rows: int = Field(..., ge=0)
    invalid_rows: int = Field(..., ge=0)
    valid_data: list[CaseData]
    errors: list[InvalidRowResponse]


class BulkEditRequest(ApiModel):
    field: str
    value: str | None = None
    rows: list[int] | None = None

    def to_edit(self) -> BulkEdit:
        rows = tuple(self.rows) if self.rows is not None else None
        return BulkEdit(field=to_snake(self.field), value=self.value, rows=rows)


class SubmitRequest(ApiModel):
    filename: str = Field(..., min_length=1)
    cases: list[CaseData]
    bulk_edit: BulkEditRequest | None = None


class FailedRowResponse(ApiModel):
    row: CaseData
    error: str


class SubmitResponse(ApiModel):
    import_id: str
    status: str
    successful: list[str]
    failed: list[FailedRowResponse]
    total_processed: int = Field(..., ge=0)


class CaseRecordResponse(ApiModel):
    id: str
    case_id: str
    applicant_name: str
    dob: date
    email: str | None = None
    phone: str | None = None
    category: str
    priority: str
    status: str
    notes: str | None = None
    created_by: str
    created_at: datetime


class ImportSummaryResponse(ApiModel):
    id: str
    filename: str
    total_rows: int
    success_count: int
    failure_count: int
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    case_count: int = 0


class ImportDetailResponse(ImportSummaryResponse):
    error_details: dict[str, Any] | None = None
    cases: list[CaseRecordResponse] = Field(default_factory=list)
