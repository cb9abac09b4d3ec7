from dataclasses import dataclass, field
from typing import Any


RawRow = dict[str, str]


@dataclass(frozen=True)
class NormalizedFields:
    case_id: str | None
    applicant_name: str | None
    dob: str | None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    priority: str | None = "LOW"
    notes: str | None = None


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    value: Any


@dataclass(frozen=True)
class ValidationOutcome:
    data: NormalizedFields
    errors: tuple[FieldError, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class FixSuggestion:
    field: str
    original: str
    suggested: str | None
    type: str


@dataclass(frozen=True)
class InvalidRow:
    row: int
    data: RawRow
    errors: tuple[FieldError, ...]


@dataclass(frozen=True)
class TransformResult:
    valid: list[NormalizedFields]
    invalid: list[InvalidRow]


@dataclass(frozen=True)
class FailedRow:
    row: NormalizedFields
    error: str


@dataclass(frozen=True)
class ImportBatchResult:
    successful: tuple[str, ...] = ()
    failed: tuple[FailedRow, ...] = ()
    total_processed: int = 0

    def merge(self, other: "ImportBatchResult") -> "ImportBatchResult":
        return ImportBatchResult(
            successful=self.successful + other.successful,
            failed=self.failed + other.failed,
            total_processed=self.total_processed + other.total_processed,
        )


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


@dataclass(frozen=True)
class SubmitResult:
    import_id: str
    status: str
    batch: ImportBatchResult = field(default_factory=ImportBatchResult)


@dataclass(frozen=True)
class DateCheck:
    is_valid: bool
    error: str | None = None


@dataclass(frozen=True)
class BulkEdit:
    field: str
    value: str | None
    # Positions in the submitted case list; None applies to every row.
    rows: tuple[int, ...] | None = None
