from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import fields as dataclass_fields, replace
from datetime import datetime
from functools import reduce
import logging

from sqlalchemy.orm import Session, sessionmaker

from caseintake.authz import can_import, require
from caseintake.case_store import create_case
from caseintake.config import Settings
from caseintake.csv_parsing import parse_csv
from caseintake.db_models import ImportRecord
from caseintake.errors import CaseConflictError
from caseintake.feature_flags import FeatureFlag, FeatureFlagSet, default_feature_flags, is_enabled
from caseintake.import_store import (
    create_import_record,
    derive_import_status,
    finalize_import_record,
    get_processing_import,
)
from caseintake.schemas import (
    BulkEdit,
    FailedRow,
    Identity,
    ImportBatchResult,
    InvalidRow,
    NormalizedFields,
    RawRow,
    SubmitResult,
    TransformResult,
)
from caseintake.validation import check_case, describe_errors, validate_row


logger = logging.getLogger(__name__)

# Row 1 of an uploaded file is the header.
FIRST_DATA_ROW = 2

BULK_EDIT_FIELDS = tuple(f.name for f in dataclass_fields(NormalizedFields) if f.name != "case_id")


def chunked(items: Sequence[NormalizedFields], size: int) -> list[Sequence[NormalizedFields]]:
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[start : start + size] for start in range(0, len(items), size)]


def apply_bulk_edit(cases: Sequence[NormalizedFields], edit: BulkEdit) -> list[NormalizedFields]:
    if edit.field not in BULK_EDIT_FIELDS:
        raise ValueError(f"{edit.field!r} cannot be bulk edited")

    targets = set(range(len(cases))) if edit.rows is None else set(edit.rows)
    if not targets <= set(range(len(cases))):
        raise ValueError("bulk edit rows must refer to submitted cases")
    return [
        replace(case, **{edit.field: edit.value}) if position in targets else case
        for position, case in enumerate(cases)
    ]


class BatchImporter:
    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker[Session],
        flags: FeatureFlagSet | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.flags = flags if flags is not None else default_feature_flags()

    def parse_upload(self, content: bytes) -> list[RawRow]:
        return parse_csv(content, max_bytes=self.settings.max_upload_bytes)

    def validate_and_transform(self, rows: Sequence[RawRow], *, now: datetime | None = None) -> TransformResult:
        valid: list[NormalizedFields] = []
        invalid: list[InvalidRow] = []

        for row_number, record in enumerate(rows, start=FIRST_DATA_ROW):
            outcome = validate_row(record, row_number, now=now)
            if outcome.is_valid:
                valid.append(outcome.data)
            else:
                invalid.append(InvalidRow(row=row_number, data=record, errors=outcome.errors))

        logger.info("rows validated", extra={"valid_rows": len(valid), "invalid_rows": len(invalid)})
        return TransformResult(valid=valid, invalid=invalid)

    def create_import_record(self, filename: str, total_rows: int, user_id: str) -> ImportRecord:
        with self.session_factory() as db:
            return create_import_record(db, filename=filename, total_rows=total_rows, created_by=user_id)

    def process_batch(
        self,
        cases: Sequence[NormalizedFields],
        user_id: str,
        import_id: str,
        chunk_size: int | None = None,
    ) -> ImportBatchResult:
        chunks = chunked(cases, chunk_size if chunk_size is not None else self.settings.import_chunk_size)
        with self.session_factory() as db:
            get_processing_import(db, import_id)

        workers = max(1, min(self.settings.import_max_concurrency, len(chunks)))

        def run(index: int) -> ImportBatchResult:
            return self._process_chunk(index, chunks[index], user_id=user_id, import_id=import_id)

        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="import-chunk") as executor:
                chunk_results = list(executor.map(run, range(len(chunks))))
        else:
            chunk_results = [run(index) for index in range(len(chunks))]

        result = reduce(ImportBatchResult.merge, chunk_results, ImportBatchResult())

        with self.session_factory() as db:
            finalize_import_record(db, import_id, result)
        return result

    def submit(
        self,
        filename: str,
        cases: Sequence[NormalizedFields],
        identity: Identity,
        *,
        chunk_size: int | None = None,
        bulk_edit: BulkEdit | None = None,
    ) -> SubmitResult:
        require(can_import(identity), f"Role {identity.role!r} is not permitted to import cases")
        if bulk_edit is not None:
            require(
                is_enabled(self.flags, FeatureFlag.BULK_OPERATIONS, identity),
                "Bulk operations are not enabled for this user",
            )
            cases = apply_bulk_edit(cases, bulk_edit)

        record = self.create_import_record(filename, len(cases), identity.user_id)
        result = self.process_batch(cases, identity.user_id, record.id, chunk_size)
        return SubmitResult(import_id=record.id, status=str(derive_import_status(result)), batch=result)

    def _process_chunk(
        self,
        index: int,
        chunk: Sequence[NormalizedFields],
        *,
        user_id: str,
        import_id: str,
    ) -> ImportBatchResult:
        successful: list[str] = []
        failed: list[FailedRow] = []

        try:
            with self.session_factory() as db:
                for row in chunk:
                    # Submitted rows may have been edited after validation.
                    errors = check_case(row)
                    if errors:
                        failed.append(FailedRow(row=row, error=describe_errors(errors)))
                        logger.warning(
                            "invalid case skipped",
                            extra={"import_id": import_id, "chunk_index": index, "case_id": row.case_id},
                        )
                        continue

                    try:
                        case = create_case(db, row, created_by=user_id, import_id=import_id)
                    except CaseConflictError as exc:
                        db.rollback()
                        failed.append(FailedRow(row=row, error=str(exc)))
                        logger.warning(
                            "duplicate case skipped",
                            extra={"import_id": import_id, "chunk_index": index, "case_id": row.case_id},
                        )
                    except Exception as exc:
                        db.rollback()
                        failed.append(FailedRow(row=row, error=str(exc)))
                        logger.warning(
                            "case could not be stored",
                            extra={
                                "import_id": import_id,
                                "chunk_index": index,
                                "case_id": row.case_id,
                                "error": str(exc),
                            },
                        )
                    else:
                        successful.append(case.id)
        except Exception as exc:
            # Rows not attempted before the store went away are reported, not lost.
            logger.exception("import chunk aborted", extra={"import_id": import_id, "chunk_index": index})
            attempted = len(successful) + len(failed)
            failed.extend(FailedRow(row=row, error=str(exc)) for row in chunk[attempted:])

        return ImportBatchResult(
            successful=tuple(successful),
            failed=tuple(failed),
            total_processed=len(chunk),
        )
