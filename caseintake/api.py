"""
HTTP endpoints for CSV case imports.

Identity arrives in trusted ``X-User-Id`` / ``X-User-Role`` headers set by the
authentication gateway in front of this service.
"""

from collections.abc import Generator
import logging

from fastapi import APIRouter, Depends, FastAPI, File, Header, HTTPException, UploadFile, status
from sqlalchemy.orm import Session, sessionmaker

from caseintake.api_schemas import (
    CaseData,
    CaseRecordResponse,
    FailedRowResponse,
    FieldErrorResponse,
    FixSuggestionResponse,
    ImportDetailResponse,
    ImportSummaryResponse,
    InvalidRowResponse,
    SubmitRequest,
    SubmitResponse,
    UploadResponse,
)
from caseintake.authz import can_import, can_view_import, import_owner_filter
from caseintake.case_store import count_cases_for_import
from caseintake.config import Settings
from caseintake.db_models import ImportRecord
from caseintake.errors import AuthorizationError, ImportNotFoundError, MalformedInputError
from caseintake.feature_flags import FeatureFlag, FeatureFlagSet, all_flags, is_enabled
from caseintake.import_store import get_import_record, list_import_records, recent_cases_for_import
from caseintake.importer import BatchImporter
from caseintake.normalize import auto_fix_suggestions
from caseintake.schemas import Identity


logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")

    identity = Identity(user_id=x_user_id.strip(), role=x_user_role.strip().upper())
    if not can_import(identity):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Role is not permitted to import cases.")
    return identity


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    if not filename.endswith(".csv") and content_type not in CSV_CONTENT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only CSV files are allowed.")
    return file


def _import_summary(record: ImportRecord, case_count: int) -> ImportSummaryResponse:
    return ImportSummaryResponse(
        id=record.id,
        filename=record.filename,
        total_rows=record.total_rows,
        success_count=record.success_count,
        failure_count=record.failure_count,
        status=record.status,
        created_by=record.created_by,
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
        case_count=case_count,
    )


def build_router(importer: BatchImporter) -> APIRouter:
    router = APIRouter()
    flags = importer.flags

    def db_session() -> Generator[Session, None, None]:
        with importer.session_factory() as db:
            yield db

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/feature-flags")
    def feature_flags(identity: Identity = Depends(get_identity)) -> dict[str, bool]:
        return all_flags(flags, identity)

    @router.post("/imports/upload", response_model=UploadResponse)
    def upload_csv(
        file: UploadFile = Depends(get_csv_upload),
        identity: Identity = Depends(get_identity),
    ) -> UploadResponse:
        try:
            rows = importer.parse_upload(file.file.read())
        except MalformedInputError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        finally:
            file.file.close()

        result = importer.validate_and_transform(rows)
        with_suggestions = is_enabled(flags, FeatureFlag.ADVANCED_VALIDATION, identity)
        logger.info(
            "csv upload validated",
            extra={"upload_filename": file.filename, "user_id": identity.user_id, "total_rows": len(rows)},
        )

        return UploadResponse(
            filename=file.filename or "",
            total_rows=len(rows),
            valid_rows=len(result.valid),
            invalid_rows=len(result.invalid),
            valid_data=[CaseData.model_validate(fields) for fields in result.valid],
            errors=[
                InvalidRowResponse(
                    row=invalid.row,
                    data=invalid.data,
                    errors=[FieldErrorResponse.model_validate(error) for error in invalid.errors],
                    suggestions=(
                        [FixSuggestionResponse.model_validate(s) for s in auto_fix_suggestions(invalid.data)]
                        if with_suggestions
                        else None
                    ),
                )
                for invalid in result.invalid
            ],
        )

    @router.post("/imports/submit", response_model=SubmitResponse)
    def submit_import(body: SubmitRequest, identity: Identity = Depends(get_identity)) -> SubmitResponse:
        bulk_edit = body.bulk_edit.to_edit() if body.bulk_edit is not None else None
        try:
            submitted = importer.submit(
                body.filename,
                [case.to_fields() for case in body.cases],
                identity,
                bulk_edit=bulk_edit,
            )
        except AuthorizationError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        batch = submitted.batch
        return SubmitResponse(
            import_id=submitted.import_id,
            status=submitted.status,
            successful=list(batch.successful),
            failed=[
                FailedRowResponse(row=CaseData.model_validate(failed.row), error=failed.error)
                for failed in batch.failed
            ],
            total_processed=batch.total_processed,
        )

    @router.get("/imports", response_model=list[ImportSummaryResponse])
    def list_imports(
        identity: Identity = Depends(get_identity),
        db: Session = Depends(db_session),
    ) -> list[ImportSummaryResponse]:
        records = list_import_records(db, created_by=import_owner_filter(identity))
        return [_import_summary(record, count) for record, count in records]

    @router.get("/imports/{import_id}", response_model=ImportDetailResponse)
    def get_import(
        import_id: str,
        identity: Identity = Depends(get_identity),
        db: Session = Depends(db_session),
    ) -> ImportDetailResponse:
        try:
            record = get_import_record(db, import_id)
        except ImportNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

        if not can_view_import(identity, record):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this import.")

        cases = recent_cases_for_import(db, import_id)
        summary = _import_summary(record, count_cases_for_import(db, import_id))
        return ImportDetailResponse(
            **summary.model_dump(),
            error_details=record.error_details,
            cases=[CaseRecordResponse.model_validate(case) for case in cases],
        )

    return router


def create_app(
    settings: Settings,
    session_factory: sessionmaker[Session],
    flags: FeatureFlagSet | None = None,
) -> FastAPI:
    app = FastAPI(title=settings.app_name)
    importer = BatchImporter(settings, session_factory, flags)
    app.include_router(build_router(importer))
    return app
