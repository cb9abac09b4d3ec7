from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from caseintake.config import Settings
from caseintake.database import build_session_factory
from caseintake.importer import BatchImporter
from caseintake.schemas import NormalizedFields


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_name="caseintake",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        log_level="INFO",
        import_chunk_size=100,
        import_max_concurrency=1,
        max_upload_bytes=1024 * 1024,
        stuck_import_minutes=30,
        monitor_interval_minutes=15,
        api_host="127.0.0.1",
        api_port=8000,
    )


@pytest.fixture()
def session_factory(test_settings: Settings) -> sessionmaker[Session]:
    return build_session_factory(test_settings.database_url)


@pytest.fixture()
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture()
def importer(test_settings: Settings, session_factory: sessionmaker[Session]) -> BatchImporter:
    return BatchImporter(test_settings, session_factory)


def make_case(case_id: str, **overrides: str | None) -> NormalizedFields:
    values: dict[str, str | None] = {
        "case_id": case_id,
        "applicant_name": "Jane Doe",
        "dob": "1990-05-01",
        "email": "jane@example.com",
        "phone": "+14155552671",
        "category": "TAX",
        "priority": "LOW",
        "notes": None,
    }
    values.update(overrides)
    return NormalizedFields(**values)


@pytest.fixture()
def case_factory():
    return make_case
