from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from caseintake.db_models import Base


# Seconds a SQLite writer waits for another chunk's transaction to finish.
SQLITE_BUSY_TIMEOUT = 30


def build_session_factory(database_url: str) -> sessionmaker[Session]:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        # Import chunks may write from worker threads.
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT

    engine = create_engine(database_url, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
