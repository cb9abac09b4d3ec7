from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    import_chunk_size: int
    import_max_concurrency: int
    max_upload_bytes: int
    stuck_import_minutes: int
    monitor_interval_minutes: int
    api_host: str
    api_port: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "caseintake"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./caseintake.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        import_chunk_size=int(os.getenv("IMPORT_CHUNK_SIZE", "100")),
        import_max_concurrency=int(os.getenv("IMPORT_MAX_CONCURRENCY", "1")),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
        stuck_import_minutes=int(os.getenv("STUCK_IMPORT_MINUTES", "30")),
        monitor_interval_minutes=int(os.getenv("MONITOR_INTERVAL_MINUTES", "15")),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=int(os.getenv("API_PORT", "8000")),
    )
