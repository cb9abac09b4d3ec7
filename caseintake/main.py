import argparse
import logging
from pathlib import Path
import sys

import uvicorn

from caseintake.api import create_app
from caseintake.config import get_settings
from caseintake.database import build_session_factory
from caseintake.db_models import ImportStatus, UserRole
from caseintake.errors import AuthorizationError, MalformedInputError
from caseintake.importer import BatchImporter
from caseintake.schemas import Identity
from caseintake.scheduler import start_monitor


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate and import case records from CSV")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="validate and import one CSV file")
    import_parser.add_argument("--file", required=True, help="Path to the CSV file")
    import_parser.add_argument("--user-id", required=True, help="Identifier of the submitting user")
    import_parser.add_argument(
        "--role",
        default=UserRole.OPERATOR.value,
        help="Role of the submitting user",
    )
    import_parser.add_argument("--chunk-size", type=int, default=None, help="Rows persisted per chunk")

    subparsers.add_parser("serve", help="run the HTTP API")

    monitor_parser = subparsers.add_parser("monitor", help="start the stuck import monitor")
    monitor_parser.add_argument("--run-now", action="store_true", help="also check once immediately")

    return parser.parse_args()


def run_import(importer: BatchImporter, args: argparse.Namespace) -> int:
    path = Path(args.file)
    identity = Identity(user_id=args.user_id, role=args.role.upper())

    try:
        rows = importer.parse_upload(path.read_bytes())
    except (OSError, MalformedInputError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    transformed = importer.validate_and_transform(rows)
    for invalid in transformed.invalid:
        for error in invalid.errors:
            print(f"row={invalid.row} field={error.field} message={error.message} value={error.value!r}")

    try:
        submitted = importer.submit(path.name, transformed.valid, identity, chunk_size=args.chunk_size)
    except AuthorizationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(
        "import_id={import_id} status={status} total={total} successful={successful} failed={failed} invalid={invalid}".format(
            import_id=submitted.import_id,
            status=submitted.status,
            total=len(rows),
            successful=len(submitted.batch.successful),
            failed=len(submitted.batch.failed),
            invalid=len(transformed.invalid),
        )
    )
    return 1 if submitted.status == ImportStatus.FAILED else 0


def main() -> None:
    args = parse_args()
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    session_factory = build_session_factory(settings.database_url)
    if args.command == "monitor":
        start_monitor(settings, session_factory, run_now=args.run_now)
        return

    if args.command == "serve":
        uvicorn.run(create_app(settings, session_factory), host=settings.api_host, port=settings.api_port)
        return

    raise SystemExit(run_import(BatchImporter(settings, session_factory), args))


if __name__ == "__main__":
    main()
