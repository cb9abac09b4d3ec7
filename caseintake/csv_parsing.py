import csv
import io

from caseintake.errors import MalformedInputError
from caseintake.schemas import RawRow


def parse_csv(content: bytes, *, max_bytes: int | None = None) -> list[RawRow]:
    if max_bytes is not None and len(content) > max_bytes:
        raise MalformedInputError(f"CSV file exceeds the {max_bytes} byte upload limit")

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedInputError("Failed to parse CSV file: file must be UTF-8 encoded") from exc

    if not text.strip():
        raise MalformedInputError("Failed to parse CSV file: file is empty")

    rows: list[RawRow] = []
    try:
        reader = csv.reader(io.StringIO(text, newline=""), skipinitialspace=True)
        header = next(reader, None)
        columns = [column.strip() for column in header or []]
        if not any(columns):
            raise MalformedInputError("Failed to parse CSV file: header row is missing")

        for cells in reader:
            values = [cell.strip() for cell in cells]
            if not any(values):
                continue
            # Short rows leave trailing columns absent; extra cells are dropped.
            rows.append({column: value for column, value in zip(columns, values) if column})
    except csv.Error as exc:
        raise MalformedInputError(f"Failed to parse CSV file: {exc}") from exc

    return rows
