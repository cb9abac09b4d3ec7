from datetime import UTC, datetime
import re

from caseintake.schemas import DateCheck, FixSuggestion, RawRow


DATE_FORMATS: tuple[str, ...] = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d %B %Y",
    "%B %d, %Y",
)

MIN_DOB = datetime(1900, 1, 1, tzinfo=UTC)

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")


def _capitalize(part: str) -> str:
    return part[:1].upper() + part[1:].lower()


def normalize_applicant_name(name: str | None) -> str | None:
    if not name:
        return name

    words = _WHITESPACE.sub(" ", name.strip()).split(" ")
    # Hyphenated surnames are capitalized on both sides of the hyphen.
    return " ".join("-".join(_capitalize(part) for part in word.split("-")) for word in words)


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone: str | None) -> str | None:
    if not phone:
        return None

    stripped = phone.strip()
    digits = _NON_DIGIT.sub("", stripped)
    if stripped.startswith("+"):
        return "+" + digits

    # Country code heuristics: these cannot tell apart other countries with
    # the same digit length, such numbers stay bare and fail E.164 validation.
    if len(digits) == 10:
        return "+1" + digits
    if len(digits) == 11 and digits.startswith("1"):
        return "+" + digits
    if len(digits) == 12 and digits.startswith("91"):
        return "+" + digits
    return digits


def parse_date(value: str | None) -> datetime | None:
    if not value or not value.strip():
        return None

    text = value.strip()
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def validate_date_of_birth(dob: str | None, *, now: datetime | None = None) -> DateCheck:
    parsed = parse_date(dob)
    if parsed is None:
        return DateCheck(False, "Invalid date format")

    if parsed < MIN_DOB:
        return DateCheck(False, "Date of birth cannot be before 1900")

    current = now or datetime.now(UTC)
    if parsed > current:
        return DateCheck(False, "Date of birth cannot be in the future")

    return DateCheck(True)


def auto_fix_suggestions(record: RawRow) -> list[FixSuggestion]:
    suggestions: list[FixSuggestion] = []
    normalizers = (
        ("applicant_name", normalize_applicant_name, "normalize_name"),
        ("email", normalize_email, "normalize_email"),
        ("phone", normalize_phone, "normalize_phone"),
    )
    for column, normalizer, kind in normalizers:
        original = record.get(column)
        if not original:
            continue
        suggested = normalizer(original)
        if suggested != original:
            suggestions.append(FixSuggestion(field=column, original=original, suggested=suggested, type=kind))
    return suggestions
