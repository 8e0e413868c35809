"""
Validation utilities
"""
import re
from datetime import date


_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Longest search string accepted by list filters
MAX_SEARCH_LENGTH = 500


def validate_rut(rut: str | None) -> bool:
    """
    Проверить чилийский RUT (модуль 11)

    Точки и дефис игнорируются; контрольная цифра может быть K.

    Example:
        >>> validate_rut("12.345.678-5")
        True
        >>> validate_rut("12.345.678-9")
        False
    """
    if not rut:
        return True
    cleaned = rut.replace(".", "").replace("-", "").strip()
    if len(cleaned) < 2:
        return False
    body, verifier = cleaned[:-1], cleaned[-1].upper()
    if not re.fullmatch(r"\d{1,8}", body):
        return False
    if not re.fullmatch(r"[\dK]", verifier):
        return False

    total = 0
    multiplier = 2
    for digit in reversed(body):
        total += int(digit) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1
    remainder = 11 - (total % 11)
    if remainder == 11:
        expected = "0"
    elif remainder == 10:
        expected = "K"
    else:
        expected = str(remainder)
    return verifier == expected


def parse_iso_date(value: str | date | None) -> date | None:
    """
    Разобрать дату в формате AAAA-MM-DD

    Returns:
        date или None, если строка не является реальной календарной датой
    """
    if isinstance(value, date):
        return value
    if not value:
        return None
    match = _ISO_DATE_RE.match(str(value))
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def is_valid_email(value: str | None) -> bool:
    return bool(value) and _EMAIL_RE.match(value) is not None


def is_positive_int(value) -> bool:
    """True for int > 0; bool is rejected even though it subclasses int."""
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def normalize_search(value: str | None) -> str:
    """Trim and cut a free-text search term."""
    return (value or "").strip()[:MAX_SEARCH_LENGTH]


def escape_like(value: str) -> str:
    """
    Экранировать спецсимволы LIKE (`\\`, `%`, `_`)

    Используется вместе с `ilike(..., escape="\\\\")`.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
