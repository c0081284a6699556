"""Input validation and parsing helpers shared by services."""
import re
import unicodedata
from datetime import datetime, date, time, timezone
from typing import Any, Iterable, List, Optional, Tuple

from tenant_erp.exceptions import BadRequest, ValidationFailed


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
PHONE_PATTERN = r'^\+?[0-9][0-9\s-]{6,18}$'
PINCODE_PATTERN = r'^[0-9]{6}$'
KEY_PATTERN = r'^[a-z][a-z0-9_]*$'


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches naive DateTime columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    return isinstance(email, str) and re.match(EMAIL_PATTERN, email) is not None


def is_valid_phone(phone: str) -> bool:
    return isinstance(phone, str) and re.match(PHONE_PATTERN, phone.strip()) is not None


def is_valid_key(key: str) -> bool:
    """Catalog keys are lower snake_case."""
    return isinstance(key, str) and re.match(KEY_PATTERN, key) is not None


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from a display name."""
    slug = unicodedata.normalize('NFKD', name)
    slug = slug.encode('ascii', 'ignore').decode('ascii')
    slug = slug.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    return slug[:200]


def missing_fields(data: dict, fields: Iterable[str]) -> List[str]:
    """Return one error per required field that is absent or blank."""
    errors = []
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"{field.replace('_', ' ').capitalize()} is required")
    return errors


def non_text_fields(data: dict, fields: Iterable[str]) -> List[str]:
    """Return one error per field that is present but not a JSON string."""
    errors = []
    for field in fields:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"{field.replace('_', ' ').capitalize()} must be text")
    return errors


def clean_str(value: Any) -> Optional[str]:
    """Strip strings; turn blanks into None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_id(value: Any, name: str = 'id') -> int:
    """Parse a numeric identifier or raise BadRequest."""
    if isinstance(value, bool):
        raise BadRequest(f"Invalid {name}")
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid {name}")
    if parsed <= 0:
        raise BadRequest(f"Invalid {name}")
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD; returns None when invalid."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def parse_time(value: Any) -> Optional[time]:
    """Parse HH:MM or HH:MM:SS; returns None when invalid."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return None
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    return None


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_pagination(args, default_limit: int = 50, max_limit: int = 200) -> Tuple[int, int]:
    """Read limit/offset query parameters with sane bounds."""
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    try:
        offset = int(args.get('offset', 0))
    except (TypeError, ValueError):
        offset = 0
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    """Validate that value is one of choices."""
    choices = list(choices)
    if value not in choices:
        raise ValidationFailed([f"Invalid {field}. Must be one of: {', '.join(choices)}"])
    return value
