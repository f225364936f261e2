"""Payload validation helpers shared by the service layer.

Each helper raises ``ValidationError`` with a field-level ``details`` dict so
the app-wide handler can answer 400 with a structured body.
"""

from servicedesk.core.exceptions import ValidationError


def clean_str(value, *, max_len=None):
    if value is None:
        return None
    text = str(value).strip()
    if max_len is not None:
        text = text[:max_len]
    return text


def require_fields(data: dict, fields) -> None:
    """Raise when any of *fields* is missing or blank in *data*."""
    missing = {
        f: "required" for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data.get(f).strip())
    }
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(sorted(missing))}", details=missing,
        )


def check_choice(field: str, value, choices) -> str:
    if value not in choices:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            details={field: f"must be one of {list(choices)}"},
        )
    return value


def check_rating(field: str, value, *, required=True, low=1, high=5):
    """Integer score within [low, high]; None allowed when not required."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", details={field: f"must be {low}-{high}"})
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}", details={field: f"must be {low}-{high}"})
    if score != value and str(score) != str(value).strip():
        raise ValidationError(f"Invalid {field}", details={field: f"must be {low}-{high}"})
    if not low <= score <= high:
        raise ValidationError(f"Invalid {field}", details={field: f"must be {low}-{high}"})
    return score


def as_bool(value, default=False) -> bool:
    """Accept JSON booleans, 0/1 and common string spellings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def optional_id(field: str, value):
    """Positive integer id, or None for null/empty."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", details={field: "must be an integer id"})
    try:
        pk = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}", details={field: "must be an integer id"})
    if pk <= 0:
        raise ValidationError(f"Invalid {field}", details={field: "must be an integer id"})
    return pk
