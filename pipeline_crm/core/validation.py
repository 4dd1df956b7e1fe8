"""Input checks run before any request leaves the client."""

import re
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pipeline_crm.core.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Route placeholders and stringified empties that leak in from URLs
_PLACEHOLDER_IDS = {"", ":id", "undefined", "null", "none"}


def is_valid_uuid(value: Any) -> bool:
    """Check for an RFC 4122 (versions 1-5) UUID string."""
    if not isinstance(value, str):
        return False
    if value.lower() in _PLACEHOLDER_IDS or ":" in value:
        return False
    return bool(_UUID_RE.match(value))


def require_uuid(value: Any, resource: str = "Record") -> str:
    """Return the id or raise a field error naming the resource."""
    if not value:
        raise ValidationError(f"{resource} ID is required", field="id")
    if not is_valid_uuid(value):
        raise ValidationError(f"Invalid {resource.lower()} ID format", field="id")
    return str(value)


def require_fields(data: Mapping[str, Any], fields: Iterable[str]) -> None:
    """Raise on the first required field that is missing or empty."""
    for field in fields:
        if not data.get(field):
            raise ValidationError(f"{field} is required", field=field)


def parse_int_or_none(value: Any) -> int | None:
    """Coerce form input to int; blanks and junk become None."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip(), 10)
    except ValueError:
        return None


def parse_decimal_or_none(value: Any) -> Decimal | None:
    """Coerce form input to Decimal; blanks and junk become None."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


def require_percentage(value: Any, field: str) -> int | None:
    """Validate an optional 0-100 integer field (probability, ICP score)."""
    parsed = parse_int_or_none(value)
    if parsed is None:
        return None
    if not 0 <= parsed <= 100:
        raise ValidationError(f"{field} must be between 0 and 100", field=field)
    return parsed


def parse_payload(model: type[M], data: Mapping[str, Any] | BaseModel) -> M:
    """Validate a form payload into its model, raising a field error.

    Args:
        model: Pydantic model class.
        data: Raw mapping or an instance of the model.

    Returns:
        The validated model.

    Raises:
        ValidationError: Naming the first offending field.
    """
    if isinstance(data, model):
        return data
    raw = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        raise ValidationError(message, field=field) from e
