"""Input checks shared by the stores."""

from collections.abc import Iterable, Mapping
from typing import Any

from entity_graph.errors import ValidationError


def require_text(value: Any, name: str) -> str:
    """Return ``value`` if it is a non-blank string, else raise ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def optional_text(value: Any, name: str) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def optional_int(value: Any, name: str) -> int | None:
    # bool is an int subclass but never a valid priority
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValidationError(f"{name} must be an integer")
    return value


def require_mapping(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(f"{name} must be a mapping")
    return value


def require_list(value: Any, name: str) -> list[Any]:
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise ValidationError(f"{name} must be a list")
    return list(value)


def reject_unknown(fields: Iterable[Any], allowed: Iterable[str], name: str) -> None:
    fields = list(fields)
    if not all(isinstance(field, str) for field in fields):
        raise ValidationError(f"{name} field names must be strings")
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown {name} field(s): {', '.join(unknown)}")
