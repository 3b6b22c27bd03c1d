"""
Data Ingestion - Field Parsing Helpers.

============================================================
RESPONSIBILITY
============================================================
Small, pure helpers shared by both upstream decode paths.

- JSON body decoding into declared payload models
- RFC3339 timestamp parsing for optional date strings
- Presence checks used by the merge engine

============================================================
"""

import json
import math
import re
from datetime import datetime
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from core.exceptions import DecodeError, FieldParseError


ModelT = TypeVar("ModelT", bound=BaseModel)

RFC3339_PATTERN = re.compile(
    r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})"
)


def _reject_constant(token: str) -> Any:
    """json.loads hook: NaN and Infinity are not JSON."""
    raise ValueError(f"non-JSON numeric token {token}")


def decode_payload(body: bytes, model: Type[ModelT], source: str) -> ModelT:
    """
    Decode a raw response body into a payload model.

    Args:
        body: Raw response bytes
        model: Pydantic model describing the expected shape
        source: Upstream source name, for error context

    Returns:
        Validated model instance

    Raises:
        DecodeError: If the body is not JSON or violates the shape
    """
    try:
        data = json.loads(body, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise DecodeError(
            message=f"{source} payload is not valid JSON: {e}",
            source=source,
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise DecodeError(
            message=f"{source} payload must be a JSON object, got {type(data).__name__}",
            source=source,
        )

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(
            message=f"{source} payload does not match expected shape: {e.error_count()} error(s)",
            source=source,
            context={"errors": e.errors(include_url=False)[:5]},
            cause=e,
        ) from e


def parse_rfc3339(
    raw: Optional[str],
    field_name: str,
    source: str,
    description: Optional[str] = None,
) -> Optional[datetime]:
    """
    Parse an optional RFC3339 timestamp.

    None and "" map to None. Anything else must carry a full date, time
    and UTC offset.

    Raises:
        FieldParseError: If the string is non-empty but malformed
    """
    if raw is None or raw == "":
        return None

    label = description or field_name
    if not RFC3339_PATTERN.fullmatch(raw):
        raise FieldParseError(
            message=f"invalid {label}: {raw!r} is not an RFC3339 timestamp",
            source=source,
            field_name=field_name,
            raw_value=raw,
        )

    text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise FieldParseError(
            message=f"invalid {label}: {raw!r} is not an RFC3339 timestamp",
            source=source,
            field_name=field_name,
            raw_value=raw,
            cause=e,
        ) from e

    return parsed


def none_if_empty(value: Optional[str]) -> Optional[str]:
    """Map empty strings to None."""
    if value is None or value == "":
        return None
    return value


def is_present(value: Any) -> bool:
    """
    Check if a value may overwrite a merged field.

    Floats must be finite, strings non-empty, everything else non-None.
    """
    if value is None:
        return False
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, str):
        return value != ""
    return True


__all__ = [
    "decode_payload",
    "parse_rfc3339",
    "none_if_empty",
    "is_present",
]
