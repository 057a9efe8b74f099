import logging
import re
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def prepare_value(data: Any) -> Any:
    """
    Recursively convert a comparison or update operand into a plain value
    that every backend can bind as a query parameter.

    It handles:
    - Enum members (their ``value``)
    - Pydantic BaseModel instances (``model_dump(mode="json", by_alias=True)``)
    - Python dataclasses
    - Lists, tuples and sets (processing each item, sets become lists)
    - Pydantic URL types (converted to strings)

    Args:
        data: The operand to convert

    Returns:
        The converted operand
    """
    if data is None:
        return None

    if isinstance(data, Enum):
        return prepare_value(data.value)

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_value(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_value(data.model_dump(mode="json", by_alias=True))

    if isinstance(data, dict):
        return {k: prepare_value(v) for k, v in data.items()}

    if isinstance(data, (list, set)):
        return [prepare_value(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_value(item) for item in data)

    if data.__class__.__module__ == "pydantic.networks":
        return str(data)

    return data


def check_identifier(identifier: str) -> str:
    """
    Validate a table, alias or column name.

    Identifiers are interpolated into SQL text, so only plain names are
    accepted.

    Raises:
        ValueError: If the identifier is not a plain name.
    """
    if not isinstance(identifier, str) or not _IDENTIFIER_RE.match(identifier):
        raise ValueError(f"Invalid identifier: {identifier!r}")
    return identifier


def check_path(path: str) -> str:
    """Validate a ``column`` or ``alias.column`` path."""
    parts = path.split(".") if isinstance(path, str) else [path]
    if len(parts) > 2:
        raise ValueError(
            f"Invalid field path {path!r}: expected 'column' or 'alias.column'"
        )
    for part in parts:
        check_identifier(part)
    return path
