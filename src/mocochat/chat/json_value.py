"""Free-form JSON values.

Model metadata (``model_info``) and tool-call arguments have no fixed schema,
so they are held as plain decoded JSON. ``JSONValue`` is pydantic's recursive
JSON union, which lets such values sit inside validated models and
round-trip without losing the int/float distinction.
"""

from collections.abc import Mapping

from pydantic import JsonValue

JSONValue = JsonValue


def as_str(value: JSONValue) -> str | None:
    return value if isinstance(value, str) else None


def as_int(value: JSONValue) -> int | None:
    """Return the value if it is a JSON integer (booleans are not integers)."""
    if isinstance(value, bool):
        return None
    return value if isinstance(value, int) else None


def as_float(value: JSONValue) -> float | None:
    """Return the value if it is a JSON floating point number."""
    return value if isinstance(value, float) else None


def as_bool(value: JSONValue) -> bool | None:
    return value if isinstance(value, bool) else None


def as_list(value: JSONValue) -> list[JSONValue] | None:
    return value if isinstance(value, list) else None


def as_dict(value: JSONValue) -> dict[str, JSONValue] | None:
    return value if isinstance(value, dict) else None


def find_by_suffix(mapping: Mapping[str, JSONValue] | None, suffix: str) -> JSONValue:
    """Return the value of the first key ending with ``suffix``.

    ``model_info`` keys are prefixed with the model architecture
    (``llama.context_length``, ``qwen2.context_length``...), so lookups go by
    suffix.

    Args:
        mapping: Decoded JSON object, or None
        suffix: Key suffix to look for

    Returns:
        The matching value, or None when absent
    """
    if not mapping:
        return None
    for key, value in mapping.items():
        if key.endswith(suffix):
            return value
    return None
