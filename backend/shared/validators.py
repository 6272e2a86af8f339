"""Validation helpers for service settings."""

import json
from typing import Any

from pydantic.fields import FieldInfo
from pydantic_settings import EnvSettingsSource

# Settings fields that accept either a JSON array or a comma-separated string.
STRING_LIST_FIELDS = frozenset({"cors_origins"})


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a list of strings given as a list, a JSON array, or 'a,b' CSV.

    Raises ValueError for malformed JSON, non-string items, and (unless
    allow_empty) an empty result.
    """
    if isinstance(value, list):
        items = value
    elif value.strip().startswith("["):
        try:
            items = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
            raise ValueError("JSON value must be an array of strings")
    else:
        items = [part.strip() for part in value.split(",") if part.strip()]

    if not items and not allow_empty:
        raise ValueError("String list value must not be empty")
    return items


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that hands string-list fields to validators undecoded.

    pydantic-settings JSON-decodes list fields before validators run, which
    would reject the CSV form; this lets parse_string_list see the raw value.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
