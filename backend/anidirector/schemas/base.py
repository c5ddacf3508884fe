"""Shared pydantic base for records that travel as camelCase JSON."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase keys on the wire and on disk.

    `legacy_keys` maps keys written by earlier releases onto current ones;
    a legacy key is only used when the current key is absent.
    """

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    legacy_keys: ClassVar[dict[str, str]] = {}

    @model_validator(mode="before")
    @classmethod
    def _rename_legacy_keys(cls, data: Any) -> Any:
        if not cls.legacy_keys or not isinstance(data, dict):
            return data
        data = dict(data)
        for old, new in cls.legacy_keys.items():
            if old in data:
                value = data.pop(old)
                data.setdefault(new, value)
        return data

    def to_wire(self) -> dict:
        """Dump to a JSON-compatible dict using the camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
