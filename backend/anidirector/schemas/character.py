from __future__ import annotations
"""Pydantic v2 schema for roster characters."""

import uuid
from typing import ClassVar

from pydantic import Field

from anidirector.schemas.base import CamelModel


def new_character_id() -> str:
    return uuid.uuid4().hex


class Character(CamelModel):
    """A roster member.

    `id` never changes once created; `name` is the natural key used for
    every identity match.
    """

    id: str = Field(default_factory=new_character_id, min_length=1)
    name: str
    description: str = ""
    image_ref: str | None = Field(None, description="Encoded image (data URI) or null")

    legacy_keys: ClassVar[dict[str, str]] = {"imageUrl": "imageRef"}
