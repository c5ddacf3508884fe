"""Backup export/import codec.

A backup is a self-contained JSON document:

    {version, exportDate, storyConfig, characters, storyboard}

`parse_backup` is the single entry point for import. It either returns a
fully validated `BackupDocument` or raises `ValidationError`; nothing is
merged by this module, so a rejected document never leaves partial state.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Union

from pydantic import ValidationError as PydanticValidationError

from anidirector.errors import ValidationError
from anidirector.schemas import BackupDocument, Character, StoryboardData, StoryConfig

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("storyConfig", "characters", "storyboard")

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|]+')

RawBackup = Union[str, bytes, dict]


def export_backup(
    config: StoryConfig,
    characters: Iterable[Character],
    storyboard: StoryboardData,
    version: str = "1.0",
    *,
    export_date: datetime | None = None,
) -> BackupDocument:
    """Assemble a backup from the displayed config, roster and storyboard as-is."""
    return BackupDocument(
        version=version,
        export_date=export_date or datetime.now(timezone.utc),
        story_config=config.model_copy(deep=True),
        characters=[c.model_copy(deep=True) for c in characters],
        storyboard=storyboard.model_copy(deep=True),
    )


def dumps_backup(document: BackupDocument) -> str:
    return json.dumps(document.to_wire(), indent=2, ensure_ascii=False)


def parse_backup(raw: RawBackup) -> BackupDocument:
    """Parse and validate a backup document.

    Accepts the raw file text/bytes or an already decoded dict. Raises
    `ValidationError` for invalid JSON, a missing payload key, or a payload
    of the wrong shape.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data: Any = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Backup is not valid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise ValidationError("Backup must be a JSON object")

    missing = [key for key in REQUIRED_KEYS if data.get(key) is None]
    if missing:
        raise ValidationError(f"Backup is missing required field(s): {', '.join(missing)}")

    # Older exports may omit the envelope fields
    data = dict(data)
    data.setdefault("version", "1.0")
    data.setdefault("exportDate", datetime.now(timezone.utc).isoformat())

    try:
        return BackupDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Backup has an invalid shape: {e}") from e


def backup_filename(config: StoryConfig, today: date | None = None) -> str:
    """`{title}_backup_{YYYY-MM-DD}.json`, using "storyboard" for an untitled project."""
    today = today or date.today()
    title = _UNSAFE_FILENAME.sub("_", config.title).strip() or "storyboard"
    return f"{title}_backup_{today.isoformat()}.json"


async def write_backup_file(document: BackupDocument, path: Union[str, Path]) -> Path:
    """Write a backup to disk without blocking the event loop."""
    path = Path(path)
    text = dumps_backup(document)
    await asyncio.to_thread(path.write_text, text, encoding="utf-8")
    logger.info("Backup written: %s (%d characters, %d scenes)",
                path, len(document.characters), len(document.storyboard.scenes))
    return path


async def read_backup_file(path: Union[str, Path]) -> BackupDocument:
    """Read and validate a backup file. Unreadable files raise ValidationError."""
    path = Path(path)
    try:
        raw = await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        raise ValidationError(f"Backup file could not be read: {e}") from e
    return parse_backup(raw)
