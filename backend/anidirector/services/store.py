"""Persistence store — durable `characters` and `projects` collections.

Every operation runs in its own transaction. Records go in and come out as
pydantic schemas; the ORM rows never leave this module.

On the first read of an empty collection the store looks for the legacy
flat-blob representation (one serialized JSON list under a fixed name),
imports it, and deletes the blob in the same transaction. Once a collection
holds rows the migration can never run again, which makes an interrupted
migration safe to repeat.
"""

from __future__ import annotations

import enum
import json
import logging
from datetime import datetime
from typing import Sequence, Union

from pydantic import TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from anidirector.database import Database
from anidirector.errors import PersistenceError
from anidirector.models import (
    LEGACY_CHARACTERS_BLOB,
    LEGACY_PROJECTS_BLOB,
    CharacterRecord,
    LegacyBlob,
    ProjectRecord,
)
from anidirector.schemas import Character, SavedProject

logger = logging.getLogger(__name__)

Record = Union[Character, SavedProject]


class Collection(str, enum.Enum):
    """The two named collections of the store."""

    CHARACTERS = "characters"
    PROJECTS = "projects"


_LEGACY_BLOBS: dict[Collection, str] = {
    Collection.CHARACTERS: LEGACY_CHARACTERS_BLOB,
    Collection.PROJECTS: LEGACY_PROJECTS_BLOB,
}


def unique_by_id(records: Sequence[Record]) -> list[Record]:
    """Collapse records sharing an id: the last one wins, at the first one's position."""
    return list({r.id: r for r in records}.values())


_CHARACTER_LIST = TypeAdapter(list[Character])
_PROJECT_LIST = TypeAdapter(list[SavedProject])


# ---------------------------------------------------------------------------
# Row <-> schema mapping
# ---------------------------------------------------------------------------

def _character_row(character: Character, position: int) -> CharacterRecord:
    return CharacterRecord(
        id=character.id,
        position=position,
        name=character.name,
        description=character.description,
        image_ref=character.image_ref,
    )


def _character_from_row(row: CharacterRecord) -> Character:
    return Character(
        id=row.id,
        name=row.name,
        description=row.description or "",
        image_ref=row.image_ref,
    )


def _project_row(project: SavedProject) -> ProjectRecord:
    wire = project.to_wire()
    return ProjectRecord(
        id=project.id,
        name=project.name,
        updated_at=project.updated_at.isoformat(),
        stage=int(project.stage),
        characters=wire["characters"],
        story_config=wire["storyConfig"],
        storyboard_data=wire["storyboardData"],
    )


def _project_from_row(row: ProjectRecord) -> SavedProject:
    return SavedProject.model_validate({
        "id": row.id,
        "name": row.name,
        "updatedAt": datetime.fromisoformat(row.updated_at),
        "stage": row.stage,
        "characters": row.characters or [],
        "storyConfig": row.story_config,
        "storyboardData": row.storyboard_data,
    })


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class PersistenceStore:
    """Key-value collections keyed by record id, backed by SQLAlchemy."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # --- reads ---

    async def get_all(self, collection: Collection) -> list[Record]:
        """Return every record of the collection, migrating legacy data on first use."""
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                async with session.begin():
                    records = await self._read(session, collection)
                    if records:
                        return records
                    return await self._migrate_legacy(session, collection)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read {collection.value}: {e}") from e

    async def get(self, collection: Collection, record_id: str) -> Record | None:
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                if collection is Collection.CHARACTERS:
                    row = await session.get(CharacterRecord, record_id)
                    return _character_from_row(row) if row else None
                row = await session.get(ProjectRecord, record_id)
                return _project_from_row(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read {collection.value}/{record_id}: {e}") from e

    # --- writes ---

    async def upsert(self, collection: Collection, record: Record) -> None:
        """Insert or replace one record by id."""
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                async with session.begin():
                    if collection is Collection.CHARACTERS:
                        existing = await session.get(CharacterRecord, record.id)
                        if existing is not None:
                            position = existing.position
                        else:
                            position = await self._next_position(session)
                        await session.merge(_character_row(record, position))
                    else:
                        await session.merge(_project_row(record))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save {collection.value}/{record.id}: {e}") from e

    async def replace_all(self, collection: Collection, records: Sequence[Record]) -> None:
        """Clear the collection and rewrite it from `records` in one transaction.

        This is a full-replace sync: ids missing from `records` are deleted.
        Records repeating an id collapse to the last one.
        """
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                async with session.begin():
                    await self._clear(session, collection)
                    # Flush the delete before re-inserting ids that survived
                    await session.flush()
                    session.add_all(self._rows(collection, records))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not replace {collection.value}: {e}") from e
        logger.debug("Replaced %s with %d record(s)", collection.value, len(records))

    async def clear(self, collection: Collection) -> None:
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                async with session.begin():
                    await self._clear(session, collection)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clear {collection.value}: {e}") from e

    async def clear_all(self) -> None:
        """Clear both collections and any legacy blobs."""
        try:
            async with self.db.session() as session:
                async with session.begin():
                    for collection in Collection:
                        await self._clear(session, collection)
                    await session.execute(delete(LegacyBlob))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clear store: {e}") from e

    async def write_legacy_blob(self, collection: Collection, records: Sequence[Record]) -> None:
        """Store `records` in the legacy flat-blob format (pre-migration installs)."""
        collection = Collection(collection)
        payload = json.dumps([r.to_wire() for r in records], ensure_ascii=False)
        try:
            async with self.db.session() as session:
                async with session.begin():
                    await session.merge(LegacyBlob(name=_LEGACY_BLOBS[collection], payload=payload))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not write legacy {collection.value}: {e}") from e

    async def has_legacy_blob(self, collection: Collection) -> bool:
        collection = Collection(collection)
        try:
            async with self.db.session() as session:
                return await session.get(LegacyBlob, _LEGACY_BLOBS[collection]) is not None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read legacy {collection.value}: {e}") from e

    # --- internals ---

    async def _read(self, session: AsyncSession, collection: Collection) -> list[Record]:
        if collection is Collection.CHARACTERS:
            result = await session.execute(
                select(CharacterRecord).order_by(CharacterRecord.position, CharacterRecord.id)
            )
            return [_character_from_row(row) for row in result.scalars().all()]

        result = await session.execute(
            select(ProjectRecord).order_by(ProjectRecord.updated_at.desc(), ProjectRecord.id)
        )
        return [_project_from_row(row) for row in result.scalars().all()]

    async def _migrate_legacy(self, session: AsyncSession, collection: Collection) -> list[Record]:
        blob = await session.get(LegacyBlob, _LEGACY_BLOBS[collection])
        if blob is None:
            return []

        adapter = _CHARACTER_LIST if collection is Collection.CHARACTERS else _PROJECT_LIST
        try:
            records = adapter.validate_python(json.loads(blob.payload))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.error("Migration error for %s, legacy blob left in place: %s", collection.value, e)
            return []

        records = unique_by_id(records)
        if not records:
            return []

        session.add_all(self._rows(collection, records))
        await session.delete(blob)
        logger.info("Migrated %d legacy %s record(s)", len(records), collection.value)
        return records

    async def _clear(self, session: AsyncSession, collection: Collection) -> None:
        model = CharacterRecord if collection is Collection.CHARACTERS else ProjectRecord
        await session.execute(delete(model))

    async def _next_position(self, session: AsyncSession) -> int:
        current = await session.scalar(select(func.max(CharacterRecord.position)))
        return 0 if current is None else current + 1

    @staticmethod
    def _rows(collection: Collection, records: Sequence[Record]) -> list:
        records = unique_by_id(records)
        if collection is Collection.CHARACTERS:
            return [_character_row(r, i) for i, r in enumerate(records)]
        return [_project_row(r) for r in records]
