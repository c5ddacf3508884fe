"""Project snapshot builder: turns the active in-memory project into a record.

`build` reads the live state and the live roster and returns an immutable
`SavedProject`; `save` additionally upserts it and reloads the project
list from the store so listing views never drift from what was persisted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from anidirector.errors import PersistenceError
from anidirector.models import ProjectStage
from anidirector.schemas import SavedProject, StoryboardData, StoryConfig
from anidirector.services.identity import CharacterRoster
from anidirector.services.store import Collection, PersistenceStore

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Untitled"


@dataclass
class ProjectState:
    """The active project. Exactly one exists per studio session."""

    story_config: StoryConfig = field(default_factory=StoryConfig)
    storyboard: StoryboardData | None = None
    project_id: str | None = None
    stage: ProjectStage = ProjectStage.SETUP_STORY


class ProjectIdAllocator:
    """Timestamp-derived ids (milliseconds), strictly increasing within a process."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return str(candidate)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectSnapshotBuilder:
    """Builds and persists project snapshots."""

    def __init__(
        self,
        store: PersistenceStore,
        roster: CharacterRoster,
        *,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.roster = roster
        self._id_factory = id_factory or ProjectIdAllocator()
        self._clock = clock
        self.projects: list[SavedProject] = []

    def allocate_id(self) -> str:
        return self._id_factory()

    def build(self, state: ProjectState) -> SavedProject:
        """Produce a snapshot of `state`.

        Assigns the project id on first use and never changes it afterwards.
        Reads the roster but never mutates it.
        """
        if state.project_id is None:
            state.project_id = self.allocate_id()
            logger.debug("Allocated project id %s", state.project_id)

        storyboard = state.storyboard.model_copy(deep=True) if state.storyboard else None
        return SavedProject(
            id=state.project_id,
            name=state.story_config.title or DEFAULT_PROJECT_NAME,
            updated_at=self._clock(),
            characters=self.roster.used_by(state.story_config),
            story_config=state.story_config.model_copy(deep=True),
            storyboard_data=storyboard,
            stage=ProjectStage.STORYBOARD if storyboard is not None else ProjectStage.SETUP_STORY,
        )

    async def save(self, state: ProjectState, *, silent: bool = False) -> SavedProject | None:
        """Build, upsert and reload the project list.

        With `silent=True` (automatic checkpoints) a persistence failure is
        logged and swallowed and None is returned; otherwise it propagates.
        A silent save whose upsert landed but whose list reload failed still
        returns the record, since the checkpoint itself is stored.
        """
        record = self.build(state)
        try:
            await self.store.upsert(Collection.PROJECTS, record)
        except PersistenceError as e:
            if not silent:
                raise
            logger.warning("Checkpoint for project %s not persisted: %s", record.id, e)
            return None

        try:
            self.projects = await self.store.get_all(Collection.PROJECTS)
        except PersistenceError as e:
            if not silent:
                raise
            logger.warning("Project list reload failed after saving %s: %s", record.id, e)

        logger.info("Saved project %s (%s, stage=%s)", record.id, record.name, record.stage.name)
        return record

    async def reload(self) -> list[SavedProject]:
        self.projects = await self.store.get_all(Collection.PROJECTS)
        return self.projects
