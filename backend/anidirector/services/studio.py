from __future__ import annotations
"""Studio, the in-process surface the UI drives.

Owns the single active project and the roster, and routes every action
through the right component: casting, library edits and restores merge
through the roster; saves and checkpoints go through the snapshot builder;
image work goes through the batch orchestrator.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Union

from anidirector.config import Settings, get_settings
from anidirector.errors import NotFoundError
from anidirector.models import ProjectStage
from anidirector.schemas import BackupDocument, Character, SavedProject, Scene, StoryboardData, StoryConfig
from anidirector.services import backup
from anidirector.services.batch_generation import (
    ALL_ACTS,
    ActFilter,
    BatchEvent,
    BatchImageOrchestrator,
    BatchReport,
)
from anidirector.services.identity import CharacterRoster
from anidirector.services.image_gen import CharacterDesignService, ImageGenService, ImageTier
from anidirector.services.providers import ImageMode, MediaGenerator
from anidirector.services.snapshot import ProjectSnapshotBuilder, ProjectState
from anidirector.services.store import Collection, PersistenceStore
from anidirector.services.story_planner import StoryPlanService

logger = logging.getLogger(__name__)


@dataclass
class CastingTarget:
    """One slot of the casting step and the roster portrait already bound to it."""
    role: str  # protagonist, rescue_target, secondary, observer
    name: str
    description: str
    existing: Character | None = None


class Studio:
    """Active project, roster and the services acting on them."""

    def __init__(
        self,
        store: PersistenceStore,
        client: MediaGenerator,
        settings: Settings | None = None,
        *,
        listener: Callable[[BatchEvent], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        id_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.client = client
        self.roster = CharacterRoster()
        self.state = ProjectState()

        builder_kwargs = {"id_factory": id_factory}
        if clock is not None:
            builder_kwargs["clock"] = clock
        self.snapshots = ProjectSnapshotBuilder(store, self.roster, **builder_kwargs)

        self.story = StoryPlanService(client, self.settings, sleep=sleep)
        self.images = ImageGenService(client, self.settings, sleep=sleep)
        self.designs = CharacterDesignService(client, self.settings, sleep=sleep)
        self.batch = BatchImageOrchestrator(
            self.images, self.snapshots, self.roster, self.settings,
            listener=listener, sleep=sleep,
        )

    @property
    def projects(self) -> list[SavedProject]:
        return self.snapshots.projects

    async def load(self) -> None:
        """Load the roster and the project list (running legacy migration if needed)."""
        self.roster.replace(await self.store.get_all(Collection.CHARACTERS))
        await self.snapshots.reload()
        logger.info("Studio loaded: %d character(s), %d project(s)",
                    len(self.roster), len(self.projects))

    # -----------------------------------------------------------------------
    # Roster
    # -----------------------------------------------------------------------

    def _draft_roster(self) -> CharacterRoster:
        return CharacterRoster(self.roster.members)

    async def _commit_roster(self, draft: CharacterRoster) -> None:
        """Persist `draft`, then make it the live roster.

        The live roster is left untouched when the write fails.
        """
        await self.store.replace_all(Collection.CHARACTERS, draft.members)
        self.roster.replace(draft.members)

    async def replace_roster(self, characters: Iterable[Character]) -> list[Character]:
        """Full-replace sync from the library view; omitted members are deleted."""
        draft = CharacterRoster(c.model_copy(deep=True) for c in characters)
        await self._commit_roster(draft)
        return self.roster.members

    async def upsert_library_character(self, character: Character) -> Character:
        draft = self._draft_roster()
        stored = draft.merge(character)
        await self._commit_roster(draft)
        return stored

    # -----------------------------------------------------------------------
    # Story
    # -----------------------------------------------------------------------

    async def suggest_idea(self) -> StoryConfig:
        self.state.story_config = await self.story.suggest_idea(self.state.story_config)
        return self.state.story_config

    async def generate_story_plan(self, config: StoryConfig | None = None) -> StoryboardData:
        if config is not None:
            self.state.story_config = config.model_copy(deep=True)
        self.state.storyboard = await self.story.plan_storyboard(self.state.story_config)
        self.state.stage = ProjectStage.ASSIGN_CHARACTERS
        await self.snapshots.save(self.state, silent=True)
        return self.state.storyboard

    # -----------------------------------------------------------------------
    # Casting
    # -----------------------------------------------------------------------

    def casting_targets(self, config: StoryConfig | None = None) -> list[CastingTarget]:
        config = config or self.state.story_config
        slots = [("protagonist", config.protagonist_name, config.protagonist_description)]
        if config.rescue_target_name:
            slots.append(("rescue_target", config.rescue_target_name, config.rescue_target_description))
        slots.extend(("secondary", sc.name, sc.description) for sc in config.secondary_characters)
        if config.observer:
            slots.append(("observer", config.observer, config.observer))

        return [
            CastingTarget(role, name, description, self.roster.find(name))
            for role, name, description in slots
            if name
        ]

    async def design_character(self, name: str, description: str) -> Character:
        """Generate a portrait; the result is not part of the roster until confirmed."""
        image_ref = await self.designs.generate(name, description)
        return Character(name=name, description=description, image_ref=image_ref)

    async def confirm_casting(self, characters: Iterable[Character]) -> SavedProject:
        draft = self._draft_roster()
        cast = [draft.merge(candidate) for candidate in characters]
        await self._commit_roster(draft)

        config = self.state.story_config
        for stored in cast:
            if stored.name == config.protagonist_name:
                config.protagonist_id = stored.id
            for sc in config.secondary_characters:
                if sc.name == stored.name:
                    sc.id = stored.id

        self.state.stage = ProjectStage.STORYBOARD
        return await self.snapshots.save(self.state)

    # -----------------------------------------------------------------------
    # Projects
    # -----------------------------------------------------------------------

    def new_project(self) -> ProjectState:
        self.state = ProjectState()
        return self.state

    async def load_project(self, project_id: str) -> ProjectState:
        project = await self.store.get(Collection.PROJECTS, project_id)
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        storyboard = project.storyboard_data
        if storyboard is not None:
            stale = [s.id for s in storyboard.scenes if s.is_generating]
            for scene in storyboard.scenes:
                scene.concept_generating = False
                scene.board_generating = False
            if stale:
                logger.warning("Project %s: reset %d interrupted scene(s) %s",
                               project_id, len(stale), stale)

        self.state = ProjectState(
            story_config=project.story_config,
            storyboard=storyboard,
            project_id=project.id,
            stage=project.stage,
        )
        return self.state

    async def save(self) -> SavedProject:
        """Explicit save; persistence failures propagate."""
        return await self.snapshots.save(self.state)

    # -----------------------------------------------------------------------
    # Backup
    # -----------------------------------------------------------------------

    def export_backup(self) -> BackupDocument:
        if self.state.storyboard is None:
            raise NotFoundError("No storyboard to back up")
        return backup.export_backup(
            self.state.story_config,
            self.roster.members,
            self.state.storyboard,
            self.settings.BACKUP_VERSION,
        )

    async def write_backup(self, directory: Union[str, Path]) -> Path:
        document = self.export_backup()
        path = Path(directory) / backup.backup_filename(self.state.story_config)
        return await backup.write_backup_file(document, path)

    async def restore_backup(self, raw: Union[backup.RawBackup, BackupDocument]) -> SavedProject:
        """Restore a backup as a new project.

        The document is fully validated before anything changes. Characters
        merge into the roster by name in bundle order; config and storyboard
        replace the active ones wholesale.
        """
        document = raw if isinstance(raw, BackupDocument) else backup.parse_backup(raw)

        draft = self._draft_roster()
        draft.merge_all(document.characters)
        await self._commit_roster(draft)

        self.state = ProjectState(
            story_config=document.story_config.model_copy(deep=True),
            storyboard=document.storyboard.model_copy(deep=True),
            project_id=None,
            stage=ProjectStage.STORYBOARD,
        )
        record = await self.snapshots.save(self.state)
        logger.info("Restored backup %s as project %s", document.version, record.id)
        return record

    async def restore_backup_file(self, path: Union[str, Path]) -> SavedProject:
        return await self.restore_backup(await backup.read_backup_file(path))

    # -----------------------------------------------------------------------
    # Images
    # -----------------------------------------------------------------------

    async def generate_scene_image(
        self,
        scene_id: int,
        kind: ImageMode = ImageMode.CONCEPT,
        tier: ImageTier = ImageTier.STANDARD,
    ) -> Scene:
        return await self.batch.generate_scene(self.state, scene_id, kind, tier)

    async def generate_batch(
        self,
        act: ActFilter = ALL_ACTS,
        tier: ImageTier = ImageTier.STANDARD,
    ) -> BatchReport:
        return await self.batch.run(self.state, act, tier)
