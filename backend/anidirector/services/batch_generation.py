"""Batch media generation orchestrator.

Generates images for every scene of a chosen act (or all acts) that still
lacks one, strictly one scene at a time:

    Idle -> Running(current, total) -> Completed -> Idle

Per scene:

    Pending -> Generating -> Done | Failed

Each success is checkpointed immediately through the snapshot builder, so
stopping between two items never loses a finished image. A failure only
affects its own scene; the run always continues with the next one.

The checkpoint reads the live project state, looked up by scene id after
every item, never a copy taken before the loop started.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Union

from anidirector.config import Settings, get_settings
from anidirector.errors import BatchInProgressError, GenerationError, NotFoundError
from anidirector.schemas import Scene, StoryConfig
from anidirector.services.identity import CharacterRoster
from anidirector.services.image_gen import ImageGenService, ImageTier
from anidirector.services.providers import ImageMode
from anidirector.services.snapshot import ProjectSnapshotBuilder, ProjectState

logger = logging.getLogger(__name__)

ActFilter = Union[int, str]
ALL_ACTS = "all"


class BatchStatus(str, enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class SceneRunState(str, enum.Enum):
    PENDING = "PENDING"
    GENERATING = "GENERATING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class BatchEvent:
    """Progress notification for listeners (the UI)."""
    event_type: str  # batch_started, scene_generating, scene_done, scene_failed, batch_completed
    current: int = 0
    total: int = 0
    scene_id: int | None = None
    error: str | None = None


@dataclass
class SceneFailure:
    scene_id: int
    reason: str
    transient: bool = False


@dataclass
class BatchReport:
    """Aggregate outcome of one run."""
    total: int = 0
    succeeded: list[int] = field(default_factory=list)
    failed: list[SceneFailure] = field(default_factory=list)
    checkpoints_lost: int = 0

    @property
    def nothing_to_do(self) -> bool:
        return self.total == 0

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


def scene_in_act(scene: Scene, act: ActFilter) -> bool:
    if act == ALL_ACTS:
        return True
    return scene.act == int(act)


def board_panel_prompt(scene: Scene, config: StoryConfig) -> str:
    """Panel brief sent in board mode."""
    return (
        f"SCENE ID: {scene.id} (Act: {scene.act})\n"
        f"ACTION: {scene.visual_description}\n"
        f"CAMERA: {scene.camera_angle}\n"
        f"ATMOSPHERE: {config.setting}\n"
        f"CHARACTERS: {', '.join(scene.involved_character_names)}\n\n"
        "This is a storyboard panel for a 3D animated film."
    )


class BatchImageOrchestrator:
    """Drives the image service over a storyboard, one scene at a time."""

    def __init__(
        self,
        images: ImageGenService,
        snapshots: ProjectSnapshotBuilder,
        roster: CharacterRoster,
        settings: Settings | None = None,
        *,
        listener: Callable[[BatchEvent], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.images = images
        self.snapshots = snapshots
        self.roster = roster
        self.listener = listener
        self._sleep = sleep

        self.status = BatchStatus.IDLE
        self.current = 0
        self.total = 0
        self.scene_states: dict[int, SceneRunState] = {}

    # -----------------------------------------------------------------------
    # Work list
    # -----------------------------------------------------------------------

    @staticmethod
    def work_list(state: ProjectState, act: ActFilter = ALL_ACTS) -> list[Scene]:
        """Scenes in the filter that still lack a concept image, in narrative order."""
        if state.storyboard is None:
            return []
        pending = [
            s for s in state.storyboard.scenes
            if scene_in_act(s, act) and not s.concept_image_ref
        ]
        return sorted(pending, key=lambda s: s.id)

    # -----------------------------------------------------------------------
    # Batch run
    # -----------------------------------------------------------------------

    async def run(
        self,
        state: ProjectState,
        act: ActFilter = ALL_ACTS,
        tier: ImageTier = ImageTier.STANDARD,
    ) -> BatchReport:
        """Generate concept images for every pending scene in `act`."""
        if self.status is BatchStatus.RUNNING:
            raise BatchInProgressError("A batch generation run is already in progress")

        scene_ids = [s.id for s in self.work_list(state, act)]
        report = BatchReport(total=len(scene_ids))
        if not scene_ids:
            logger.info("Batch generation: nothing to do (act=%s)", act)
            return report

        self.status = BatchStatus.RUNNING
        self.current, self.total = 0, len(scene_ids)
        self.scene_states = {sid: SceneRunState.PENDING for sid in scene_ids}
        logger.info("Batch generation started: %d scene(s), act=%s, tier=%s",
                    self.total, act, ImageTier(tier).value)
        self._emit(BatchEvent("batch_started", 0, self.total))

        try:
            for index, scene_id in enumerate(scene_ids):
                self.current = index + 1
                await self._run_one(state, scene_id, tier, report)

                if index < len(scene_ids) - 1 and self.settings.BATCH_INTER_CALL_DELAY > 0:
                    await self._sleep(self.settings.BATCH_INTER_CALL_DELAY)

            self.status = BatchStatus.COMPLETED
            logger.info(
                "Batch generation completed: %d succeeded, %d failed",
                report.succeeded_count, report.failed_count,
            )
            self._emit(BatchEvent("batch_completed", self.current, self.total))
        finally:
            self.status = BatchStatus.IDLE
            self.current = self.total = 0

        return report

    async def _run_one(
        self,
        state: ProjectState,
        scene_id: int,
        tier: ImageTier,
        report: BatchReport,
    ) -> None:
        scene = state.storyboard.find_scene(scene_id) if state.storyboard else None
        if scene is None:
            # Removed from the live storyboard since the run started
            self._fail(report, scene_id, NotFoundError(f"Scene {scene_id} no longer exists"))
            return

        self.scene_states[scene_id] = SceneRunState.GENERATING
        scene.concept_generating = True
        self._emit(BatchEvent("scene_generating", self.current, self.total, scene_id))

        try:
            image_ref = await self._generate(scene, state.story_config, ImageMode.CONCEPT, tier)
        except GenerationError as e:
            scene.concept_generating = False
            self._fail(report, scene_id, e)
            return

        scene.concept_image_ref = image_ref
        scene.concept_generating = False
        self.scene_states[scene_id] = SceneRunState.DONE
        report.succeeded.append(scene_id)

        if await self.snapshots.save(state, silent=True) is None:
            report.checkpoints_lost += 1
        self._emit(BatchEvent("scene_done", self.current, self.total, scene_id))

    def _fail(self, report: BatchReport, scene_id: int, error: Exception) -> None:
        transient = isinstance(error, GenerationError) and error.transient
        self.scene_states[scene_id] = SceneRunState.FAILED
        report.failed.append(SceneFailure(scene_id, str(error), transient))
        logger.warning("Scene %s generation failed: %s", scene_id, error)
        self._emit(BatchEvent("scene_failed", self.current, self.total, scene_id, str(error)))

    # -----------------------------------------------------------------------
    # Single scene
    # -----------------------------------------------------------------------

    async def generate_scene(
        self,
        state: ProjectState,
        scene_id: int,
        mode: ImageMode = ImageMode.CONCEPT,
        tier: ImageTier = ImageTier.STANDARD,
    ) -> Scene:
        """Generate one concept or board image; failures propagate to the caller."""
        scene = state.storyboard.find_scene(scene_id) if state.storyboard else None
        if scene is None:
            raise NotFoundError(f"Scene {scene_id} not found")

        board = ImageMode(mode) is ImageMode.BOARD
        flag = "board_generating" if board else "concept_generating"
        setattr(scene, flag, True)
        try:
            image_ref = await self._generate(scene, state.story_config, mode, tier)
        finally:
            setattr(scene, flag, False)

        if board:
            scene.board_image_ref = image_ref
        else:
            scene.concept_image_ref = image_ref
        await self.snapshots.save(state, silent=True)
        return scene

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    async def _generate(
        self,
        scene: Scene,
        config: StoryConfig,
        mode: ImageMode,
        tier: ImageTier,
    ) -> str:
        refs = self.roster.scene_references(
            scene, config, max_images=self.settings.MAX_REFERENCE_IMAGES,
        )
        prompt = (
            board_panel_prompt(scene, config)
            if ImageMode(mode) is ImageMode.BOARD
            else scene.visual_description
        )
        return await self.images.generate(
            prompt,
            reference_images=refs.images,
            character_descriptions=refs.descriptions,
            aspect_ratio=config.aspect_ratio.value,
            mode=mode,
            tier=tier,
        )

    def _emit(self, event: BatchEvent) -> None:
        """Best-effort listener notification, never fails the run."""
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            logger.error("Batch listener failed on %s: %s", event.event_type, e)
