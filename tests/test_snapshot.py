"""
Tests for the project snapshot builder

Tests for anidirector/services/snapshot.py
"""

from datetime import datetime, timedelta, timezone

import pytest

from anidirector.errors import PersistenceError
from anidirector.models import ProjectStage
from anidirector.schemas import Character, StoryConfig
from anidirector.services.identity import CharacterRoster
from anidirector.services.snapshot import (
    DEFAULT_PROJECT_NAME,
    ProjectIdAllocator,
    ProjectSnapshotBuilder,
    ProjectState,
)
from anidirector.services.store import Collection


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def roster() -> CharacterRoster:
    return CharacterRoster([
        Character(id="t", name="Tico"),
        Character(id="s", name="Stranger"),
        Character(id="k", name="Kitten"),
    ])


@pytest.fixture
def builder(store, roster) -> ProjectSnapshotBuilder:
    return ProjectSnapshotBuilder(store, roster, clock=FakeClock())


class TestIdAllocator:

    def test_ids_strictly_increase_on_a_frozen_clock(self):
        allocate = ProjectIdAllocator(clock=lambda: 1700000000.0)
        ids = [allocate() for _ in range(3)]
        assert ids == ["1700000000000", "1700000000001", "1700000000002"]


class TestBuild:
    """Tests for building snapshots."""

    def test_allocates_id_once(self, builder, story_config):
        state = ProjectState(story_config=story_config)
        first = builder.build(state)
        second = builder.build(state)
        assert first.id == second.id == state.project_id

    def test_updated_at_always_refreshed(self, builder, story_config):
        state = ProjectState(story_config=story_config)
        assert builder.build(state).updated_at < builder.build(state).updated_at

    def test_characters_are_used_by_selection(self, builder, story_config):
        record = builder.build(ProjectState(story_config=story_config))
        assert [c.name for c in record.characters] == ["Tico", "Kitten"]

    def test_stage_follows_storyboard(self, builder, story_config, storyboard):
        state = ProjectState(story_config=story_config)
        assert builder.build(state).stage is ProjectStage.SETUP_STORY
        state.storyboard = storyboard
        assert builder.build(state).stage is ProjectStage.STORYBOARD

    def test_untitled_name(self, builder):
        assert builder.build(ProjectState()).name == DEFAULT_PROJECT_NAME

    def test_build_never_mutates_roster(self, builder, roster, story_config):
        before = [c.model_dump() for c in roster]
        record = builder.build(ProjectState(story_config=story_config))
        record.characters[0].description = "changed in the snapshot"
        assert [c.model_dump() for c in roster] == before

    def test_snapshot_is_detached_from_state(self, builder, story_config, storyboard):
        state = ProjectState(story_config=story_config, storyboard=storyboard)
        record = builder.build(state)
        state.storyboard.scenes[0].concept_image_ref = "data:later"
        assert record.storyboard_data.scenes[0].concept_image_ref is None


class TestSave:
    """Tests for persisting snapshots."""

    async def test_save_upserts_and_reloads(self, builder, store, story_config):
        state = ProjectState(story_config=story_config)
        record = await builder.save(state)

        assert [p.id for p in builder.projects] == [record.id]
        stored = await store.get(Collection.PROJECTS, record.id)
        assert stored.name == story_config.title

    async def test_second_save_replaces_record(self, builder, store, story_config):
        state = ProjectState(story_config=story_config)
        await builder.save(state)
        state.story_config.title = "Renamed"
        await builder.save(state)

        projects = await store.get_all(Collection.PROJECTS)
        assert len(projects) == 1
        assert projects[0].name == "Renamed"

    async def test_explicit_save_surfaces_failure(self, builder, store, story_config, monkeypatch):
        async def broken_upsert(collection, record):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "upsert", broken_upsert)
        with pytest.raises(PersistenceError):
            await builder.save(ProjectState(story_config=story_config))

    async def test_silent_save_swallows_failure(self, builder, store, story_config, monkeypatch):
        async def broken_upsert(collection, record):
            raise PersistenceError("disk full")

        monkeypatch.setattr(store, "upsert", broken_upsert)
        assert await builder.save(ProjectState(story_config=story_config), silent=True) is None

    async def test_silent_save_survives_reload_failure(self, builder, store, story_config, monkeypatch):
        """The checkpoint landed, so a failed list reload still returns the record."""
        async def broken_get_all(collection):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(store, "get_all", broken_get_all)
        state = ProjectState(story_config=story_config)
        record = await builder.save(state, silent=True)

        assert record is not None
        assert (await store.get(Collection.PROJECTS, record.id)).name == story_config.title

        with pytest.raises(PersistenceError):
            await builder.save(state)

    async def test_reload(self, builder, store):
        state = ProjectState(story_config=StoryConfig(title="A"))
        await builder.save(state)
        builder.projects = []
        assert len(await builder.reload()) == 1
