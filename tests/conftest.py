"""Pytest configuration and shared fixtures.

Puts `backend/` on `sys.path` so tests can import the `anidirector`
package regardless of how pytest is invoked, and provides a temporary
SQLite store plus a scriptable fake collaborator.
"""
import base64
import os
import sys
from typing import Any, Sequence

import pytest
import pytest_asyncio

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from anidirector.config import Settings  # noqa: E402
from anidirector.database import Database  # noqa: E402
from anidirector.schemas import Scene, SecondaryCharacter, StoryboardData, StoryConfig  # noqa: E402
from anidirector.services.providers import ImageMode  # noqa: E402
from anidirector.services.store import PersistenceStore  # noqa: E402
from anidirector.services.studio import Studio  # noqa: E402

# (act, count) of the twenty-frame template
ACT_LAYOUT = [(1, 6), (2, 6), (3, 8)]


def image_for(prompt: str) -> str:
    return "data:image/png;base64," + base64.b64encode(prompt.encode("utf-8")).decode("ascii")


class FakeMediaGenerator:
    """Scriptable collaborator.

    `fail(prompt, *errors)` queues errors raised, one per call, for that
    prompt; once the queue is empty the prompt succeeds again.
    """

    def __init__(self) -> None:
        self.image_calls: list[dict[str, Any]] = []
        self.design_calls: list[tuple[str, str]] = []
        self.failures: dict[str, list[Exception]] = {}
        self.idea: dict[str, Any] = {
            "title": "The Rabbit and the Train",
            "protagonistName": "Tico",
            "protagonistDescription": "Fluffy white rabbit",
            "secondaryCharacterName": "Driver",
            "secondaryCharacterDescription": "Train driver in a blue cap",
        }
        self.plan: dict[str, Any] | None = None
        self.plan_errors: list[Exception] = []

    def fail(self, prompt: str, *errors: Exception) -> None:
        self.failures.setdefault(prompt, []).extend(errors)

    async def generate_idea(self) -> dict[str, Any]:
        return dict(self.idea)

    async def generate_storyboard(self, config: StoryConfig) -> dict[str, Any]:
        if self.plan_errors:
            raise self.plan_errors.pop(0)
        if self.plan is not None:
            return self.plan
        return {
            "overallStyleNote": "warm",
            "scenes": [
                {
                    "id": i,
                    "act": f"Act {1 if i <= 6 else 2 if i <= 12 else 3}",
                    "duration": 3,
                    "visualDescription": f"Scene {i}",
                    "generationPrompt": f"prompt {i}",
                    "cameraAngle": "Wide",
                    "involvedCharacterNames": [config.protagonist_name],
                }
                for i in range(1, 21)
            ],
        }

    async def generate_character_design(self, name: str, description: str) -> str:
        self.design_calls.append((name, description))
        return image_for(f"portrait {name}")

    async def generate_image(
        self,
        prompt: str,
        reference_images: Sequence[str],
        character_descriptions: Sequence[str],
        aspect_ratio: str,
        mode: ImageMode,
        *,
        model: str | None = None,
    ) -> str:
        self.image_calls.append({
            "prompt": prompt,
            "reference_images": list(reference_images),
            "character_descriptions": list(character_descriptions),
            "aspect_ratio": aspect_ratio,
            "mode": ImageMode(mode),
            "model": model,
        })
        queue = self.failures.get(prompt)
        if queue:
            raise queue.pop(0)
        return image_for(prompt)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        USE_MOCK_API=True,
        OPENROUTER_API_KEY="",
    )


@pytest_asyncio.fixture
async def db(settings):
    database = Database.from_settings(settings)
    await database.init()
    yield database
    await database.close()


@pytest.fixture
def store(db) -> PersistenceStore:
    return PersistenceStore(db)


@pytest.fixture
def fake_client() -> FakeMediaGenerator:
    return FakeMediaGenerator()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def story_config() -> StoryConfig:
    return StoryConfig(
        title="The Rabbit and the Train",
        protagonist_name="Tico",
        protagonist_description="Fluffy white rabbit",
        rescue_target_name="Kitten",
        rescue_target_description="Small white kitten",
        danger_threat="Freight train",
        danger_tool="Fallen branch",
        danger_location="Railway tracks",
        setting="Sunset mountains",
        secondary_characters=[SecondaryCharacter(name="Driver", description="Blue cap")],
    )


@pytest.fixture
def storyboard() -> StoryboardData:
    scenes = []
    scene_id = 1
    for act, count in ACT_LAYOUT:
        for _ in range(count):
            scenes.append(Scene(
                id=scene_id,
                act=act,
                start_offset=(scene_id - 1) * 3,
                visual_description=f"Scene {scene_id}",
                camera_angle="Wide",
                involved_character_names=["Tico"],
            ))
            scene_id += 1
    return StoryboardData(scenes=scenes, overall_style_note="warm")


@pytest_asyncio.fixture
async def studio(store, fake_client, settings, sleeper) -> Studio:
    studio = Studio(store, fake_client, settings, sleep=sleeper)
    await studio.load()
    return studio
