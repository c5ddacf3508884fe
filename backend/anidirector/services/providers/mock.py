"""Offline mock collaborator: deterministic text, placeholder images.

Used when USE_MOCK_API is set so the whole workflow runs without network
access or credentials.
"""

from __future__ import annotations

import base64
import io
import logging
from typing import Any, Sequence

from PIL import Image, ImageDraw, ImageFont

from anidirector.schemas import StoryConfig
from anidirector.services.providers import ImageMode

logger = logging.getLogger(__name__)

_CANVAS_SIZES = {
    "16:9": (640, 360),
    "4:3": (640, 480),
    "9:16": (360, 640),
}

# Twenty-frame rescue-story template: (act, camera)
_TEMPLATE: list[tuple[int, str]] = [
    (1, "Wide"), (1, "POV"), (1, "Close-up"), (1, "Dynamic"), (1, "Medium"), (1, "Medium"),
    (2, "Dynamic"), (2, "Side"), (2, "Face close-up"), (2, "POV"), (2, "Close-up"), (2, "Wide"),
    (3, "Medium"), (3, "Medium"), (3, "Close-up"), (3, "Close-up"),
    (3, "Medium"), (3, "Medium"), (3, "Medium"), (3, "Wide"),
]


def render_placeholder(label: str, text: str, aspect_ratio: str = "16:9") -> str:
    """Render a solid-color PNG with a label and return it as a data URI."""
    size = _CANVAS_SIZES.get(aspect_ratio, _CANVAS_SIZES["16:9"])
    img = Image.new("RGB", size, color=(35, 35, 60))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()

    draw.text((20, 20), label, fill=(255, 255, 255), font=font)
    wrapped = text[:100] + "..." if len(text) > 100 else text
    draw.text((20, 50), wrapped, fill=(180, 180, 220), font=font)
    draw.text((20, size[1] - 30), "[MOCK IMAGE - Ani-Director]", fill=(100, 100, 140), font=font)

    buf = io.BytesIO()
    img.save(buf, "PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class MockMediaClient:
    """MediaGenerator that never leaves the process."""

    def __init__(self) -> None:
        self.image_calls = 0

    async def generate_idea(self) -> dict[str, Any]:
        return {
            "title": "The Rabbit and the Train",
            "protagonistName": "Tico",
            "protagonistDescription": "Fluffy white rabbit with blue eyes",
            "rescueTargetName": "Baby kitten",
            "rescueTargetDescription": "Small white kitten with blue eyes",
            "dangerThreat": "Freight train",
            "dangerTool": "Fallen branch",
            "dangerLocation": "Railway tracks",
            "setting": "Sunset mountains",
            "secondaryCharacterName": "Train driver",
            "secondaryCharacterDescription": "Middle-aged driver in a blue cap",
        }

    async def generate_storyboard(self, config: StoryConfig) -> dict[str, Any]:
        hero = config.protagonist_name or "Hero"
        scenes = []
        for idx, (act, camera) in enumerate(_TEMPLATE, start=1):
            scenes.append({
                "id": idx,
                "act": f"Act {act}",
                "duration": 3,
                "visualDescription": f"Scene {idx}: {hero} near {config.danger_location or 'the danger'}",
                "generationPrompt": f"3D animation still, {camera.lower()} shot of {hero}",
                "cameraAngle": camera,
                "involvedCharacterNames": [hero],
            })
        return {"overallStyleNote": "Pixar-style 3D animation, warm palette", "scenes": scenes}

    async def generate_character_design(self, name: str, description: str) -> str:
        return render_placeholder(f"Character: {name}", description, "4:3")

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
        self.image_calls += 1
        label = f"{ImageMode(mode).value} #{self.image_calls} ({len(reference_images)} refs)"
        logger.debug("Mock image: %s", label)
        return render_placeholder(label, prompt, aspect_ratio)
