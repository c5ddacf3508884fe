"""OpenRouter collaborator — story ideas, storyboard plans and images.

Text calls use JSON mode on the chat-completions endpoint. Image calls send
the prompt plus up to MAX_REFERENCE_IMAGES inline reference portraits to a
multimodal image model and return the first image found in the response.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Sequence

import httpx

from anidirector.config import Settings, get_settings
from anidirector.errors import GenerationError
from anidirector.schemas import StoryConfig
from anidirector.services.providers import ImageMode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Status code classification
# ---------------------------------------------------------------------------

_TRANSIENT_STATUS = {408, 429, 500, 502, 503, 504}
_PERMANENT_STATUS = {401, 402, 403}

STYLE_PROMPT = (
    "3D Pixar-style animation, Unreal Engine 5 render, highly detailed fur texture "
    "(if animal), expressive characters, cinematic lighting, warm color palette."
)

IDEA_SYSTEM_PROMPT = "You are a creative story assistant for 3D animated shorts."

IDEA_USER_PROMPT = """Invent one heartwarming rescue story for a 3D animated short.
A small animal uses a tool to save something from a huge threat; another character
(often a human) first misunderstands, then realises the truth.

Return a JSON object with the keys: title, protagonistName, protagonistDescription,
rescueTargetName, rescueTargetDescription, dangerThreat, dangerTool, dangerLocation,
setting, secondaryCharacterName, secondaryCharacterDescription."""

PLAN_SYSTEM_PROMPT = "You are a specialized 3D Animation Storyboard Director."

PLAN_USER_PROMPT = """Complete the fixed 20-frame, 60-second rescue story template.

[Cast]
{cast}

[Story]
- Rescue target: {target}
- Incoming threat: {threat}
- Tool used against the threat: {tool}
- Where the danger happens: {location}
- Setting: {setting}

Acts: frames 1-6 are Act 1 (danger discovered), 7-12 Act 2 (chase and reversal),
13-20 Act 3 (reconciliation). Return a JSON object with "overallStyleNote" and
"scenes"; each scene has id, act, duration (2-3 s), visualDescription,
generationPrompt (English, must describe the characters shown), cameraAngle and
involvedCharacterNames (exact cast names)."""


def _mask_key(key: str) -> str:
    """Mask an API key for safe logging: show first 8 and last 4 chars."""
    if len(key) <= 16:
        return "***"
    return f"{key[:8]}...{key[-4:]}"


def _extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from text that may be wrapped in markdown fences."""
    m = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if m:
        text = m.group(1).strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse JSON from model response: %s\nRaw text: %.500s", e, text)
        raise GenerationError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise GenerationError(f"Model returned {type(parsed).__name__}, expected an object")
    return parsed


def _data_uri_parts(data_uri: str) -> tuple[str, str] | None:
    m = re.match(r"^data:(.+?);base64,(.+)$", data_uri, re.DOTALL)
    if not m:
        return None
    return m.group(1), m.group(2)


class OpenRouterMediaClient:
    """MediaGenerator backed by the OpenRouter chat-completions API."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._http_client = http_client
        self.url = f"{self.settings.OPENROUTER_BASE_URL}/chat/completions"

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared client, creating it on first use."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.settings.GENERATION_TIMEOUT)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    async def _post(self, body: dict[str, Any], caller: str) -> dict[str, Any]:
        key = self.settings.OPENROUTER_API_KEY
        if not key:
            raise GenerationError("No OpenRouter API key configured", status_code=401)

        headers = {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "X-Title": self.settings.APP_NAME,
        }
        logger.info("[%s] Calling model=%s key=%s", caller, body.get("model"), _mask_key(key))

        try:
            response = await self._get_client().post(self.url, headers=headers, json=body)
        except httpx.TimeoutException as e:
            raise GenerationError(f"{caller} timed out", status_code=408, transient=True) from e
        except httpx.TransportError as e:
            raise GenerationError(f"{caller} transport error: {e}", transient=True) from e

        status = response.status_code
        if status in _TRANSIENT_STATUS:
            raise GenerationError(f"{caller}: HTTP {status}", status_code=status, transient=True)
        if status in _PERMANENT_STATUS:
            raise GenerationError(
                f"{caller}: API key rejected (HTTP {status}); check billing and permissions",
                status_code=status,
            )
        if status >= 400:
            raise GenerationError(f"{caller}: HTTP {status}", status_code=status)

        data = response.json()
        if data.get("error"):
            error = data["error"]
            code = error.get("code", 0) if isinstance(error, dict) else 0
            raise GenerationError(
                f"{caller}: API error: {error}",
                status_code=code if isinstance(code, int) else 0,
                transient=code in _TRANSIENT_STATUS,
            )
        return data

    async def _json_call(self, system_prompt: str, user_prompt: str, caller: str) -> dict[str, Any]:
        body = {
            "model": self.settings.STORY_MODEL,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.8,
        }
        data = await self._post(body, caller)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"{caller}: malformed response") from e
        if not content:
            raise GenerationError(f"{caller}: empty response")
        return _extract_json(content)

    # -----------------------------------------------------------------------
    # Text
    # -----------------------------------------------------------------------

    async def generate_idea(self) -> dict[str, Any]:
        return await self._json_call(IDEA_SYSTEM_PROMPT, IDEA_USER_PROMPT, "story_idea")

    async def generate_storyboard(self, config: StoryConfig) -> dict[str, Any]:
        cast = [f"1. Protagonist: {config.protagonist_name} ({config.protagonist_description})"]
        for idx, sc in enumerate(config.secondary_characters, start=2):
            cast.append(f"{idx}. Supporting: {sc.name} ({sc.description})")
        if config.observer:
            cast.append(f"*. Observer (human): {config.observer}")

        prompt = PLAN_USER_PROMPT.format(
            cast="\n".join(cast),
            target=config.rescue_target_name,
            threat=config.danger_threat,
            tool=config.danger_tool,
            location=config.danger_location,
            setting=config.setting,
        )
        return await self._json_call(PLAN_SYSTEM_PROMPT, prompt, "storyboard_plan")

    # -----------------------------------------------------------------------
    # Images
    # -----------------------------------------------------------------------

    async def generate_character_design(self, name: str, description: str) -> str:
        prompt = (
            "Character design sheet for 3D animation (Pixar style).\n"
            f"Name: {name}\n"
            f"Visual description: {description}\n"
            f"Style: {STYLE_PROMPT}\n"
            "Composition: white background, single hero pose, soft studio lighting."
        )
        return await self._image_call(prompt, [], self.settings.IMAGE_MODEL, "character_design")

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
        char_context = ""
        if character_descriptions:
            lines = "\n".join(f"- {d}" for d in character_descriptions)
            char_context = (
                f"\n\n[CHARACTERS IN SCENE]\n{lines}\n"
                "Make sure these characters appear as described and match the reference images."
            )

        if ImageMode(mode) is ImageMode.BOARD:
            text = (
                "Role: professional 3D animation storyboard artist.\n"
                f"Task: create a storyboard panel.\n\nINPUT PROMPT:\n{prompt}{char_context}\n\n"
                f"Style: {STYLE_PROMPT}\n"
                "Layout: 4 panels in a grid showing the sequence of action, 3D arrows for movement.\n"
                f"Aspect ratio: {aspect_ratio}"
            )
        else:
            text = (
                f"Style: {STYLE_PROMPT}\nScene description: {prompt}\n"
                f"Aspect ratio: {aspect_ratio}{char_context}\n"
                "Make it look like a high-budget animated movie screenshot."
            )
            if reference_images:
                text += "\nCRITICAL: the characters MUST look like the attached reference images."

        refs = list(reference_images)[: self.settings.MAX_REFERENCE_IMAGES]
        return await self._image_call(text, refs, model or self.settings.IMAGE_MODEL, "scene_image")

    async def _image_call(
        self,
        text: str,
        reference_images: Sequence[str],
        model: str,
        caller: str,
    ) -> str:
        user_content: list[dict[str, Any]] = []
        for ref in reference_images:
            if _data_uri_parts(ref) is None:
                logger.warning("[%s] Skipping reference that is not a data URI", caller)
                continue
            user_content.append({"type": "image_url", "image_url": {"url": ref}})
        user_content.append({"type": "text", "text": text})

        body = {
            "model": model,
            "messages": [{"role": "user", "content": user_content}],
            "modalities": ["text", "image"],
        }
        data = await self._post(body, caller)

        choices = data.get("choices") or []
        if not choices:
            raise GenerationError(f"{caller}: empty choices")

        choice = choices[0]
        finish_reason = choice.get("finish_reason", "")
        if finish_reason in ("content_filter", "safety"):
            raise GenerationError(
                f"{caller}: image blocked by content filter (finish_reason={finish_reason})"
            )

        image = self._extract_image(choice.get("message") or {})
        if image is None:
            raise GenerationError(f"{caller}: model returned no image data (finish_reason={finish_reason})")
        return image

    @staticmethod
    def _extract_image(message: dict[str, Any]) -> str | None:
        """Find the first inline image in a chat message and return it as a data URI."""
        # Strategy 1: OpenRouter "images" array
        for part in message.get("images") or []:
            url = (part.get("image_url") or {}).get("url", "")
            if url.startswith("data:"):
                return url

        # Strategy 2: multimodal content array
        content = message.get("content")
        if isinstance(content, list):
            for part in content:
                if part.get("type") == "image_url":
                    url_obj = part.get("image_url", {})
                    url = url_obj.get("url", "") if isinstance(url_obj, dict) else str(url_obj)
                    if url.startswith("data:"):
                        return url
                inline = part.get("inline_data")
                if inline and inline.get("data"):
                    mime = inline.get("mime_type", "image/png")
                    return f"data:{mime};base64,{inline['data']}"
        return None
