"""
Tests for story idea and plan generation

Tests for anidirector/services/story_planner.py
"""

import pytest

from anidirector.errors import GenerationError
from anidirector.schemas import SecondaryCharacter, StoryConfig
from anidirector.services.story_planner import StoryPlanService, apply_idea, normalize_plan


class TestNormalizePlan:

    def test_offsets_are_cumulative(self):
        raw = {"overallStyleNote": "warm", "scenes": [
            {"id": 1, "act": "Act 1", "duration": 2},
            {"id": 2, "act": "Act 1", "duration": 3},
            {"id": 3, "act": "Act 2"},
        ]}
        storyboard = normalize_plan(raw)
        assert [s.start_offset for s in storyboard.scenes] == [0, 2, 5]
        assert storyboard.scenes[2].duration == 3
        assert [s.act for s in storyboard.scenes] == [1, 1, 2]

    def test_model_image_refs_discarded(self):
        raw = {"scenes": [{"id": 1, "act": 1, "conceptImageRef": "data:x", "boardGenerating": True}]}
        scene = normalize_plan(raw).scenes[0]
        assert scene.concept_image_ref is None
        assert scene.board_generating is False

    def test_legacy_vibe_key(self):
        assert normalize_plan({"overallVibe": "calm", "scenes": []}).overall_style_note == "calm"

    def test_bad_act_rejected(self):
        with pytest.raises(GenerationError):
            normalize_plan({"scenes": [{"id": 1, "act": "Act 9"}]})


class TestApplyIdea:

    def test_fills_fields_and_appends_secondary(self):
        config = StoryConfig(aspect_ratio="9:16")
        idea = {
            "title": "T",
            "protagonistName": "Tico",
            "secondaryCharacterName": "Driver",
            "secondaryCharacterDescription": "cap",
        }
        updated = apply_idea(config, idea)

        assert (updated.title, updated.protagonist_name) == ("T", "Tico")
        assert updated.aspect_ratio.value == "9:16"
        assert [sc.name for sc in updated.secondary_characters] == ["Driver"]
        assert config.title == ""

    def test_existing_secondary_not_duplicated(self):
        config = StoryConfig(secondary_characters=[SecondaryCharacter(name="Driver")])
        updated = apply_idea(config, {"secondaryCharacterName": "Driver"})
        assert len(updated.secondary_characters) == 1

    def test_fields_absent_from_idea_are_kept(self):
        config = StoryConfig(setting="Snowy forest")
        assert apply_idea(config, {"title": "T"}).setting == "Snowy forest"


class TestStoryPlanService:

    async def test_plan_storyboard(self, fake_client, settings, sleeper, story_config):
        service = StoryPlanService(fake_client, settings, sleep=sleeper)
        storyboard = await service.plan_storyboard(story_config)
        assert len(storyboard.scenes) == 20
        assert storyboard.scenes[-1].start_offset == 57

    async def test_plan_retries_transient_once(self, fake_client, settings, sleeper, story_config):
        fake_client.plan_errors = [GenerationError("429", status_code=429, transient=True)]
        service = StoryPlanService(fake_client, settings, sleep=sleeper)
        await service.plan_storyboard(story_config)
        assert sleeper.delays == [settings.GENERATION_RETRY_DELAY]

    async def test_suggest_idea(self, fake_client, settings, sleeper):
        service = StoryPlanService(fake_client, settings, sleep=sleeper)
        config = await service.suggest_idea(StoryConfig())
        assert config.protagonist_name == "Tico"

    async def test_invalid_idea_shape(self, fake_client, settings, sleeper):
        fake_client.idea = {"title": ["not", "a", "string"]}
        service = StoryPlanService(fake_client, settings, sleep=sleeper)
        with pytest.raises(GenerationError):
            await service.suggest_idea(StoryConfig())
