"""
Tests for the identity merge resolver

Tests for anidirector/services/identity.py
"""

from anidirector.schemas import Character, Scene, SecondaryCharacter, StoryConfig
from anidirector.services.identity import CharacterRoster, match_key, used_names


def _c(name: str, cid: str | None = None, **kwargs) -> Character:
    return Character(id=cid or f"id-{name}", name=name, **kwargs)


class TestMerge:
    """Tests for merge-by-name."""

    def test_match_key_is_name(self):
        assert match_key(_c("Tico")) == "Tico"

    def test_merge_replaces_in_place(self):
        """Casting an existing name replaces the member, length stays 1."""
        roster = CharacterRoster([_c("Tico", "old")])
        roster.merge(Character(id="new", name="Tico", description="updated"))

        assert len(roster) == 1
        assert roster.members[0].id == "new"
        assert roster.members[0].description == "updated"

    def test_merge_keeps_position(self):
        roster = CharacterRoster([_c("A"), _c("B"), _c("C")])
        roster.merge(_c("B", "b2"))
        assert [c.id for c in roster] == ["id-A", "b2", "id-C"]

    def test_merge_appends_new_name(self):
        roster = CharacterRoster([_c("Tico")])
        roster.merge(_c("Kitten"))
        assert [c.name for c in roster] == ["Tico", "Kitten"]

    def test_merge_is_idempotent(self):
        """Merging the same character twice yields one entry."""
        roster = CharacterRoster()
        candidate = _c("Tico", description="rabbit")
        roster.merge(candidate)
        roster.merge(candidate)
        assert len(roster) == 1

    def test_match_is_case_sensitive(self):
        roster = CharacterRoster([_c("Tico")])
        roster.merge(_c("tico"))
        assert len(roster) == 2

    def test_merge_is_last_write_wins(self):
        """The candidate's fields replace the stored ones, even when empty."""
        roster = CharacterRoster([_c("Tico", image_ref="data:old")])
        roster.merge(Character(id="x", name="Tico"))
        assert roster.find("Tico").image_ref is None

    def test_merge_stores_a_copy(self):
        roster = CharacterRoster()
        candidate = _c("Tico")
        roster.merge(candidate)
        candidate.description = "mutated later"
        assert roster.find("Tico").description == ""

    def test_merge_all_in_order(self):
        roster = CharacterRoster([_c("Tico", "t0")])
        roster.merge_all([_c("Tico", "t1"), _c("Kitten"), _c("Tico", "t2")])
        assert [(c.name, c.id) for c in roster] == [("Tico", "t2"), ("Kitten", "id-Kitten")]

    def test_duplicate_names_later_wins(self):
        """With duplicated names in the roster the later member is matched."""
        roster = CharacterRoster([_c("Tico", "first"), _c("Tico", "second")])
        assert roster.find("Tico").id == "second"
        roster.merge(_c("Tico", "third"))
        assert [c.id for c in roster] == ["first", "third"]

    def test_rename_keeps_id_replaces_in_place(self):
        """A renamed record with the same id replaces the old one, ids stay unique."""
        roster = CharacterRoster([_c("Bo", "c1"), _c("Kitten", "k")])
        roster.merge(Character(id="c1", name="Bob"))
        assert [(c.id, c.name) for c in roster] == [("c1", "Bob"), ("k", "Kitten")]

    def test_name_match_drops_other_member_with_same_id(self):
        roster = CharacterRoster([_c("Tico", "t"), _c("Kitten", "k")])
        roster.merge(Character(id="t", name="Kitten"))
        assert [(c.id, c.name) for c in roster] == [("t", "Kitten")]

    def test_repeated_ids_collapse_to_last(self):
        roster = CharacterRoster([_c("Old", "x"), _c("Other", "y"), _c("New", "x")])
        assert [(c.id, c.name) for c in roster] == [("x", "New"), ("y", "Other")]
        roster.replace([_c("A", "z"), _c("B", "z")])
        assert [c.name for c in roster] == ["B"]


class TestUsedBy:
    """Tests for selecting the roster members a project uses."""

    def test_used_names(self):
        config = StoryConfig(
            protagonist_name="Tico",
            rescue_target_name="Kitten",
            secondary_characters=[SecondaryCharacter(name="Driver")],
            observer="Old farmer",
        )
        assert used_names(config) == {"Tico", "Kitten", "Driver", "Old farmer"}

    def test_used_by_filters_and_keeps_order(self):
        roster = CharacterRoster([_c("Driver"), _c("Stranger"), _c("Tico")])
        config = StoryConfig(
            protagonist_name="Tico",
            secondary_characters=[SecondaryCharacter(name="Driver")],
        )
        assert [c.name for c in roster.used_by(config)] == ["Driver", "Tico"]

    def test_used_by_reads_live_roster(self):
        roster = CharacterRoster()
        config = StoryConfig(protagonist_name="Tico")
        assert roster.used_by(config) == []
        roster.merge(_c("Tico"))
        assert len(roster.used_by(config)) == 1

    def test_empty_names_never_match(self):
        roster = CharacterRoster([_c("")])
        assert roster.used_by(StoryConfig()) == []


class TestSceneReferences:
    """Tests for per-scene reference resolution."""

    def test_substring_both_directions(self):
        roster = CharacterRoster([
            _c("Tico", image_ref="data:tico"),
            _c("Train driver", image_ref="data:driver"),
            _c("Kitten", image_ref="data:kitten"),
        ])
        scene = Scene(id=1, involved_character_names=["Tico the rabbit", "driver"])
        refs = roster.scene_references(scene, StoryConfig(protagonist_name="Kitten"))

        assert [c.name for c in refs.characters] == ["Tico", "Train driver"]
        assert refs.images == ["data:tico", "data:driver"]

    def test_falls_back_to_protagonist(self):
        roster = CharacterRoster([_c("Tico", image_ref="data:tico"), _c("Kitten")])
        scene = Scene(id=1, involved_character_names=["Nobody"])
        refs = roster.scene_references(scene, StoryConfig(protagonist_name="Tico"))
        assert refs.images == ["data:tico"]
        assert refs.descriptions == ["Name: Tico, Appearance: "]

    def test_no_match_no_protagonist(self):
        roster = CharacterRoster([_c("Kitten")])
        refs = roster.scene_references(Scene(id=1), StoryConfig())
        assert refs.characters == []
        assert refs.images == []

    def test_images_are_capped(self):
        roster = CharacterRoster([_c(f"C{i}", image_ref=f"data:{i}") for i in range(5)])
        scene = Scene(id=1, involved_character_names=[f"C{i}" for i in range(5)])
        refs = roster.scene_references(scene, StoryConfig(), max_images=3)
        assert refs.images == ["data:0", "data:1", "data:2"]
        assert len(refs.descriptions) == 5

    def test_members_without_image_contribute_description_only(self):
        roster = CharacterRoster([_c("Tico", description="white rabbit")])
        refs = roster.scene_references(Scene(id=1, involved_character_names=["Tico"]), StoryConfig())
        assert refs.images == []
        assert refs.descriptions == ["Name: Tico, Appearance: white rabbit"]
