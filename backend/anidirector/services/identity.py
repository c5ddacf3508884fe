"""Identity merge resolver: decides when two character records are the same.

Matching uses one explicit key function, `match_key`, which is the
case-sensitive character name. Casting, library edits and backup restore
all merge through `CharacterRoster.merge`, so the rule is applied the same
way everywhere:

- a candidate whose key matches a roster member replaces that member in
  place (same position; id, description and image come from the candidate);
- otherwise the candidate is appended.

Two roster members are not expected to share a name. If external input
breaks that assumption the later record silently wins; the roster does not
try to repair it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from anidirector.schemas import Character, Scene, StoryConfig

logger = logging.getLogger(__name__)


def match_key(character: Character) -> str:
    """Identity key used for every roster match."""
    return character.name


def used_names(config: StoryConfig) -> set[str]:
    """Names a story config refers to: protagonist, rescue target, secondaries, observer."""
    names = {
        config.protagonist_name,
        config.rescue_target_name,
        config.observer,
    }
    names.update(sc.name for sc in config.secondary_characters)
    names.discard("")
    return names


@dataclass
class SceneReferences:
    """Portraits and descriptions handed to the collaborator for one scene."""

    characters: list[Character] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    descriptions: list[str] = field(default_factory=list)


class CharacterRoster:
    """The in-memory roster; the single source of truth on every save.

    Components receive the roster object explicitly. It never persists
    itself; callers write `members` through the store after a change.
    """

    def __init__(self, members: Iterable[Character] = ()) -> None:
        self._members: list[Character] = []
        self.replace(members)

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self):
        return iter(list(self._members))

    @property
    def members(self) -> list[Character]:
        return list(self._members)

    def by_key(self) -> dict[str, Character]:
        """Typed map keyed by `match_key`. On a duplicate name the later member wins."""
        return {match_key(c): c for c in self._members}

    def find(self, name: str) -> Character | None:
        return self.by_key().get(name)

    def index_of(self, name: str) -> int:
        """Position of the member matching `name`, or -1."""
        found = -1
        for idx, member in enumerate(self._members):
            if match_key(member) == name:
                found = idx
        return found

    def replace(self, members: Iterable[Character]) -> None:
        """Full replacement, used by the library view and by reload.

        Members repeating an id collapse to the last one.
        """
        self._members = list({c.id: c for c in members}.values())

    def merge(self, candidate: Character) -> Character:
        """Merge one candidate by name (last write wins). Returns the stored record.

        With no name match, a member holding the candidate's id is the same
        record renamed and is replaced in place. Any other member sharing the
        candidate's id is dropped, so ids stay unique.
        """
        stored = candidate.model_copy(deep=True)
        idx = self.index_of(match_key(candidate))
        if idx < 0:
            idx = next((i for i, c in enumerate(self._members) if c.id == candidate.id), -1)

        if idx >= 0:
            self._members[idx] = stored
            logger.debug("Roster: replaced %r at position %d", candidate.name, idx)
        else:
            self._members.append(stored)
            logger.debug("Roster: appended %r", candidate.name)

        self._members = [c for c in self._members if c is stored or c.id != stored.id]
        return stored

    def merge_all(self, candidates: Iterable[Character]) -> None:
        """Merge candidates one at a time, in the given order."""
        for candidate in candidates:
            self.merge(candidate)

    def used_by(self, config: StoryConfig) -> list[Character]:
        """Members a story config refers to, in roster order. Never cached."""
        names = used_names(config)
        return [c.model_copy(deep=True) for c in self._members if match_key(c) in names]

    def scene_references(
        self,
        scene: Scene,
        config: StoryConfig,
        *,
        max_images: int = 3,
    ) -> SceneReferences:
        """Resolve the reference set for one scene.

        A member is involved when its name contains, or is contained in, one
        of the scene's involved names. With no match the protagonist is used.
        Images are capped at `max_images`; descriptions are not.
        """
        wanted = [n for n in scene.involved_character_names if n]
        involved = [
            c for c in self._members
            if c.name and any(n in c.name or c.name in n for n in wanted)
        ]
        if not involved:
            main = self.find(config.protagonist_name) if config.protagonist_name else None
            if main is not None:
                involved = [main]

        refs = SceneReferences(characters=list(involved))
        for c in involved:
            if c.image_ref:
                refs.images.append(c.image_ref)
            refs.descriptions.append(f"Name: {c.name}, Appearance: {c.description}")
        refs.images = refs.images[:max_images]
        return refs
