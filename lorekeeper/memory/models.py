"""Data models for memory retrieval.

Retrieved memories are ephemeral: they are created per query, scored,
ranked and discarded once the prompt has been assembled. Scoring never
mutates a memory; it produces a copy carrying the adjusted score.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from lorekeeper.config.schema import BoostRule, DecayConfig


@dataclass(frozen=True)
class CharacterRef:
    """A character resolved against the roster."""
    id: str
    name: str

    @property
    def label(self) -> str:
        """Best-known display name, falling back to the id."""
        return self.name or self.id


@dataclass(frozen=True)
class WorldRef:
    """A world known to the roster."""
    id: str
    name: str = ""


@dataclass(frozen=True)
class SearchHit:
    """A raw result from the similarity-search collaborator."""
    text: str
    similarity: float = 0.0
    metadata: dict = field(default_factory=dict)

    @classmethod
    def coerce(cls, raw: Any) -> Optional["SearchHit"]:
        """Accept a SearchHit, a dict, or any object with text/similarity/metadata."""
        if isinstance(raw, SearchHit):
            return raw
        if isinstance(raw, dict):
            text = raw.get("text")
            similarity = raw.get("similarity")
            metadata = raw.get("metadata")
        else:
            text = getattr(raw, "text", None)
            similarity = getattr(raw, "similarity", None)
            metadata = getattr(raw, "metadata", None)
        if text is None:
            return None
        if not isinstance(metadata, dict):
            metadata = {}
        return cls(text=str(text), similarity=float(similarity or 0.0), metadata=metadata)


@dataclass(frozen=True)
class RetrievedMemory:
    """A past-conversation fact returned by the retriever.

    `similarity` is the raw score from the index; `adjusted_score` is the
    score after decay and conditional boosts and is what ranking uses.
    """
    text: str
    similarity: float
    scope: str
    character_name: str
    metadata: dict = field(default_factory=dict)
    adjusted_score: Optional[float] = None

    def __post_init__(self):
        if self.adjusted_score is None:
            object.__setattr__(self, "adjusted_score", self.similarity)


@dataclass
class RetrievalOptions:
    """Options for a single memory query.

    `world_id=None` searches every known world. `character` may be a
    CharacterRef, a plain id/name string or an {id, name} dict; it is
    resolved against the roster once per call. `shared_only` skips the
    per-character scopes and queries only the shared ones.
    """
    world_id: Optional[int | str] = None
    character: Optional[CharacterRef | str | dict] = None
    top_k: int = 5
    min_similarity: float = 0.3
    include_multi_character: bool = False
    shared_only: bool = False
    temporal_decay: Optional[DecayConfig] = None
    conditional_rules: Optional[list[BoostRule]] = None
    max_tokens: Optional[int] = None
