"""Interfaces of the services the memory retriever depends on.

None of these are implemented here: the similarity index, the message
store and the character/world roster belong to the host application.
"""

from typing import Any, Protocol

from lorekeeper.memory.models import CharacterRef, WorldRef


class SimilaritySearch(Protocol):
    """Vector similarity search over scoped memory partitions."""

    async def query(
        self,
        text: str,
        scope: str,
        top_k: int,
        min_similarity: float,
    ) -> list[Any]:
        """
        Return up to top_k hits in scope with similarity >= min_similarity.

        Hits are SearchHit instances or dicts with text/similarity/metadata.
        May raise when the scope does not exist.
        """
        ...


class MessageCounter(Protocol):
    """Counts scene messages, used by message-count decay."""

    async def get_message_count_since(self, scene_id: int, timestamp: Any) -> int:
        """Number of messages in scene_id after timestamp."""
        ...


class Roster(Protocol):
    """Enumerates known characters and worlds."""

    def list_characters(self) -> list[Any]:
        """Records shaped like {id, name}."""
        ...

    def list_worlds(self) -> list[Any]:
        """Records shaped like {id, name}."""
        ...


def _record_fields(raw: Any) -> tuple[str, str]:
    if isinstance(raw, (CharacterRef, WorldRef)):
        return raw.id, raw.name
    if isinstance(raw, dict):
        raw_id, raw_name = raw.get("id"), raw.get("name")
    elif isinstance(raw, (str, int)):
        raw_id, raw_name = raw, None
    else:
        raw_id, raw_name = getattr(raw, "id", None), getattr(raw, "name", None)
    record_id = str(raw_id) if raw_id not in (None, "") else ""
    name = str(raw_name) if raw_name not in (None, "") else ""
    return record_id or name, name


def to_character_ref(raw: Any) -> CharacterRef | None:
    """Normalize a roster record or identifier into a CharacterRef."""
    record_id, name = _record_fields(raw)
    if not record_id:
        return None
    return CharacterRef(id=record_id, name=name)


def to_world_ref(raw: Any) -> WorldRef | None:
    """Normalize a roster record or identifier into a WorldRef."""
    record_id, name = _record_fields(raw)
    if not record_id:
        return None
    return WorldRef(id=record_id, name=name)
