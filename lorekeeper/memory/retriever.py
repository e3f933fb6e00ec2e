"""Memory retrieval for per-turn context injection.

The retriever fans a query out over one or more scopes of the similarity
index, rescores every candidate (decay, then conditional boosts), ranks
them and caps the result. It never raises: a scope that cannot be
queried contributes nothing, and a retriever without a backend returns
an empty list.
"""

import asyncio
import inspect
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Callable, Optional

from loguru import logger

from lorekeeper.config.schema import Config
from lorekeeper.memory.collaborators import (
    MessageCounter,
    Roster,
    SimilaritySearch,
    to_character_ref,
    to_world_ref,
)
from lorekeeper.memory.models import CharacterRef, RetrievalOptions, RetrievedMemory, SearchHit, WorldRef
from lorekeeper.memory.scoring import score_memory, utc_now
from lorekeeper.memory.token_counter import TokenCounter, get_token_counter
from lorekeeper.utils.scopes import SHARED_LABEL, character_scope, parse_scope, shared_scope

MAX_SHARED_RESULTS = 3


@dataclass(frozen=True)
class _ScopeTarget:
    scope: str
    label: str
    limit: int


class MemoryRetriever:
    """
    Queries scoped memories and returns them ranked by adjusted score.

    Routing:
    - world + character: that character's scope only
    - world only: every roster character in the world
    - nothing: every roster world x every roster character
    - character only: that character in every roster world
    - include_multi_character: also the shared scope of each world,
      capped at 3 results per shared scope
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        search: Optional[SimilaritySearch] = None,
        search_factory: Optional[Callable[[], Any]] = None,
        roster: Optional[Roster] = None,
        message_counter: Optional[MessageCounter] = None,
        token_counter: Optional[TokenCounter] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the retriever.

        Args:
            config: Caps, decay and boost defaults (uses defaults if None)
            search: Similarity-search backend, if already available
            search_factory: Zero-arg callable creating the backend on first use
            roster: Character/world enumeration for fan-out queries
            message_counter: Message counts for messageCount decay
            token_counter: Used when a query sets max_tokens
            clock: Reference time for time decay
        """
        self.config = config or Config()
        self.search = search
        self.search_factory = search_factory
        self.roster = roster
        self.message_counter = message_counter
        self.token_counter = token_counter
        self.clock = clock

    async def initialize(self) -> bool:
        """Create the similarity-search backend if needed.

        Returns:
            True when a backend is available.
        """
        if self.search is not None:
            return True
        if self.search_factory is None:
            logger.debug("No similarity-search backend or factory configured")
            return False
        try:
            backend = self.search_factory()
            if inspect.isawaitable(backend):
                backend = await backend
            self.search = backend
            logger.info("MemoryRetriever initialized with similarity-search backend")
        except Exception as e:
            logger.warning(f"Failed to initialize similarity-search backend: {e}")
            self.search = None
        return self.search is not None

    async def query(self, query_text: str, options: Optional[RetrievalOptions] = None) -> list[RetrievedMemory]:
        """
        Query memories relevant to query_text.

        Args:
            query_text: Text to search for (truncated to the max_query_chars cap)
            options: Routing, limits and per-call scoring overrides

        Returns:
            Memories sorted by adjusted score (descending), at most top_k.
        """
        options = options or RetrievalOptions()
        try:
            if self.search is None:
                await self.initialize()
            if self.search is None:
                logger.debug("Similarity search unavailable, returning no memories")
                return []

            caps = self.config.memory.caps
            max_top_k = max(1, caps.max_top_k)
            max_query_chars = max(1, caps.max_query_chars)
            decay = options.temporal_decay if options.temporal_decay is not None else self.config.memory.temporal_decay
            rules = options.conditional_rules if options.conditional_rules is not None else self.config.memory.conditional_rules

            capped_query = (query_text or "")[:max_query_chars]
            top_k = max(1, min(options.top_k, max_top_k))

            character = self.resolve_character(options.character)
            targets = self._plan_scopes(options, character, top_k)
            logger.debug(
                f"Memory query over {len(targets)} scopes "
                f"(query {len(capped_query)} chars, topK {top_k}, requested {options.top_k})"
            )

            batches = await asyncio.gather(
                *(self._query_scope(capped_query, target, options.min_similarity) for target in targets)
            )
            candidates = [memory for batch in batches for memory in batch]

            now = self.clock()
            scored = [
                await score_memory(memory, decay, rules, self.message_counter, now)
                for memory in candidates
            ]
            scored.sort(key=lambda m: m.adjusted_score, reverse=True)

            ranked = scored[:top_k]
            if options.max_tokens is not None:
                ranked = self._pack(ranked, options.max_tokens)

            logger.debug(f"Retrieved {len(ranked)} of {len(candidates)} candidate memories")
            return ranked
        except Exception as e:
            logger.error(f"Unexpected error while querying memories: {e}")
            return []

    query_memories = query

    async def retrieve(self, scope: Optional[str] = None, query: str = "", **overrides: Any) -> list[RetrievedMemory]:
        """
        Retrieve memories for a scope string such as "world_1_char_alice".

        A "world_<id>_multi" scope retrieves only that world's shared
        memories. Any RetrievalOptions field may be passed as a keyword
        to override defaults; unknown keywords are ignored.
        """
        try:
            known = {f.name for f in fields(RetrievalOptions)}
            options = RetrievalOptions(**{k: v for k, v in overrides.items() if k in known})

            parsed = parse_scope(scope)
            if parsed is not None:
                options.world_id = parsed.world_id
                if parsed.shared:
                    options.character = None
                    options.include_multi_character = True
                    options.shared_only = True
                else:
                    options.character = parsed.character_id
            elif scope:
                logger.debug(f"Unrecognised scope {scope!r}, using option routing")

            return await self.query(query, options)
        except Exception as e:
            logger.error(f"retrieve() failed: {e}")
            return []

    def resolve_character(self, raw: Any) -> Optional[CharacterRef]:
        """Collapse a character id, name, dict or ref into one CharacterRef.

        The roster is consulted to fill in the canonical id and name; when
        that fails the raw identifier is kept as both.
        """
        if raw is None or raw == "":
            return None
        ref = to_character_ref(raw)
        if ref is None:
            return None

        for candidate in self._list_characters():
            if candidate.id == ref.id or (candidate.name and candidate.name.lower() == ref.id.lower()):
                return CharacterRef(id=candidate.id, name=candidate.name or ref.name)
        return ref if ref.name else CharacterRef(id=ref.id, name=ref.id)

    def _list_characters(self) -> list[CharacterRef]:
        if self.roster is None:
            return []
        try:
            records = self.roster.list_characters() or []
        except Exception as e:
            logger.warning(f"Failed to list characters: {e}")
            return []
        return [ref for ref in (to_character_ref(r) for r in records) if ref is not None]

    def _list_worlds(self) -> list[WorldRef]:
        if self.roster is None:
            return []
        try:
            records = self.roster.list_worlds() or []
        except Exception as e:
            logger.warning(f"Failed to list worlds: {e}")
            return []
        return [ref for ref in (to_world_ref(r) for r in records) if ref is not None]

    def _plan_scopes(
        self,
        options: RetrievalOptions,
        character: Optional[CharacterRef],
        top_k: int,
    ) -> list[_ScopeTarget]:
        if options.world_id is not None:
            world_ids = [str(options.world_id)]
        else:
            world_ids = [world.id for world in self._list_worlds()]

        targets: list[_ScopeTarget] = []
        if not options.shared_only:
            characters = [character] if character else self._list_characters()
            for world_id in world_ids:
                for char in characters:
                    targets.append(_ScopeTarget(character_scope(world_id, char.id), char.label, top_k))

        if options.include_multi_character:
            shared_limit = min(top_k, MAX_SHARED_RESULTS)
            for world_id in world_ids:
                targets.append(_ScopeTarget(shared_scope(world_id), SHARED_LABEL, shared_limit))

        return targets

    async def _query_scope(self, text: str, target: _ScopeTarget, min_similarity: float) -> list[RetrievedMemory]:
        try:
            raw_hits = await self.search.query(text, target.scope, target.limit, min_similarity)
            memories = []
            for raw in raw_hits or []:
                hit = SearchHit.coerce(raw)
                if hit is None:
                    continue
                memories.append(RetrievedMemory(
                    text=hit.text,
                    similarity=hit.similarity,
                    scope=target.scope,
                    character_name=target.label,
                    metadata=dict(hit.metadata),
                ))
        except Exception as e:
            # Scopes are created lazily, so a missing one is expected
            logger.debug(f"No memories for scope {target.scope}: {e}")
            return []

        if memories:
            logger.debug(f"Retrieved {len(memories)} memories for {target.label} in {target.scope}")
        return memories

    def _pack(self, memories: list[RetrievedMemory], max_tokens: int) -> list[RetrievedMemory]:
        counter = self.token_counter or get_token_counter()
        packed: list[RetrievedMemory] = []
        used = 0
        for memory in memories:
            cost = counter.count_tokens(memory.text)
            if used + cost > max_tokens:
                break
            packed.append(memory)
            used += cost
        return packed

    async def get_stats(self) -> dict[str, Any]:
        """Report whether the similarity-search backend is reachable."""
        try:
            if not await self.initialize():
                return {"status": "unavailable"}
            return {"status": "available", "backend": type(self.search).__name__}
        except Exception as e:
            logger.error(f"Failed to get memory stats: {e}")
            return {"status": "error", "error": str(e)}


def format_memory(memory: RetrievedMemory) -> str:
    """Format one memory as "[<confidence>%] <text>" for prompt injection.

    A leading "Speaker: " label in the stored text is dropped.
    """
    score = memory.adjusted_score if memory.adjusted_score is not None else memory.similarity
    confidence = max(0, min(100, round((score or 0.0) * 100)))
    content = memory.text or ""
    colon = content.find(": ")
    if 0 < colon < 50:
        content = content[colon + 2:]
    return f"[{confidence}%] {content.strip()}"


def format_memories_for_prompt(memories: list[RetrievedMemory]) -> str:
    """Render memories as a "## Relevant Memories" bullet block."""
    if not memories:
        return ""
    lines = ["## Relevant Memories"]
    lines.extend(f"- {format_memory(memory)}" for memory in memories)
    return "\n".join(lines) + "\n"
