"""lorekeeper memory retrieval.

Scoped similarity queries, decay and conditional boosting of relevance
scores, and token counting for prompt budgets.
"""

from lorekeeper.memory.collaborators import (
    MessageCounter,
    Roster,
    SimilaritySearch,
    to_character_ref,
    to_world_ref,
)
from lorekeeper.memory.models import (
    CharacterRef,
    RetrievalOptions,
    RetrievedMemory,
    SearchHit,
    WorldRef,
)
from lorekeeper.memory.retriever import (
    MemoryRetriever,
    format_memories_for_prompt,
    format_memory,
)
from lorekeeper.memory.scoring import (
    apply_conditional_boost,
    compute_decay_adjusted_score,
    detect_emotion,
    get_nested_field,
    parse_timestamp,
    score_memory,
)
from lorekeeper.memory.token_counter import TokenCounter, count_tokens, get_token_counter

__all__ = [
    "MessageCounter",
    "Roster",
    "SimilaritySearch",
    "to_character_ref",
    "to_world_ref",
    "CharacterRef",
    "RetrievalOptions",
    "RetrievedMemory",
    "SearchHit",
    "WorldRef",
    "MemoryRetriever",
    "format_memories_for_prompt",
    "format_memory",
    "apply_conditional_boost",
    "compute_decay_adjusted_score",
    "detect_emotion",
    "get_nested_field",
    "parse_timestamp",
    "score_memory",
    "TokenCounter",
    "count_tokens",
    "get_token_counter",
]
