"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemoryCapsConfig(Base):
    """Administrative caps applied to every memory query."""
    max_top_k: int = 12                 # Hard ceiling on requested topK
    max_query_chars: int = 2000         # Query text is truncated to this length


class DecayConfig(Base):
    """
    Relevance decay for retrieved memories.

    Modes:
    - time: half_life is measured in days since the memory timestamp
    - messageCount: half_life is measured in scene messages since the timestamp
    """
    enabled: bool = False
    mode: Literal["time", "messageCount"] = "time"
    half_life: float | None = Field(default=None, ge=0.0)  # Defaults: 7 days (time), 50 messages (messageCount)
    floor: float = Field(default=0.3, ge=0.0, le=1.0)  # Decay factor never drops below this


class BoostRule(Base):
    """Multiplicative score boost applied when a memory matches a condition."""
    field: str                          # "text", "emotion", or a dotted metadata path
    match: str | int | float | bool
    match_type: Literal["exact", "substring"] = "exact"
    case_insensitive: bool = True
    boost: float = 1.0


class MemoryConfig(Base):
    """Memory retrieval configuration."""
    caps: MemoryCapsConfig = Field(default_factory=MemoryCapsConfig)
    temporal_decay: DecayConfig = Field(default_factory=DecayConfig)
    conditional_rules: list[BoostRule] = Field(default_factory=list)


class LoreConfig(Base):
    """Lore selection configuration."""
    token_budget: int = 2048            # Max tokens of lore injected per turn
    scan_depth: int = 4                 # Recent history lines scanned for keys


class ContextConfig(Base):
    """Per-turn context assembly configuration."""
    history_window: int = 0             # Most recent history lines kept (0 = all)
    memory_top_k: int = 5
    memory_min_similarity: float = 0.3
    memory_max_tokens: int | None = None
    include_multi_character: bool = False


class Config(BaseSettings):
    """Root configuration for lorekeeper."""
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    lore: LoreConfig = Field(default_factory=LoreConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)

    model_config = ConfigDict(
        env_prefix="LOREKEEPER_",
        env_nested_delimiter="__"
    )
