"""Per-turn context pipeline: lore + memories -> MessageContext -> messages."""

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from lorekeeper.config.schema import Config
from lorekeeper.context.assembler import ContextAssembler
from lorekeeper.context.models import ChatMessage, ContextMetadata, JsonSpec, MessageContext
from lorekeeper.lore.lorebook import Lorebook
from lorekeeper.lore.models import LoreEntry
from lorekeeper.lore.selector import LoreSelector, format_lore
from lorekeeper.memory.collaborators import to_character_ref
from lorekeeper.memory.models import CharacterRef, RetrievalOptions
from lorekeeper.memory.retriever import MemoryRetriever, format_memory


@dataclass
class TurnContext:
    """What the orchestrator knows about the turn being generated."""
    character: Optional[CharacterRef | str | dict] = None
    scene_id: Optional[int] = None
    round_number: Optional[int] = None
    world_id: Optional[int | str] = None
    user_persona_name: Optional[str] = None
    agent_name: Optional[str] = None
    user_input: Optional[str] = None
    chat_history: list[str] = field(default_factory=list)
    current_round_messages: list[str] = field(default_factory=list)
    lore_entries: list[LoreEntry | dict] = field(default_factory=list)
    lorebook: Optional[Lorebook] = None  # Its scan_depth and token_budget override config.lore
    summary: Optional[str] = None
    pre_system_prompt: Optional[str] = None
    final_system_prompt: Optional[str] = None
    json_spec: Optional[JsonSpec | dict] = None
    memory_query: Optional[str] = None


class ContextPipeline:
    """
    Builds the prompt context for one character turn.

    Lore selection and memory retrieval run independently: if either
    fails its section is left empty and the turn still goes ahead.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        retriever: Optional[MemoryRetriever] = None,
        selector: Optional[LoreSelector] = None,
        assembler: Optional[ContextAssembler] = None,
    ):
        self.config = config or Config()
        self.retriever = retriever
        self.selector = selector or LoreSelector(self.config)
        self.assembler = assembler or ContextAssembler()

    async def build_context(self, turn: TurnContext) -> MessageContext:
        """
        Gather lore and memories for a turn.

        Args:
            turn: Scene, character and conversation state for this turn

        Returns:
            A MessageContext ready for the assembler.
        """
        history = self._window(turn.chat_history)
        character = self._resolve_character(turn.character)

        lore = self._select_lore(turn, history)
        memories = await self._retrieve_memories(turn, character)

        try:
            return MessageContext(
                pre_system_prompt=turn.pre_system_prompt,
                memories=memories,
                lore=lore,
                summary=turn.summary,
                chat_history=history,
                current_round_messages=list(turn.current_round_messages or []),
                final_system_prompt=turn.final_system_prompt,
                user_input=turn.user_input,
                json_spec=self._json_spec(turn.json_spec),
                metadata=ContextMetadata(
                    agent_name=turn.agent_name,
                    scene_id=turn.scene_id,
                    round_number=turn.round_number,
                    character_name=character.label if character else None,
                    user_persona_name=turn.user_persona_name,
                ),
            )
        except Exception as e:
            logger.error(f"Failed to build message context for scene {turn.scene_id}: {e}")
            return MessageContext(lore=lore, memories=memories, chat_history=history)

    async def run(self, turn: TurnContext) -> list[ChatMessage]:
        """Build the context for a turn and render it into chat messages."""
        context = await self.build_context(turn)
        return self.assembler.assemble(context)

    def _window(self, history: list[str]) -> list[str]:
        lines = list(history or [])
        window = self.config.context.history_window
        if window > 0:
            return lines[-window:]
        return lines

    def _resolve_character(self, raw: Any) -> Optional[CharacterRef]:
        if self.retriever is not None:
            return self.retriever.resolve_character(raw)
        return to_character_ref(raw)

    @staticmethod
    def _json_spec(raw: Optional[JsonSpec | dict]) -> Optional[JsonSpec]:
        if raw is None or isinstance(raw, JsonSpec):
            return raw
        return JsonSpec.model_validate(raw)

    def _lore_setting(self, turn: TurnContext, name: str) -> int:
        value = getattr(turn.lorebook, name) if turn.lorebook is not None else None
        return value if value is not None else getattr(self.config.lore, name)

    def _scene_text(self, turn: TurnContext, history: list[str]) -> str:
        depth = self._lore_setting(turn, "scan_depth")
        scanned = history[-depth:] if depth > 0 else history
        parts = [*scanned, *(turn.current_round_messages or []), turn.user_input or ""]
        return "\n".join(p for p in parts if p)

    def _select_lore(self, turn: TurnContext, history: list[str]) -> list[str]:
        if not turn.lore_entries and turn.lorebook is None:
            return []
        try:
            entries = [e if isinstance(e, LoreEntry) else LoreEntry.from_dict(e) for e in turn.lore_entries]
            if turn.lorebook is not None:
                entries.extend(turn.lorebook.enabled_entries)
            selection = self.selector.select(
                entries,
                self._scene_text(turn, history),
                self._lore_setting(turn, "token_budget"),
            )
            return format_lore(selection)
        except Exception as e:
            logger.warning(f"Lore selection failed for scene {turn.scene_id}: {e}")
            return []

    async def _retrieve_memories(self, turn: TurnContext, character: Optional[CharacterRef]) -> list[str]:
        if self.retriever is None or character is None:
            return []
        query = turn.memory_query or turn.user_input or ""
        if not query.strip():
            return []
        try:
            ctx = self.config.context
            options = RetrievalOptions(
                world_id=turn.world_id,
                character=character,
                top_k=ctx.memory_top_k,
                min_similarity=ctx.memory_min_similarity,
                include_multi_character=ctx.include_multi_character,
                max_tokens=ctx.memory_max_tokens,
            )
            memories = await self.retriever.query(query, options)
            return [format_memory(m) for m in memories]
        except Exception as e:
            logger.warning(f"Memory retrieval failed for {character.label}: {e}")
            return []
