"""Tests for the per-turn context pipeline."""

import pytest

from fakes import FakeRoster, FakeSearch, WordCounter, hit
from lorekeeper.config.schema import Config, ContextConfig, LoreConfig
from lorekeeper.context import ContextPipeline, JsonSpec, TurnContext
from lorekeeper.lore import LoreEntry, Lorebook, LoreSelector
from lorekeeper.memory import CharacterRef, MemoryRetriever

ROSTER = FakeRoster(
    characters=[{"id": "alice", "name": "Alice"}, {"id": "bob", "name": "Bob"}],
    worlds=[{"id": 1, "name": "Eldoria"}],
)

DRAGON_LORE = {"uid": 1, "key": ["dragon"], "content": "Dragons hoard gold."}


def make_pipeline(config=None, search=None, roster=ROSTER, with_retriever=True):
    config = config or Config()
    retriever = None
    if with_retriever:
        retriever = MemoryRetriever(config=config, search=search or FakeSearch(), roster=roster)
    selector = LoreSelector(config, token_counter=WordCounter())
    return ContextPipeline(config, retriever, selector)


def turn(**kwargs):
    defaults = dict(
        character="alice",
        world_id=1,
        scene_id=7,
        round_number=3,
        user_input="Tell me about the dragon",
        user_persona_name="Sam",
    )
    defaults.update(kwargs)
    return TurnContext(**defaults)


class TestBuildContext:
    """Test building a MessageContext for a turn."""

    @pytest.mark.asyncio
    async def test_lore_and_memories(self):
        search = FakeSearch({"world_1_char_alice": [hit("Alice: I fear the dragon", 0.9)]})
        pipeline = make_pipeline(search=search)

        context = await pipeline.build_context(turn(
            chat_history=["Bob: The dragon stirs."],
            lore_entries=[DRAGON_LORE],
        ))

        assert context.lore == ["Dragons hoard gold."]
        assert context.memories == ["[90%] I fear the dragon"]
        assert context.chat_history == ["Bob: The dragon stirs."]
        assert context.metadata.character_name == "Alice"
        assert context.metadata.user_persona_name == "Sam"
        assert context.metadata.scene_id == 7
        assert context.metadata.round_number == 3
        assert search.calls[0]["text"] == "Tell me about the dragon"
        assert search.calls[0]["top_k"] == 5

    @pytest.mark.asyncio
    async def test_lore_entry_objects_accepted(self):
        entry = LoreEntry(uid=2, keys=["gate"], content="The gate is sealed.")
        context = await make_pipeline().build_context(turn(user_input="open the gate", lore_entries=[entry]))
        assert context.lore == ["The gate is sealed."]

    @pytest.mark.asyncio
    async def test_history_window(self):
        config = Config(context=ContextConfig(history_window=2))
        context = await make_pipeline(config).build_context(turn(chat_history=["Bob: 1", "Bob: 2", "Bob: 3"]))
        assert context.chat_history == ["Bob: 2", "Bob: 3"]

    @pytest.mark.asyncio
    async def test_unlimited_history_window(self):
        context = await make_pipeline().build_context(turn(chat_history=["Bob: 1", "Bob: 2", "Bob: 3"]))
        assert len(context.chat_history) == 3

    @pytest.mark.asyncio
    async def test_scan_depth_limits_lore_scan(self):
        lore = [{"uid": 1, "key": ["wyvern"], "content": "Wyverns nest in cliffs."}]
        history = ["Bob: A wyvern circles.", "Bob: Anyway.", "Bob: Let's eat."]

        shallow = Config(lore=LoreConfig(scan_depth=2))
        context = await make_pipeline(shallow).build_context(turn(user_input="hi", chat_history=history, lore_entries=lore))
        assert context.lore == []

        deep = Config(lore=LoreConfig(scan_depth=0))
        context = await make_pipeline(deep).build_context(turn(user_input="hi", chat_history=history, lore_entries=lore))
        assert context.lore == ["Wyverns nest in cliffs."]

    @pytest.mark.asyncio
    async def test_current_round_scanned_for_lore(self):
        context = await make_pipeline().build_context(turn(
            user_input="hi",
            current_round_messages=["Bob: Look, a dragon!"],
            lore_entries=[DRAGON_LORE],
        ))
        assert context.lore == ["Dragons hoard gold."]

    @pytest.mark.asyncio
    async def test_lore_budget_from_config(self):
        config = Config(lore=LoreConfig(token_budget=2))
        context = await make_pipeline(config).build_context(turn(lore_entries=[DRAGON_LORE]))
        assert context.lore == []

    @pytest.mark.asyncio
    async def test_lorebook_settings_override_config(self):
        history = ["Bob: A wyvern circles.", "Bob: Anyway.", "Bob: Let's eat."]
        book = Lorebook(
            "Eldoria",
            [LoreEntry(uid=1, keys=["wyvern"], content="Wyverns nest in cliffs.")],
            scan_depth=3,
        )
        shallow = Config(lore=LoreConfig(scan_depth=2))
        context = await make_pipeline(shallow).build_context(turn(user_input="hi", chat_history=history, lorebook=book))
        assert context.lore == ["Wyverns nest in cliffs."]

        book.token_budget = 2
        context = await make_pipeline(shallow).build_context(turn(user_input="hi", chat_history=history, lorebook=book))
        assert context.lore == []

    @pytest.mark.asyncio
    async def test_lorebook_without_settings_uses_config(self):
        book = Lorebook("Eldoria", [
            LoreEntry.from_dict(DRAGON_LORE),
            LoreEntry(uid=2, keys=["dragon"], content="Dragons sleep.", enabled=False),
        ])
        context = await make_pipeline().build_context(turn(lorebook=book))
        assert context.lore == ["Dragons hoard gold."]

        config = Config(lore=LoreConfig(token_budget=2))
        context = await make_pipeline(config).build_context(turn(lorebook=book))
        assert context.lore == []

    @pytest.mark.asyncio
    async def test_memory_query_override(self):
        search = FakeSearch()
        await make_pipeline(search=search).build_context(turn(memory_query="gold"))
        assert search.calls[0]["text"] == "gold"

    @pytest.mark.asyncio
    async def test_memory_options_from_config(self):
        config = Config(context=ContextConfig(memory_top_k=2, memory_min_similarity=0.6, include_multi_character=True))
        search = FakeSearch()
        await make_pipeline(config, search=search).build_context(turn())
        assert search.calls == [
            {"text": "Tell me about the dragon", "scope": "world_1_char_alice", "top_k": 2, "min_similarity": 0.6},
            {"text": "Tell me about the dragon", "scope": "world_1_multi", "top_k": 2, "min_similarity": 0.6},
        ]

    @pytest.mark.asyncio
    async def test_character_ref_accepted(self):
        search = FakeSearch()
        context = await make_pipeline(search=search).build_context(turn(character=CharacterRef("bob", "Bob")))
        assert context.metadata.character_name == "Bob"
        assert search.scopes == ["world_1_char_bob"]

    @pytest.mark.asyncio
    async def test_json_spec_dict(self):
        context = await make_pipeline().build_context(turn(json_spec={"mode": "schema", "schema": {"type": "object"}}))
        assert isinstance(context.json_spec, JsonSpec)
        assert context.json_spec.schema_ == {"type": "object"}


class TestFailureIsolation:
    """Test that lore and memory failures are independent."""

    @pytest.mark.asyncio
    async def test_memory_failure_keeps_lore(self):
        search = FakeSearch(failing_scopes=["world_1_char_alice"])
        context = await make_pipeline(search=search).build_context(turn(lore_entries=[DRAGON_LORE]))
        assert context.memories == []
        assert context.lore == ["Dragons hoard gold."]

    @pytest.mark.asyncio
    async def test_lore_failure_keeps_memories(self):
        search = FakeSearch({"world_1_char_alice": [hit("a memory", 0.8)]})
        bad_lore = [{"uid": 1, "key": ["dragon"], "order": "first"}]
        context = await make_pipeline(search=search).build_context(turn(lore_entries=bad_lore))
        assert context.lore == []
        assert context.memories == ["[80%] a memory"]

    @pytest.mark.asyncio
    async def test_without_retriever(self):
        context = await make_pipeline(with_retriever=False).build_context(turn(lore_entries=[DRAGON_LORE]))
        assert context.memories == []
        assert context.lore == ["Dragons hoard gold."]
        assert context.metadata.character_name == "alice"

    @pytest.mark.asyncio
    async def test_no_character_skips_memories(self):
        search = FakeSearch()
        context = await make_pipeline(search=search).build_context(turn(character=None))
        assert context.memories == []
        assert search.calls == []


class TestRun:
    """Test building and assembling in one step."""

    @pytest.mark.asyncio
    async def test_run(self):
        search = FakeSearch({"world_1_char_alice": [hit("Alice: I fear the dragon", 0.9)]})
        messages = await make_pipeline(search=search).run(turn(
            summary="A cave.",
            chat_history=["Bob: The dragon stirs."],
            lore_entries=[DRAGON_LORE],
        ))

        assert [m.role for m in messages] == ["system", "system", "user"]
        assert messages[0].content == (
            "## SCENE SUMMARY\nA cave.\n\n"
            "## LORE\nDragons hoard gold.\n\n"
            "[Memories begin]\n[90%] I fear the dragon\n[Memories end]"
        )
        assert messages[1].content == "## CONVERSATION HISTORY\nBob: The dragon stirs."
        assert messages[2].content.startswith(
            "## CURRENT TURN\nYou are Alice. Respond as Alice based on the following:\n\n"
            "Sam: Tell me about the dragon\n\n"
        )
