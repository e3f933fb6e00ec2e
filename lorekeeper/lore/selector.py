"""Lore selection for per-turn context injection.

Given the current scene text and a lorebook, the selector decides which
entries are relevant and packs them, in insertion order, into a token
budget.
"""

import random
from typing import Iterable, Optional, Protocol

from loguru import logger

from lorekeeper.config.schema import Config
from lorekeeper.lore.models import LoreEntry, LoreKey, LoreMatch, LoreSelection
from lorekeeper.memory.token_counter import TokenCounter, get_token_counter


class RandomSource(Protocol):
    def random(self) -> float: ...


def _matched_keys(keys: Iterable[LoreKey], text: str) -> list[str]:
    return [key.raw for key in keys if key.matches(text)]


class LoreSelector:
    """
    Selects lore entries whose keys appear in the scene text.

    Each pass:
    1. drops disabled entries
    2. matches primary keys, then secondary filters for selective entries
    3. rolls probability for entries that use it
    4. keeps one entry per group (lowest insertion_order, then best score)
    5. orders by insertion_order and packs greedily into the token budget
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        token_counter: Optional[TokenCounter] = None,
        rng: Optional[RandomSource] = None,
    ):
        self.config = config or Config()
        self.token_counter = token_counter
        self.rng = rng or random.Random()

    @property
    def counter(self) -> TokenCounter:
        return self.token_counter or get_token_counter()

    def select(
        self,
        entries: Iterable[LoreEntry],
        scene_text: str,
        token_budget: Optional[int] = None,
    ) -> LoreSelection:
        """
        Select and pack the lore entries relevant to scene_text.

        Args:
            entries: Candidate entries (not modified)
            scene_text: Recent conversation text to scan
            token_budget: Token cap (defaults to config.lore.token_budget)

        Returns:
            Selected entries in injection order with their total token cost.
        """
        budget = self.config.lore.token_budget if token_budget is None else token_budget
        try:
            text = scene_text or ""
            matches = [m for m in (self._evaluate(entry, text) for entry in entries or []) if m is not None]
            ordered = self._resolve_groups(matches)
            selection = self._pack(ordered, budget)
            logger.debug(
                f"Lore selection: {len(matches)} matched, {len(selection.selected)} injected "
                f"({selection.total_tokens}/{budget} tokens)"
            )
            return selection
        except Exception as e:
            logger.error(f"Lore selection failed: {e}")
            return LoreSelection()

    def _evaluate(self, entry: LoreEntry, text: str) -> Optional[LoreMatch]:
        if not entry.enabled or not entry.primary_keys:
            return None

        matched = _matched_keys(entry.primary_keys, text)
        if not matched:
            return None

        if entry.selective and entry.filter_keys:
            hits = len(_matched_keys(entry.filter_keys, text))
            if not entry.selective_logic.passes(hits, len(entry.filter_keys)):
                return None

        if entry.use_probability:
            roll = self.rng.random() * 100
            if roll >= entry.probability:
                logger.debug(f"Lore entry {entry.uid} failed probability roll ({roll:.1f} >= {entry.probability})")
                return None

        return LoreMatch(entry=entry, matched_keys=tuple(matched))

    @staticmethod
    def _resolve_groups(matches: list[LoreMatch]) -> list[LoreMatch]:
        ungrouped: list[LoreMatch] = []
        groups: dict[str, list[LoreMatch]] = {}
        for match in matches:
            if match.entry.group:
                groups.setdefault(match.entry.group, []).append(match)
            else:
                ungrouped.append(match)

        winners = []
        for members in groups.values():
            members.sort(key=lambda m: (m.entry.insertion_order, -m.score))
            winners.append(members[0])

        merged = ungrouped + winners
        merged.sort(key=lambda m: m.entry.insertion_order)
        return merged

    def _pack(self, ordered: list[LoreMatch], budget: int) -> LoreSelection:
        selection = LoreSelection()
        if budget <= 0:
            return selection
        for match in ordered:
            tokens = self.counter.count_tokens(match.entry.content)
            if selection.total_tokens + tokens > budget:
                break
            selection.selected.append(LoreMatch(match.entry, match.matched_keys, tokens))
            selection.total_tokens += tokens
        return selection


def select_lore(
    entries: Iterable[LoreEntry],
    scene_text: str,
    token_budget: Optional[int] = None,
    config: Optional[Config] = None,
    token_counter: Optional[TokenCounter] = None,
    rng: Optional[RandomSource] = None,
) -> LoreSelection:
    """One-shot helper around LoreSelector.select()."""
    return LoreSelector(config, token_counter, rng).select(entries, scene_text, token_budget)


def format_lore(selection: LoreSelection) -> list[str]:
    """Contents of the selected entries, one string each, for MessageContext.lore."""
    return [m.entry.content.strip() for m in selection.selected if m.entry.content.strip()]


def format_lore_sections(selection: LoreSelection) -> list[str]:
    """Group selected contents by insertion position under "[LORE - <position>]" labels."""
    by_position: dict[str, list[str]] = {}
    for match in selection.selected:
        content = match.entry.content.strip()
        if content:
            by_position.setdefault(match.entry.insertion_position, []).append(content)
    return [
        f"[LORE - {position}]\n" + "\n\n".join(contents)
        for position, contents in by_position.items()
    ]
