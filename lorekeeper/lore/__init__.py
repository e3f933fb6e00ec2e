"""Lore entries, lorebook import and keyword/regex based lore selection."""

from lorekeeper.lore.lorebook import Lorebook, LorebookError, load_lorebook, merge_lorebooks, parse_lorebook
from lorekeeper.lore.models import (
    LiteralKey,
    LoreEntry,
    LoreKey,
    LoreMatch,
    LoreSelection,
    PatternKey,
    SelectiveLogic,
    compile_key,
)
from lorekeeper.lore.selector import LoreSelector, format_lore, format_lore_sections, select_lore

__all__ = [
    "Lorebook",
    "LorebookError",
    "load_lorebook",
    "merge_lorebooks",
    "parse_lorebook",
    "LiteralKey",
    "LoreEntry",
    "LoreKey",
    "LoreMatch",
    "LoreSelection",
    "PatternKey",
    "SelectiveLogic",
    "compile_key",
    "LoreSelector",
    "format_lore",
    "format_lore_sections",
    "select_lore",
]
