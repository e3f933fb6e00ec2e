"""Lorebook import.

Accepts lorebook JSON as exported by common roleplay front-ends: entries
as a list, as an "items" list, or as a dict keyed by uid.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger

from lorekeeper.lore.models import LoreEntry

MAX_ENTRIES = 2000


class LorebookError(ValueError):
    """A lorebook payload that cannot be imported."""


@dataclass
class Lorebook:
    """
    A named collection of lore entries.

    scan_depth and token_budget, when set, override the lore config for
    turns that use this book.
    """
    name: str
    entries: list[LoreEntry] = field(default_factory=list)
    description: str = ""
    scan_depth: Optional[int] = None
    token_budget: Optional[int] = None

    @property
    def enabled_entries(self) -> list[LoreEntry]:
        return [e for e in self.entries if e.enabled]


def _raw_entries(data: dict) -> list[Any]:
    raw = data.get("entries")
    if raw is None:
        raw = data.get("items", [])
    if isinstance(raw, dict):
        return list(raw.values())
    if isinstance(raw, list):
        return raw
    raise LorebookError("Lorebook entries must be a list or an object")


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, "", 0):
        return None
    return int(value)


def parse_lorebook(data: Any) -> Lorebook:
    """
    Build a Lorebook from decoded JSON.

    Raises:
        LorebookError: if the payload or any entry is unusable.
    """
    if not isinstance(data, dict):
        raise LorebookError("Invalid lorebook payload")

    raw_entries = _raw_entries(data)
    if len(raw_entries) > MAX_ENTRIES:
        raise LorebookError(f"Too many entries in lorebook ({len(raw_entries)}, limit {MAX_ENTRIES})")

    entries = []
    for i, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            raise LorebookError(f"Entry {i} is invalid")
        try:
            entry = LoreEntry.from_dict(raw)
        except (TypeError, ValueError) as e:
            raise LorebookError(f"Entry {i} is invalid: {e}") from e
        if not entry.keys:
            raise LorebookError(f"Entry {i} has no keys")
        if entry.uid in ("", None):
            entry.uid = i
        entries.append(entry)

    try:
        book = Lorebook(
            name=str(data.get("name") or data.get("title") or "Imported Lorebook"),
            entries=entries,
            description=str(data.get("description") or data.get("info") or ""),
            scan_depth=_optional_int(data.get("scan_depth")),
            token_budget=_optional_int(data.get("token_budget")),
        )
    except (TypeError, ValueError) as e:
        raise LorebookError(f"Invalid lorebook settings: {e}") from e

    logger.debug(f"Parsed lorebook {book.name!r} with {len(entries)} entries")
    return book


def load_lorebook(path: Path) -> Lorebook:
    """Read and parse a lorebook JSON file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise LorebookError(f"Lorebook {path} is not valid JSON: {e}") from e
    return parse_lorebook(data)


def merge_lorebooks(books: Iterable[Lorebook]) -> list[LoreEntry]:
    """Enabled entries of every active lorebook, in book order."""
    merged: list[LoreEntry] = []
    for book in books:
        merged.extend(book.enabled_entries)
    return merged
