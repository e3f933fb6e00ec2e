"""Helpers for building and parsing memory scope keys.

A scope routes a similarity query to one partition of the index:
- "world_<worldId>_char_<characterIdOrName>" for one character's memories
- "world_<worldId>_multi" for memories shared by every character in a world
"""

from __future__ import annotations

import re
from dataclasses import dataclass

SHARED_LABEL = "shared"

_CHAR_SCOPE_RE = re.compile(r"^world_(\d+)_char_(.+)$")
_SHARED_SCOPE_RE = re.compile(r"^world_(\d+)_multi$")


@dataclass(frozen=True)
class ParsedScope:
    """Routing information recovered from a scope string."""
    world_id: int
    character_id: str | None = None
    shared: bool = False


def character_scope(world_id: int | str, character_id: int | str) -> str:
    """Scope holding one character's memories in a world."""
    return f"world_{world_id}_char_{character_id}"


def shared_scope(world_id: int | str) -> str:
    """Scope holding memories shared by all characters in a world."""
    return f"world_{world_id}_multi"


def parse_scope(scope: str | None) -> ParsedScope | None:
    """Parse a scope string.

    Returns:
        ParsedScope, or None when the value is not a recognised scope.
    """
    if not scope:
        return None
    text = str(scope).strip()

    match = _CHAR_SCOPE_RE.match(text)
    if match:
        return ParsedScope(world_id=int(match.group(1)), character_id=match.group(2))

    match = _SHARED_SCOPE_RE.match(text)
    if match:
        return ParsedScope(world_id=int(match.group(1)), shared=True)

    return None
