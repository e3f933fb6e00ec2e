"""Utility functions for lorekeeper."""

from lorekeeper.utils.logging import configure_logging
from lorekeeper.utils.scopes import (
    SHARED_LABEL,
    ParsedScope,
    character_scope,
    parse_scope,
    shared_scope,
)

__all__ = [
    "configure_logging",
    "SHARED_LABEL",
    "ParsedScope",
    "character_scope",
    "shared_scope",
    "parse_scope",
]
