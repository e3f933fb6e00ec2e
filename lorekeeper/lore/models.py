"""Data models for lore entries.

Match keys are compiled once, when an entry is created, into either a
LiteralKey or a PatternKey. Raw keys written as "/body/" (optionally
followed by i, m, s or x flags) are regular expressions; anything else is
literal text.
"""

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional, Union

from loguru import logger

DEFAULT_INSERTION_ORDER = 100
DEFAULT_POSITION = "Before Char Defs"

# Numeric positions used by older lorebook exports
POSITION_LABELS = {
    0: "Before Char Defs",
    1: "After Char Defs",
    2: "Top of AN",
    3: "Bottom of AN",
    4: "In Chat @Depth",
    5: "Deep Chat @Depth",
}

_REGEX_KEY_RE = re.compile(r"^/(.+)/([imsx]*)$", re.DOTALL)
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


class SelectiveLogic(IntEnum):
    """How secondary filter matches combine."""
    ANY = 0      # at least one filter matched
    ALL = 1      # every filter matched
    NONE = 2     # no filter matched
    NOT_ALL = 3  # fewer than all filters matched

    @classmethod
    def parse(cls, value: Any) -> "SelectiveLogic":
        if isinstance(value, SelectiveLogic):
            return value
        if isinstance(value, str):
            name = value.strip().upper().replace("-", "_").replace(" ", "_")
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                value = int(name)
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.ANY

    def passes(self, matched: int, total: int) -> bool:
        if self is SelectiveLogic.ANY:
            return matched > 0
        if self is SelectiveLogic.ALL:
            return matched == total
        if self is SelectiveLogic.NONE:
            return matched == 0
        return matched < total


@dataclass(frozen=True)
class LiteralKey:
    """Plain-text key, matched with special characters escaped."""
    raw: str
    case_sensitive: bool = False
    whole_words: bool = False
    _pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        body = re.escape(self.raw)
        if self.whole_words:
            body = rf"\b{body}\b"
        flags = 0 if self.case_sensitive else re.IGNORECASE
        object.__setattr__(self, "_pattern", re.compile(body, flags))

    def matches(self, text: str) -> bool:
        return bool(self.raw) and self._pattern.search(text) is not None


@dataclass(frozen=True)
class PatternKey:
    """Regular-expression key. An invalid pattern never matches."""
    raw: str
    source: str
    flags: int = 0
    _pattern: Optional[re.Pattern] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        try:
            compiled = re.compile(self.source, self.flags)
        except re.error as e:
            logger.warning(f"Invalid lore regex key {self.raw!r}: {e}")
            compiled = None
        object.__setattr__(self, "_pattern", compiled)

    @property
    def valid(self) -> bool:
        return self._pattern is not None

    def matches(self, text: str) -> bool:
        if self._pattern is None:
            return False
        return self._pattern.search(text) is not None


LoreKey = Union[LiteralKey, PatternKey]


def compile_key(raw: str, case_sensitive: bool = False, whole_words: bool = False) -> LoreKey:
    """Turn a raw key string into a LiteralKey or PatternKey."""
    text = str(raw)
    match = _REGEX_KEY_RE.match(text)
    if match:
        flags = 0 if case_sensitive else re.IGNORECASE
        for letter in match.group(2):
            flags |= _FLAG_MAP[letter]
        return PatternKey(raw=text, source=match.group(1), flags=flags)
    return LiteralKey(raw=text, case_sensitive=case_sensitive, whole_words=whole_words)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split("|") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value)]


def _pick(data: dict, *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _position(value: Any) -> str:
    if value is None or value == "":
        return DEFAULT_POSITION
    if isinstance(value, int) and not isinstance(value, bool):
        return POSITION_LABELS.get(value, DEFAULT_POSITION)
    return str(value)


@dataclass
class LoreEntry:
    """
    A candidate knowledge snippet from a lorebook.

    Entries are read-only to the selector and re-evaluated every turn.
    Token cost is derived from `content` at selection time.
    """
    uid: Union[int, str]
    keys: list[str]
    content: str = ""
    filters: list[str] = field(default_factory=list)
    selective: bool = False
    selective_logic: SelectiveLogic = SelectiveLogic.ANY
    enabled: bool = True
    insertion_order: int = DEFAULT_INSERTION_ORDER
    group: Optional[str] = None
    probability: float = 100.0
    use_probability: bool = False
    case_sensitive: bool = False
    match_whole_words: bool = False
    insertion_position: str = DEFAULT_POSITION
    comment: str = ""

    primary_keys: list[LoreKey] = field(init=False, repr=False)
    filter_keys: list[LoreKey] = field(init=False, repr=False)

    def __post_init__(self):
        self.selective_logic = SelectiveLogic.parse(self.selective_logic)
        self.primary_keys = [
            compile_key(k, self.case_sensitive, self.match_whole_words) for k in self.keys
        ]
        self.filter_keys = [
            compile_key(k, self.case_sensitive, self.match_whole_words) for k in self.filters
        ]

    @classmethod
    def from_dict(cls, data: dict) -> "LoreEntry":
        """Build an entry from a lorebook JSON record (camelCase or snake_case)."""
        enabled = _pick(data, "enabled")
        if enabled is None:
            enabled = not bool(_pick(data, "disabled", "disable", default=False))
        group = _pick(data, "group", "groupName", default="")
        return cls(
            uid=_pick(data, "uid", "id", default=""),
            keys=_as_list(_pick(data, "key", "keys", "match", "trigger")),
            content=str(_pick(data, "content", "text", "value", default="")),
            filters=_as_list(_pick(data, "optional_filter", "filters", "keysecondary", "secondary_keys")),
            selective=bool(_pick(data, "selective", default=False)),
            selective_logic=SelectiveLogic.parse(_pick(data, "selectiveLogic", "selective_logic", default=0)),
            enabled=bool(enabled),
            insertion_order=int(_pick(data, "insertion_order", "insertionOrder", "order", default=DEFAULT_INSERTION_ORDER)),
            group=str(group) if group else None,
            probability=float(_pick(data, "probability", default=100)),
            use_probability=bool(_pick(data, "useProbability", "use_probability", default=False)),
            case_sensitive=bool(_pick(data, "caseSensitive", "case_sensitive", default=False)),
            match_whole_words=bool(_pick(data, "matchWholeWords", "match_whole_words", default=False)),
            insertion_position=_position(_pick(data, "insertion_position", "insertionPosition", "position")),
            comment=str(_pick(data, "comment", "title_memo", "title", "name", default="")),
        )


@dataclass(frozen=True)
class LoreMatch:
    """An entry that passed selection, with what made it match."""
    entry: LoreEntry
    matched_keys: tuple[str, ...]
    tokens: int = 0

    @property
    def score(self) -> int:
        return len(self.matched_keys)

    @property
    def content(self) -> str:
        return self.entry.content


@dataclass
class LoreSelection:
    """Selected entries in injection order and their total token cost."""
    selected: list[LoreMatch] = field(default_factory=list)
    total_tokens: int = 0

    @property
    def entries(self) -> list[LoreEntry]:
        return [m.entry for m in self.selected]
