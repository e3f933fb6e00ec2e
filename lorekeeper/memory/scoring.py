"""Decay and conditional boosting of memory relevance scores.

Scoring runs in a fixed order for every candidate: decay first, then
boosts. Decay only shrinks a score, and never below `floor` times the
original. Boosts are plain multipliers, so the order in which matching
rules are applied does not change the result.
"""

import math
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from loguru import logger

from lorekeeper.config.schema import BoostRule, DecayConfig
from lorekeeper.memory.collaborators import MessageCounter
from lorekeeper.memory.models import RetrievedMemory

DEFAULT_TIME_HALF_LIFE_DAYS = 7.0
DEFAULT_MESSAGE_HALF_LIFE = 50.0

_TIMESTAMP_KEYS = ("timestamp", "stored_at")
_MESSAGE_COUNT_KEYS = ("messageCountSince", "message_count_since", "messages_since")
_SCENE_KEYS = ("sceneId", "scene_id", "scene")

_EMOTION_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("happy", ("happy", "joy", "joyful", "glad", "love")),
    ("sad", ("sad", "sorrow", "unhappy", "grief")),
    ("angry", ("angry", "mad", "rage", "furious")),
    ("fear", ("fear", "scared", "afraid", "terrified")),
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a metadata timestamp into an aware UTC datetime.

    Accepts datetimes, epoch milliseconds (number or numeric string) and
    ISO-8601 strings. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return parse_timestamp(float(text))
        except ValueError:
            pass
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def get_nested_field(obj: Any, path: str) -> Any:
    """Resolve a dotted path ("a.b.c") inside nested dicts."""
    if obj is None or not path:
        return None
    current = obj
    for key in str(path).split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def detect_emotion(text: Optional[str]) -> str:
    """Infer a coarse emotion tag from memory text by keyword."""
    if not text:
        return "neutral"
    words = set(re.findall(r"[a-z']+", text.lower()))
    for emotion, keywords in _EMOTION_KEYWORDS:
        if any(k in words for k in keywords):
            return emotion
    return "neutral"


def _first_present(metadata: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        value = metadata.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _apply_floor(score: float, raw_factor: float, floor: float) -> float:
    return score * max(raw_factor, floor)


def _time_decay(
    score: float,
    metadata: dict,
    half_life_days: float,
    floor: float,
    now: datetime,
) -> float:
    created = parse_timestamp(_first_present(metadata, _TIMESTAMP_KEYS))
    if created is None or half_life_days <= 0:
        return score
    elapsed_days = max(0.0, (now - created).total_seconds() / 86400.0)
    return _apply_floor(score, 0.5 ** (elapsed_days / half_life_days), floor)


async def _messages_since(metadata: dict, counter: Optional[MessageCounter]) -> Optional[float]:
    count = _as_number(_first_present(metadata, _MESSAGE_COUNT_KEYS))
    if count is not None:
        return max(0.0, count)

    if counter is None:
        return None
    scene_id = _first_present(metadata, _SCENE_KEYS)
    timestamp = _first_present(metadata, _TIMESTAMP_KEYS)
    if scene_id is None or timestamp is None:
        return None

    try:
        looked_up = await counter.get_message_count_since(int(scene_id), timestamp)
    except Exception as e:
        logger.debug(f"Message count lookup failed for scene {scene_id}: {e}")
        return None
    count = _as_number(looked_up)
    return None if count is None else max(0.0, count)


async def compute_decay_adjusted_score(
    original_score: float,
    metadata: Optional[dict],
    decay: Optional[DecayConfig],
    counter: Optional[MessageCounter] = None,
    now: Optional[datetime] = None,
) -> float:
    """
    Apply temporal decay to a raw similarity score.

    Args:
        original_score: Raw similarity in [0, 1].
        metadata: Memory metadata (timestamp, messageCountSince, sceneId...).
        decay: Decay settings; None or disabled leaves the score unchanged.
        counter: Message-count collaborator for messageCount mode.
        now: Reference time (defaults to current UTC time).

    Returns:
        The decayed score, never below original_score * floor.
    """
    metadata = metadata or {}
    if decay is None or not decay.enabled or metadata.get("temporalBlind"):
        return original_score

    now = now or utc_now()
    floor = decay.floor

    if decay.mode == "messageCount":
        half_life = decay.half_life if decay.half_life is not None else DEFAULT_MESSAGE_HALF_LIFE
        messages = await _messages_since(metadata, counter)
        if messages is not None:
            if half_life <= 0:
                return original_score
            return _apply_floor(original_score, 0.5 ** (messages / half_life), floor)
        # No count available: the same half-life is read as days
        return _time_decay(original_score, metadata, half_life, floor, now)

    half_life = decay.half_life if decay.half_life is not None else DEFAULT_TIME_HALF_LIFE_DAYS
    return _time_decay(original_score, metadata, half_life, floor, now)


def _rule_target(rule: BoostRule, metadata: dict, text: str) -> Any:
    field = rule.field.strip()
    if field == "text":
        return text
    if field == "emotion" or field.endswith(".emotion"):
        declared = get_nested_field(metadata, field)
        return declared if declared is not None else detect_emotion(text)
    return get_nested_field(metadata, field)


def rule_matches(rule: BoostRule, metadata: dict, text: str) -> bool:
    """Check whether a boost rule's condition holds for a memory."""
    if not rule.field or not rule.field.strip():
        return False
    target = _rule_target(rule, metadata, text)
    if target is None:
        return False

    target_str = str(target)
    expected = str(rule.match)
    if rule.case_insensitive:
        target_str = target_str.lower()
        expected = expected.lower()

    if rule.field.strip() == "text" or rule.match_type == "substring":
        return expected in target_str
    return target_str == expected


def apply_conditional_boost(
    score: float,
    metadata: Optional[dict],
    rules: Optional[list[BoostRule]],
    text: str = "",
) -> float:
    """
    Multiply the score by the boost of every rule whose condition holds.

    Args:
        score: Score after decay.
        metadata: Memory metadata.
        rules: Boost rules; None or empty leaves the score unchanged.
        text: Memory text, used by "text" and inferred "emotion" rules.

    Returns:
        Boosted score.
    """
    if not rules:
        return score
    metadata = metadata or {}
    multiplier = 1.0
    for rule in rules:
        try:
            if rule_matches(rule, metadata, text or ""):
                multiplier *= rule.boost
        except Exception as e:
            logger.warning(f"Skipping malformed boost rule {rule!r}: {e}")
    return score * multiplier


async def score_memory(
    memory: RetrievedMemory,
    decay: Optional[DecayConfig],
    rules: Optional[list[BoostRule]],
    counter: Optional[MessageCounter] = None,
    now: Optional[datetime] = None,
) -> RetrievedMemory:
    """Return a copy of memory with its decayed-then-boosted score."""
    score = await compute_decay_adjusted_score(memory.similarity, memory.metadata, decay, counter, now)
    score = apply_conditional_boost(score, memory.metadata, rules, memory.text)
    return replace(memory, adjusted_score=score)
