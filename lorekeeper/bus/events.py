"""Event types raised by the scene orchestrator."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RoundCompleted:
    """A scene round has finished; every active character has spoken."""

    scene_id: int
    round_number: int
    active_characters: list[str] = field(default_factory=list)
    next_round_number: Optional[int] = None
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        if self.next_round_number is None:
            self.next_round_number = self.round_number + 1

    def to_dict(self) -> dict:
        """Convert to the camelCase payload subscribers receive."""
        return {
            "sceneId": self.scene_id,
            "roundNumber": self.round_number,
            "nextRoundNumber": self.next_round_number,
            "activeCharacters": list(self.active_characters),
            "timestamp": self.timestamp.isoformat(),
        }
