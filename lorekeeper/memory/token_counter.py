"""Token counting for lore and memory budgets.

Budgets are expressed in model tokens and counted with tiktoken. If the
encoding cannot be loaded (no cached BPE file and no network) or a text
cannot be encoded, counts fall back to four characters per token.
"""

from typing import Any, Iterable, Optional

import tiktoken
from loguru import logger

DEFAULT_ENCODING = "cl100k_base"
CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD = 3


def _load_encoding(name: str) -> Optional["tiktoken.Encoding"]:
    try:
        encoding = tiktoken.get_encoding(name)
    except Exception as e:
        logger.warning(f"Could not load tiktoken encoding {name} ({e}), estimating token counts")
        return None
    logger.debug(f"Token counting with tiktoken {name}")
    return encoding


def _message_parts(message: Any) -> tuple[str, str]:
    if isinstance(message, dict):
        return str(message.get("role", "")), str(message.get("content") or "")
    return str(getattr(message, "role", "")), str(getattr(message, "content", "") or "")


class TokenCounter:
    """
    Counts tokens in lore content, memory text and chat messages.

    Anything with a count_tokens(text) method can stand in for this class
    wherever a token counter is accepted.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING):
        self.encoding_name = encoding_name
        self._encoding = _load_encoding(encoding_name)

    @property
    def exact(self) -> bool:
        """True when counts come from tiktoken rather than the estimate."""
        return self._encoding is not None

    def count_tokens(self, text: str) -> int:
        """Tokens in text; 0 for empty text."""
        if not text:
            return 0
        if self._encoding is not None:
            try:
                return len(self._encoding.encode(text))
            except Exception as e:
                logger.warning(f"tiktoken failed on {len(text)} chars ({e}), estimating")
        return self.estimate(text)

    @staticmethod
    def estimate(text: str) -> int:
        """Character-based estimate, never 0 for non-empty text."""
        if not text:
            return 0
        return max(1, len(text) // CHARS_PER_TOKEN)

    def count_messages(self, messages: Iterable[Any]) -> int:
        """
        Tokens in a chat payload.

        Args:
            messages: ChatMessage objects or {"role", "content"} dicts

        Returns:
            Sum of role and content tokens plus a fixed per-message overhead.
        """
        total = 0
        for message in messages:
            role, content = _message_parts(message)
            total += self.count_tokens(role) + MESSAGE_OVERHEAD + self.count_tokens(content)
        return total

    def usage(self, messages: Iterable[Any], context_window: int) -> dict[str, Any]:
        """Token usage of a chat payload per role, against a context window."""
        by_role: dict[str, int] = {}
        for message in messages:
            role, _ = _message_parts(message)
            by_role[role] = by_role.get(role, 0) + self.count_messages([message])
        total = sum(by_role.values())
        return {
            "total_tokens": total,
            "by_role": by_role,
            "remaining": max(0, context_window - total),
            "fraction": total / context_window if context_window > 0 else 0.0,
        }


_token_counter: TokenCounter | None = None


def get_token_counter() -> TokenCounter:
    """Shared counter used when a component is not given one."""
    global _token_counter
    if _token_counter is None:
        _token_counter = TokenCounter()
    return _token_counter


def count_tokens(text: str) -> int:
    return get_token_counter().count_tokens(text)
