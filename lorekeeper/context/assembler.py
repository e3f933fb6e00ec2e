"""Render a MessageContext into the ordered message list sent to the model.

Layout:
1. system: pre-system prompt, scene summary, lore, memories, final system
   prompt and output format
2. system: conversation history, one labelled line per message
3. user: the current turn (user input and this round's messages)

History is a labelled system message; characters never take the
"assistant" role.
"""

import json
from typing import Any, Optional

from loguru import logger

from lorekeeper.context.models import ChatMessage, JsonSpec, MessageContext

DEFAULT_SPEAKER = "Speaker"
DEFAULT_USER_NAME = "User"

ANTI_REPETITION_RULE = (
    "RULE: Do not repeat or paraphrase the wording above. Avoid reusing openings, "
    "phrases, or topics already said. Add a new angle or detail that has not been mentioned."
)

_CONTINUE_SCENE_MARKER = "[System: Continue scene"
_PREVIOUS_MESSAGES_MARKER = "Previous character messages:"
_META_MARKERS = (_CONTINUE_SCENE_MARKER, "PrevSpeaker")
_META_PREFIXES = ("undefined:", "None:")


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _with_speaker(line: str, speaker: str) -> str:
    return line if line.find(":") > 0 else f"{speaker}: {line}"


def _is_meta_artifact(line: str) -> bool:
    return any(marker in line for marker in _META_MARKERS) or line.startswith(_META_PREFIXES)


def _is_continue_scene_blob(text: str) -> bool:
    return text.startswith(_CONTINUE_SCENE_MARKER) or _PREVIOUS_MESSAGES_MARKER in text


def normalize_lines(
    lines: list[str],
    speaker: str,
    drop_meta: bool = False,
    seen: Optional[set[str]] = None,
) -> list[str]:
    """
    Trim, label and de-duplicate lines, keeping first occurrences in order.

    Lines already in `seen` are dropped; `seen` is updated in place.
    """
    seen = set() if seen is None else seen
    normalized = []
    for raw in lines or []:
        line = (raw or "").strip()
        if not line:
            continue
        if drop_meta and _is_meta_artifact(line):
            continue
        labelled = _with_speaker(line, speaker)
        if labelled in seen:
            continue
        seen.add(labelled)
        normalized.append(labelled)
    return normalized


class ContextAssembler:
    """Builds chat messages from a MessageContext."""

    def assemble(self, context: MessageContext) -> list[ChatMessage]:
        """
        Render the context into at most three messages.

        Args:
            context: Structured prompt context

        Returns:
            Messages in send order; empty when the context has nothing to say.
        """
        try:
            messages: list[ChatMessage] = []

            system = self._system_content(context)
            if system:
                messages.append(ChatMessage(role="system", content=system))

            history = self._history_content(context)
            if history:
                messages.append(ChatMessage(role="system", content=history))

            turn = self._current_turn_content(context)
            if turn:
                messages.append(ChatMessage(role="user", content=turn))

            logger.debug(
                f"Assembled {len(messages)} messages "
                f"({sum(1 for m in messages if m.role == 'system')} system)"
            )
            return messages
        except Exception as e:
            logger.error(f"Context assembly failed: {e}")
            return []

    def _system_content(self, context: MessageContext) -> str:
        parts: list[str] = []
        if context.pre_system_prompt:
            parts.append(context.pre_system_prompt)
        if context.summary:
            parts.append("## SCENE SUMMARY\n" + context.summary)
        if context.lore:
            parts.append("## LORE\n" + "\n\n".join(context.lore))
        if context.memories:
            parts.append("[Memories begin]\n" + "\n".join(context.memories) + "\n[Memories end]")
        if context.final_system_prompt:
            parts.append(context.final_system_prompt)
        output_format = self._output_format(context.json_spec)
        if output_format:
            parts.append(output_format)
        return "\n\n".join(parts)

    @staticmethod
    def _output_format(spec: Optional[JsonSpec]) -> Optional[str]:
        if spec is None:
            return None
        if spec.mode == "schema" and spec.schema_:
            schema = spec.schema_ if isinstance(spec.schema_, str) else _pretty(spec.schema_)
            return "## OUTPUT FORMAT\nRespond with JSON matching this schema:\n```json\n" + schema + "\n```"
        if spec.mode == "object" and spec.example:
            return (
                "## OUTPUT FORMAT\nRespond with JSON matching this structure:\n```json\n"
                + _pretty(spec.example) + "\n```"
            )
        return None

    def _history_content(self, context: MessageContext) -> str:
        speaker = context.metadata.character_name or DEFAULT_SPEAKER
        lines = normalize_lines(context.chat_history, speaker)
        if not lines:
            return ""
        return "## CONVERSATION HISTORY\n" + "\n\n".join(lines)

    def _current_turn_content(self, context: MessageContext) -> str:
        character = context.metadata.character_name
        speaker = character or DEFAULT_SPEAKER
        parts: list[str] = []
        seen: set[str] = set()

        user_input = (context.user_input or "").strip()
        if user_input and not _is_continue_scene_blob(user_input):
            persona = context.metadata.user_persona_name or DEFAULT_USER_NAME
            parts.append(f"{persona}: {user_input}")
            seen.add(parts[0])

        parts.extend(normalize_lines(context.current_round_messages, speaker, drop_meta=True, seen=seen))
        if not parts:
            return ""

        header = f"## CURRENT TURN\nYou are {speaker}. Respond as {speaker} based on the following:\n\n"
        return header + "\n\n".join(parts) + "\n\n" + ANTI_REPETITION_RULE


_default_assembler = ContextAssembler()


def assemble_messages(context: MessageContext) -> list[ChatMessage]:
    """Render a context with the shared default assembler."""
    return _default_assembler.assemble(context)
