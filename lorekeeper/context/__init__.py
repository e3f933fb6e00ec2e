"""Prompt context models, message assembly and the per-turn pipeline."""

from lorekeeper.context.assembler import ContextAssembler, assemble_messages
from lorekeeper.context.models import ChatMessage, ContextMetadata, JsonSpec, MessageContext
from lorekeeper.context.pipeline import ContextPipeline, TurnContext

__all__ = [
    "ContextAssembler",
    "assemble_messages",
    "ChatMessage",
    "ContextMetadata",
    "JsonSpec",
    "MessageContext",
    "ContextPipeline",
    "TurnContext",
]
