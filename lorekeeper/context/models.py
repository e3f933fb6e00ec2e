"""Models for structured prompt context and the messages rendered from it."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JsonSpec(Base):
    """Requested output format: a JSON schema or an example object."""
    mode: Literal["object", "schema"] = "object"
    schema_: Optional[Any] = Field(default=None, alias="schema")
    example: Optional[Any] = None


class ContextMetadata(Base):
    """Who is speaking, and where."""
    agent_name: Optional[str] = None
    scene_id: Optional[int | str] = None
    round_number: Optional[int] = None
    character_name: Optional[str] = None
    user_persona_name: Optional[str] = None


class MessageContext(Base):
    """
    Everything that may go into one turn's prompt.

    Every field is optional; a missing or empty field means its section
    is left out of the rendered messages.
    """
    pre_system_prompt: Optional[str] = None
    memories: list[str] = Field(default_factory=list)
    lore: list[str] = Field(default_factory=list)
    summary: Optional[str] = None
    chat_history: list[str] = Field(default_factory=list)
    current_round_messages: list[str] = Field(default_factory=list)
    final_system_prompt: Optional[str] = None
    user_input: Optional[str] = None
    json_spec: Optional[JsonSpec] = None
    metadata: ContextMetadata = Field(default_factory=ContextMetadata)


class ChatMessage(Base):
    """A role-tagged message for an OpenAI-compatible chat API."""
    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
