"""LLM message types and data structures."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Message role."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class TextContent:
    """Text content block."""

    text: str
    type: str = "text"


@dataclass
class Message:
    """A message in the conversation."""

    role: Role
    content: str | list[TextContent]

    def get_text(self) -> str:
        """Extract text content from message."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(block.text for block in self.content)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.get_text()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(role=Role(data["role"]), content=str(data["content"]))


@dataclass
class Usage:
    """Token usage information."""

    input_tokens: int
    output_tokens: int
    cache_read_input_tokens: int | None = None
    cache_creation_input_tokens: int | None = None

    def summary(self) -> str:
        """Render a one-line usage summary for terminal output."""
        parts = [f"in {self.input_tokens}", f"out {self.output_tokens}"]
        if self.cache_read_input_tokens is not None:
            parts.append(f"cache read {self.cache_read_input_tokens}")
        if self.cache_creation_input_tokens is not None:
            parts.append(f"cache write {self.cache_creation_input_tokens}")
        return f"Tokens: {', '.join(parts)}"


@dataclass
class CompletionResponse:
    """Full completion response."""

    message: Message
    usage: Usage | None = None
    stop_reason: str | None = None
    model: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
