"""Canonical, provider-agnostic data model for the relay."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

VALID_ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Message:
    """One chat message."""
    role: str
    content: str

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid message role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CompletionRequest:
    """A chat request, immutable once dispatched."""
    messages: Tuple[Message, ...]
    model: Optional[str] = None
    grounding: bool = False

    @classmethod
    def from_dicts(
        cls,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        grounding: bool = False,
    ) -> "CompletionRequest":
        return cls(
            messages=tuple(Message(role=m["role"], content=m["content"]) for m in messages),
            model=model,
            grounding=grounding,
        )

    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None


@dataclass(frozen=True)
class ProviderCredential:
    """Decrypted provider secret, scoped to a single request.

    The secret is excluded from ``repr`` so it can never leak into logs.
    """
    provider: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class TokenUsage:
    """Cumulative token usage snapshot as reported by a provider."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def covers(self, other: "TokenUsage") -> bool:
        """True if every field is >= the matching field of ``other``."""
        return (
            self.input_tokens >= other.input_tokens
            and self.output_tokens >= other.output_tokens
            and self.total_tokens >= other.total_tokens
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class StreamChunk:
    """One normalized unit of a streaming response.

    Concatenating ``content`` across a request's chunks, in order,
    reconstructs the full response text.
    """
    content: str = ""
    usage: Optional[TokenUsage] = None
    complete: bool = False
    grounding: Optional[Dict[str, Any]] = None
