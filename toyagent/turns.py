"""Conversation turn types.

One dataclass per role. Every turn knows how to render itself as the
OpenAI-style message dict that goes over the wire; nothing else in the
runtime builds message dicts by hand.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class InvocationRequest:
    """A tool call the model asked for within one assistant turn."""

    slot_index: int
    id: str
    tool_name: str
    argument_text: str

    def to_message(self) -> dict:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.tool_name, "arguments": self.argument_text},
        }


@dataclass(frozen=True)
class InvocationResult:
    call_id: str
    content: str


@dataclass(frozen=True)
class SystemTurn:
    content: str
    role: str = field(default="system", init=False)

    def to_message(self) -> dict:
        return {"role": "system", "content": self.content}


@dataclass(frozen=True)
class UserTurn:
    content: str
    role: str = field(default="user", init=False)

    def to_message(self) -> dict:
        return {"role": "user", "content": self.content}


@dataclass(frozen=True)
class AssistantTurn:
    content: str | None = None
    reasoning: str | None = None
    invocations: tuple[InvocationRequest, ...] = ()
    role: str = field(default="assistant", init=False)

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple.
        object.__setattr__(self, "invocations", tuple(self.invocations))

    @property
    def has_invocations(self) -> bool:
        return bool(self.invocations)

    def to_message(self) -> dict:
        msg: dict = {"role": "assistant", "content": self.content}
        if self.invocations:
            msg["tool_calls"] = [inv.to_message() for inv in self.invocations]
        return msg


@dataclass(frozen=True)
class ToolTurn:
    call_id: str
    content: str
    role: str = field(default="tool", init=False)

    @classmethod
    def from_result(cls, result: InvocationResult) -> "ToolTurn":
        return cls(call_id=result.call_id, content=result.content)

    def to_message(self) -> dict:
        return {"role": "tool", "tool_call_id": self.call_id, "content": self.content}


Turn = SystemTurn | UserTurn | AssistantTurn | ToolTurn

TURN_TYPES = (SystemTurn, UserTurn, AssistantTurn, ToolTurn)


def to_messages(turns) -> list[dict]:
    """Render a sequence of turns as wire messages."""
    return [t.to_message() for t in turns]
