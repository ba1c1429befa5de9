"""Assemble streamed completion chunks into one assistant turn."""

from dataclasses import dataclass, field

from .turns import AssistantTurn, InvocationRequest


@dataclass(frozen=True)
class ToolCallFragment:
    """Partial tool call for one slot of a streaming turn."""

    slot_index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class StreamEvent:
    role: str | None = None
    text: str | None = None
    reasoning: str | None = None
    tool_calls: tuple[ToolCallFragment, ...] = field(default_factory=tuple)
    finish_reason: str | None = None


class _Slot:
    __slots__ = ("id", "name", "arguments")

    def __init__(self):
        self.id = ""
        self.name = ""
        self.arguments = ""


class StreamAssembler:
    """Accumulates StreamEvents; finalize() returns the complete AssistantTurn.

    Text and reasoning are concatenated in arrival order. A field that never
    received a fragment finalizes to None, while an empty-string fragment
    finalizes to "". Tool-call fragments are merged per slot by appending, so
    the same logical turn split at different chunk boundaries finalizes to
    the same result.
    """

    def __init__(self):
        self._text: list[str] | None = None
        self._reasoning: list[str] | None = None
        self._slots: dict[int, _Slot] = {}
        self.finish_reason: str | None = None

    def feed(self, event: StreamEvent) -> None:
        if event.text is not None:
            if self._text is None:
                self._text = []
            self._text.append(event.text)
        if event.reasoning is not None:
            if self._reasoning is None:
                self._reasoning = []
            self._reasoning.append(event.reasoning)
        for frag in event.tool_calls:
            slot = self._slots.get(frag.slot_index)
            if slot is None:
                slot = self._slots[frag.slot_index] = _Slot()
            # First id seen for a slot wins.
            if frag.id and not slot.id:
                slot.id = frag.id
            if frag.name:
                slot.name += frag.name
            if frag.arguments:
                slot.arguments += frag.arguments
        if event.finish_reason:
            self.finish_reason = event.finish_reason

    def finalize(self) -> AssistantTurn:
        invocations = [
            InvocationRequest(
                slot_index=index,
                id=slot.id or f"call_{index}",
                tool_name=slot.name,
                argument_text=slot.arguments,
            )
            for index, slot in sorted(self._slots.items())
        ]
        return AssistantTurn(
            content="".join(self._text) if self._text is not None else None,
            reasoning="".join(self._reasoning) if self._reasoning is not None else None,
            invocations=invocations,
        )


def _get(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def event_from_chunk(chunk) -> StreamEvent:
    """Convert a ChatCompletionChunk (object or dict) into a StreamEvent."""
    choices = _get(chunk, "choices") or []
    if not choices:
        return StreamEvent()
    choice = choices[0]
    delta = _get(choice, "delta")

    reasoning = None
    for key in ("reasoning_content", "reasoning", "thinking"):
        value = _get(delta, key)
        if isinstance(value, str):
            reasoning = value
            break

    fragments = []
    for i, tc in enumerate(_get(delta, "tool_calls") or []):
        index = _get(tc, "index")
        fn = _get(tc, "function")
        fragments.append(
            ToolCallFragment(
                slot_index=index if isinstance(index, int) else i,
                id=_get(tc, "id"),
                name=_get(fn, "name"),
                arguments=_get(fn, "arguments"),
            )
        )

    content = _get(delta, "content")
    return StreamEvent(
        role=_get(delta, "role"),
        text=content if isinstance(content, str) else None,
        reasoning=reasoning,
        tool_calls=tuple(fragments),
        finish_reason=_get(choice, "finish_reason"),
    )


async def assemble(events, *, on_text=None, on_reasoning=None) -> AssistantTurn:
    """Drain an async iterator of StreamEvents and return the finalized turn.

    The optional callbacks receive each non-empty fragment as it arrives.
    """
    assembler = StreamAssembler()
    async for event in events:
        assembler.feed(event)
        if on_reasoning is not None and event.reasoning:
            on_reasoning(event.reasoning)
        if on_text is not None and event.text:
            on_text(event.text)
    return assembler.finalize()


async def collect_stream(events, preview=None) -> tuple[str, str]:
    """Drain a stream and return (reasoning, content) as plain strings.

    `preview` is an optional object with feed(kind, text) and close()
    methods, used to show a rolling view while a sub-call streams.
    """
    try:
        turn = await assemble(
            events,
            on_text=(lambda t: preview.feed("text", t)) if preview else None,
            on_reasoning=(lambda t: preview.feed("reasoning", t)) if preview else None,
        )
    finally:
        if preview is not None:
            preview.close()
    return turn.reasoning or "", turn.content or ""
