"""Tests for stream assembly: fragment merging, slot order, null vs empty."""

import asyncio
from types import SimpleNamespace

from toyagent.stream import (
    StreamAssembler,
    StreamEvent,
    ToolCallFragment,
    assemble,
    collect_stream,
    event_from_chunk,
)


def _feed(events):
    asm = StreamAssembler()
    for ev in events:
        asm.feed(ev)
    return asm.finalize()


async def _aiter(events):
    for ev in events:
        yield ev


def _tool_events(argument_pieces, *, slot=0, call_id="c1", name="ls"):
    events = [
        StreamEvent(tool_calls=(ToolCallFragment(slot, id=call_id, name=name),))
    ]
    for piece in argument_pieces:
        events.append(
            StreamEvent(tool_calls=(ToolCallFragment(slot, arguments=piece),))
        )
    return events


# ---------------------------------------------------------------------------
# StreamAssembler
# ---------------------------------------------------------------------------


class TestAssembler:
    def test_text_concatenated_in_order(self):
        turn = _feed([StreamEvent(text="Hel"), StreamEvent(text="lo")])
        assert turn.content == "Hello"
        assert turn.reasoning is None
        assert turn.invocations == ()

    def test_no_text_fragment_is_none(self):
        turn = _feed([StreamEvent(role="assistant")])
        assert turn.content is None

    def test_empty_text_fragment_is_empty_string(self):
        turn = _feed([StreamEvent(text="")])
        assert turn.content == ""

    def test_reasoning_kept_separately(self):
        turn = _feed(
            [
                StreamEvent(reasoning="think "),
                StreamEvent(reasoning="hard"),
                StreamEvent(text="answer"),
            ]
        )
        assert turn.reasoning == "think hard"
        assert turn.content == "answer"

    def test_argument_fragments_merged(self):
        turn = _feed(_tool_events(['{"pa', 'th":"', 'src"}']))
        (inv,) = turn.invocations
        assert inv.id == "c1"
        assert inv.tool_name == "ls"
        assert inv.argument_text == '{"path":"src"}'

    def test_chunk_boundaries_do_not_matter(self):
        whole = '{"path": "src", "depth": 2}'
        a = _feed(_tool_events([whole]))
        b = _feed(_tool_events([whole[:3], whole[3:10], whole[10:]]))
        c = _feed(_tool_events(list(whole)))
        assert a == b == c

    def test_slots_sorted_by_index(self):
        events = [
            StreamEvent(tool_calls=(ToolCallFragment(2, id="c", name="pwd"),)),
            StreamEvent(tool_calls=(ToolCallFragment(0, id="a", name="get_time"),)),
            StreamEvent(tool_calls=(ToolCallFragment(1, id="b", name="ls"),)),
        ]
        turn = _feed(events)
        assert [inv.slot_index for inv in turn.invocations] == [0, 1, 2]
        assert [inv.id for inv in turn.invocations] == ["a", "b", "c"]

    def test_interleaved_slots(self):
        events = [
            StreamEvent(tool_calls=(ToolCallFragment(0, id="a", name="ls"),)),
            StreamEvent(tool_calls=(ToolCallFragment(1, id="b", name="grep"),)),
            StreamEvent(tool_calls=(ToolCallFragment(0, arguments='{"x":'),)),
            StreamEvent(tool_calls=(ToolCallFragment(1, arguments='{"y":'),)),
            StreamEvent(tool_calls=(ToolCallFragment(1, arguments="2}"),)),
            StreamEvent(tool_calls=(ToolCallFragment(0, arguments="1}"),)),
        ]
        a, b = _feed(events).invocations
        assert a.argument_text == '{"x":1}'
        assert b.argument_text == '{"y":2}'

    def test_repeated_id_not_concatenated(self):
        events = [
            StreamEvent(tool_calls=(ToolCallFragment(0, id="c1", name="ls"),)),
            StreamEvent(tool_calls=(ToolCallFragment(0, id="c1", arguments="{}"),)),
        ]
        assert _feed(events).invocations[0].id == "c1"

    def test_missing_id_gets_slot_based_id(self):
        turn = _feed([StreamEvent(tool_calls=(ToolCallFragment(3, name="pwd"),))])
        assert turn.invocations[0].id == "call_3"

    def test_finish_reason_recorded(self):
        asm = StreamAssembler()
        asm.feed(StreamEvent(text="x"))
        asm.feed(StreamEvent(finish_reason="stop"))
        assert asm.finish_reason == "stop"


# ---------------------------------------------------------------------------
# event_from_chunk
# ---------------------------------------------------------------------------


class TestEventFromChunk:
    def test_dict_chunk(self):
        chunk = {
            "choices": [
                {
                    "delta": {
                        "content": "hi",
                        "tool_calls": [
                            {
                                "index": 1,
                                "id": "call_x",
                                "function": {"name": "ls", "arguments": "{}"},
                            }
                        ],
                    },
                    "finish_reason": None,
                }
            ]
        }
        ev = event_from_chunk(chunk)
        assert ev.text == "hi"
        (frag,) = ev.tool_calls
        assert frag == ToolCallFragment(1, id="call_x", name="ls", arguments="{}")

    def test_object_chunk_with_reasoning(self):
        delta = SimpleNamespace(
            role="assistant", content=None, reasoning_content="hmm", tool_calls=None
        )
        chunk = SimpleNamespace(
            choices=[SimpleNamespace(delta=delta, finish_reason="stop")]
        )
        ev = event_from_chunk(chunk)
        assert ev.text is None
        assert ev.reasoning == "hmm"
        assert ev.role == "assistant"
        assert ev.finish_reason == "stop"

    def test_no_choices(self):
        assert event_from_chunk({"choices": []}) == StreamEvent()

    def test_missing_index_uses_position(self):
        chunk = {
            "choices": [
                {"delta": {"tool_calls": [{"function": {"name": "a"}}, {"function": {"name": "b"}}]}}
            ]
        }
        ev = event_from_chunk(chunk)
        assert [f.slot_index for f in ev.tool_calls] == [0, 1]


# ---------------------------------------------------------------------------
# async helpers
# ---------------------------------------------------------------------------


class TestAsyncHelpers:
    def test_assemble_callbacks(self):
        seen = []
        events = [StreamEvent(reasoning="r"), StreamEvent(text="a"), StreamEvent(text="b")]
        turn = asyncio.run(
            assemble(
                _aiter(events),
                on_text=lambda t: seen.append(("text", t)),
                on_reasoning=lambda t: seen.append(("reasoning", t)),
            )
        )
        assert turn.content == "ab"
        assert seen == [("reasoning", "r"), ("text", "a"), ("text", "b")]

    def test_collect_stream_closes_preview(self):
        class Preview:
            def __init__(self):
                self.fed = []
                self.closed = False

            def feed(self, kind, text):
                self.fed.append((kind, text))

            def close(self):
                self.closed = True

        preview = Preview()
        events = [StreamEvent(reasoning="t"), StreamEvent(text="out")]
        reasoning, content = asyncio.run(collect_stream(_aiter(events), preview))
        assert (reasoning, content) == ("t", "out")
        assert preview.fed == [("reasoning", "t"), ("text", "out")]
        assert preview.closed

    def test_collect_stream_empty(self):
        assert asyncio.run(collect_stream(_aiter([]))) == ("", "")
