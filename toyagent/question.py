"""The question tool: the model's only channel to ask the human."""

import inspect
import json

from . import fmt

MAX_SUGGESTIONS = 4

DESCRIPTION = (
    "Ask the real user a question and wait for their reply. Optionally pass up "
    "to 4 suggested answers to help them decide. Returns the user's actual answer."
)

PARAMETERS = {
    "type": "object",
    "properties": {
        "question": {
            "type": "string",
            "description": "The question to ask; must be non-empty.",
        },
        "suggestions": {
            "type": "array",
            "description": "Optional suggested answers (at most 4), shown as a list.",
            "items": {"type": "string"},
            "maxItems": MAX_SUGGESTIONS,
        },
    },
    "required": ["question"],
    "additionalProperties": False,
}


def normalize_suggestions(value) -> tuple[list[str], bool]:
    if not isinstance(value, list):
        return [], False
    cleaned = [s.strip() for s in value if isinstance(s, str) and s.strip()]
    return cleaned[:MAX_SUGGESTIONS], len(cleaned) > MAX_SUGGESTIONS


def format_prompt(question: str, suggestions: list[str], truncated: bool) -> str:
    lines = [question]
    if suggestions:
        lines += ["", "Suggested replies:"]
        lines += [f"{i}. {s}" for i, s in enumerate(suggestions, start=1)]
        if truncated:
            lines.append(f"(only the first {MAX_SUGGESTIONS} suggestions are shown)")
    return "\n".join(lines)


async def question(ctx, args: dict) -> str:
    text = args.get("question")
    text = text.strip() if isinstance(text, str) else ""
    if not text:
        return "Error: 'question' is required and must be a non-empty string"
    if getattr(ctx, "ask", None) is None:
        return "Error: no interactive user is available to answer questions"

    suggestions, truncated = normalize_suggestions(args.get("suggestions"))
    fmt.system(format_prompt(text, suggestions, truncated))

    answer = ctx.ask("Answer › ")
    if inspect.isawaitable(answer):
        answer = await answer

    payload = {
        "question": text,
        "suggestions": suggestions,
        "suggestions_truncated": truncated,
        "answer": (answer or "").strip(),
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)
