"""Per-request status block and message composition."""

import os
from datetime import datetime
from pathlib import Path

from .turns import SystemTurn, UserTurn, to_messages


class Environment:
    """Clock and working directory source. Tests substitute their own."""

    def __init__(self, base_dir: str | None = None):
        self.base_dir = base_dir

    def now(self) -> datetime:
        return datetime.now()

    def cwd(self) -> str:
        if self.base_dir:
            return str(Path(self.base_dir).resolve())
        return os.getcwd()


def status_text(
    *, now: datetime, cwd: str, last_user_query: str, notes_json: str
) -> str:
    return "\n".join(
        [
            "=== Environment context (read-only) ===",
            f"[Current Time]: {now.strftime('%Y-%m-%d %H:%M:%S')}",
            f"[Current WorkDir]: {cwd}",
            f"[User Last Query]: {last_user_query}",
            "[Tool Guide]:",
            "- add_note creates a note",
            "- update_note changes a note (including its tags)",
            "- delete_note removes a note that is no longer needed",
            "",
            "=== Notebook (editable scratchpad) ===",
            "Short-term working memory for key facts, plans and status. "
            "It is not a transcript.",
            "- Do not store the final answer or long passages of conversation or reasoning.",
            "- Record only reusable facts and constraints, a plan of 3-7 steps, "
            "and status changes.",
            "- Use semantic keys; use tags such as TODO/IN_PROGRESS/DONE, "
            "Verified/Uncertain, Source:*.",
            "Current notes (JSON):",
            notes_json,
            "",
            "======================================",
        ]
    )


def build_status_turn(history, notebook, environment: Environment) -> SystemTurn:
    """Render the ephemeral status block as one synthetic system turn."""
    return SystemTurn(
        status_text(
            now=environment.now(),
            cwd=environment.cwd(),
            last_user_query=history.last_user_query(),
            notes_json=notebook.to_json(indent=2),
        )
    )


def insertion_index(turns) -> int:
    """Where the status block goes in a sequence of turns.

    Before the latest user turn when it is the last turn; right after it when
    assistant/tool turns follow, so a tool-call run is never split; after a
    leading system turn when there is no user turn at all.
    """
    for i in range(len(turns) - 1, -1, -1):
        if isinstance(turns[i], UserTurn):
            return i if i == len(turns) - 1 else i + 1
    if turns and isinstance(turns[0], SystemTurn):
        return 1
    return 0


def compose(history, status: SystemTurn) -> list:
    """Return the turns to send upstream. History itself is left untouched."""
    turns = list(history.turns)
    idx = insertion_index(turns)
    return turns[:idx] + [status] + turns[idx:]


def compose_messages(history, notebook, environment: Environment) -> list[dict]:
    return to_messages(compose(history, build_status_turn(history, notebook, environment)))
