"""Interactive read-eval-print loop and its slash commands."""

import asyncio
import os
import re
import shlex
import signal
import subprocess
import sys
import tempfile
from datetime import datetime
from pathlib import Path

from . import fmt
from .agent import NO_ANSWER, TOYAGENT_DIR, append_history
from .config import profile_names
from .errors import AgentError
from .tools import docs_dir
from .turns import AssistantTurn, UserTurn

COMMANDS = [
    ("/help", "Show this help"),
    ("/clear", "Clear conversation context and notes"),
    ("/tools", "List available tools"),
    ("/notes", "Show the notebook"),
    ("/profile [name]", "List profiles, or switch to one for this session"),
    ("/save", "Save the conversation to .toyagent/docs/"),
    ("/m", "Compose a multi-line message in $EDITOR"),
    ("/exit", "Exit (also /quit or Ctrl-D)"),
]

EXIT = "exit"
HANDLED = "handled"

TITLE_PROMPT = (
    "You name conversations. Reply with a concise title of 2 to 6 words that "
    "captures the main topic. Return only the title, no quotes or punctuation."
)
MAX_TITLE_CHARS = 60


def _repl_help() -> None:
    width = max(len(c) for c, _ in COMMANDS)
    lines = ["Available commands:"]
    lines += [f"  {cmd.ljust(width)}  {desc}" for cmd, desc in COMMANDS]
    fmt.system("\n".join(lines))


def _repl_clear(session) -> None:
    dropped = session.reset()
    fmt.system(f"Cleared conversation context ({dropped} turns).")


def _repl_tools(session) -> None:
    lines = [
        f"  - {t.name}: {t.description}" for t in session.registry.descriptors()
    ]
    fmt.system("\n".join(["Available tools:", *lines]))


def _repl_notes(session) -> None:
    if not len(session.notebook):
        fmt.system("Notebook is empty.")
        return
    fmt.system(session.notebook.to_json(indent=2))


def _repl_profile(session, arg: str, config: dict, make_clients) -> None:
    names = profile_names(config)
    if not arg:
        lines = []
        settings = session.llm_settings
        if settings is not None:
            lines.append(f"Effective settings (profile: {settings.profile or 'none'}):")
            lines += settings.summary_lines()
            lines.append("")
        if not names:
            lines.append("No profiles defined. Add [profiles.<name>] tables to config.toml.")
        else:
            profiles = config.get("profiles", {})
            lines.append("Profiles:")
            for name in names:
                label = profiles[name].get("label", "")
                model = profiles[name].get("model", "")
                detail = " ".join(x for x in (label, f"model={model}" if model else "") if x)
                lines.append(f"  - {name}  {detail}".rstrip())
        fmt.system("\n".join(lines))
        return
    if make_clients is None:
        fmt.warning("profile switching is not available in this session")
        return
    client, fast_client, settings = make_clients(arg)
    session.set_client(client, fast_client, settings)
    fmt.system(f"Switched to profile {arg!r} (model {client.model}) for this session.")


def sanitize_filename(name: str, fallback: str = "conversation") -> str:
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", name)
    cleaned = re.sub(r"\s+", "-", cleaned.strip())
    cleaned = re.sub(r"-{2,}", "-", cleaned).strip("-").rstrip(". ")
    return cleaned or fallback


def transcript_markdown(history, title: str) -> str:
    turns = [t for t in history if isinstance(t, (UserTurn, AssistantTurn))]
    lines = [
        f"# {title}",
        "",
        f"**Saved at:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Messages:** {len(turns)}",
        "",
        "---",
        "",
    ]
    for turn in turns:
        if isinstance(turn, UserTurn):
            lines += ["## User", "", turn.content.strip()]
        else:
            lines += ["## Assistant", ""]
            if turn.content:
                lines.append(turn.content.strip())
            if turn.invocations:
                names = ", ".join(inv.tool_name for inv in turn.invocations)
                lines += ["", f"*Called tools: {names}*"]
        lines += ["", "---", ""]
    return "\n".join(lines)


async def generate_title(client, history) -> str:
    recent = [
        {"role": t.role, "content": (t.content or "")[:200]}
        for t in history
        if isinstance(t, (UserTurn, AssistantTurn)) and t.content
    ][-6:]
    messages = [
        {"role": "system", "content": TITLE_PROMPT},
        *recent,
        {"role": "user", "content": "Give this conversation a short title."},
    ]
    raw = await client.complete(messages)
    title = " ".join(raw.split())
    return title[:MAX_TITLE_CHARS] or "conversation"


async def _repl_save(session) -> None:
    fmt.info("Generating title for conversation...")
    try:
        title = await generate_title(session.client, session.history)
    except AgentError as e:
        fmt.warning(f"title generation failed ({e}), using a default title")
        title = "conversation"

    directory = docs_dir(session.base_dir)
    path = directory / f"{sanitize_filename(title)}.md"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(transcript_markdown(session.history, title), encoding="utf-8")
    except OSError as e:
        fmt.error(f"Failed to save conversation: {e}")
        return
    fmt.system(f"Conversation saved to: {path}")


def _editor_command() -> list[str]:
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR")
    if editor:
        return shlex.split(editor)
    return ["notepad.exe"] if sys.platform == "win32" else ["vi"]


def edit_text(draft: str) -> str | None:
    """Open draft in the user's editor. Returns the edited text, or None on failure."""
    with tempfile.TemporaryDirectory(prefix="toyagent-m-") as tmp:
        path = Path(tmp) / "message.txt"
        path.write_text(draft, encoding="utf-8")
        try:
            subprocess.run([*_editor_command(), str(path)], check=False)
        except OSError as e:
            fmt.error(f"Failed to launch editor: {e}")
            return None
        return path.read_text(encoding="utf-8").removeprefix("﻿")


async def _repl_multiline(prompt) -> str | None:
    """Run the /m compose loop. Returns the text to send, or None if discarded."""
    draft = ""
    while True:
        edited = edit_text(draft)
        if edited is None:
            return None
        draft = edited
        fmt.system(
            "\n".join(
                [
                    "Multi-line draft:",
                    "",
                    draft or "(empty)",
                    "",
                    "Enter=send  /m=edit  /cancel=discard",
                ]
            )
        )
        decision = (await prompt("send? ")).strip().lower()
        if decision == "":
            return draft
        if decision == "/m":
            continue
        if decision == "/cancel":
            return None
        fmt.warning("Use Enter to send, /m to edit, /cancel to discard.")


async def handle_command(line: str, session, *, config, make_clients, prompt):
    """Handle a slash command.

    Returns EXIT, HANDLED, or a message string to send to the model (from /m).
    """
    parts = line[1:].strip().split(None, 1)
    cmd = parts[0].lower() if parts else ""
    arg = parts[1].strip() if len(parts) > 1 else ""

    if cmd in ("", "help"):
        _repl_help()
    elif cmd in ("exit", "quit"):
        return EXIT
    elif cmd == "clear":
        _repl_clear(session)
    elif cmd == "tools":
        _repl_tools(session)
    elif cmd == "notes":
        _repl_notes(session)
    elif cmd == "profile":
        _repl_profile(session, arg, config, make_clients)
    elif cmd == "save":
        await _repl_save(session)
    elif cmd == "m":
        text = await _repl_multiline(prompt)
        if text and text.strip():
            return text
    else:
        fmt.warning(f"Unknown command: /{cmd}. Type / to see available commands.")
    return HANDLED


async def run_interruptible(coro):
    """Await coro in its own task; Ctrl-C cancels just that task."""
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(coro)
    handler_installed = False
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, task.cancel)
        handler_installed = True
    try:
        return await task
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _answer(session, text: str, no_history: bool) -> None:
    try:
        answer = await run_interruptible(session.ask(text))
    except asyncio.CancelledError:
        if asyncio.current_task().cancelling():
            raise
        fmt.warning("interrupted, question aborted.")
        return
    except AgentError as e:
        fmt.error(str(e))
        return

    if answer is NO_ANSWER:
        fmt.error("No final response received (tool loop limit reached).")
        return
    fmt.assistant(answer)
    if not no_history:
        append_history(session.base_dir, text, answer)


def _prompt_session(base_dir: str):
    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory

    history_path = Path(base_dir) / TOYAGENT_DIR / "repl_history"
    history_path.parent.mkdir(parents=True, exist_ok=True)
    return PromptSession(
        history=FileHistory(str(history_path)),
        enable_history_search=True,
    )


async def repl_loop(
    session,
    *,
    config: dict | None = None,
    make_clients=None,
    initial_question: str | None = None,
    no_history: bool = False,
    prompt_session=None,
) -> None:
    """Interactive read-eval-print loop."""
    from prompt_toolkit.formatted_text import FormattedText

    if prompt_session is None:
        prompt_session = _prompt_session(session.base_dir)

    async def prompt(text) -> str:
        return await prompt_session.prompt_async(text)

    # The question tool reads from the same prompt.
    session.ask_user = prompt
    prompt_text = FormattedText([("bold fg:ansiblue", "You"), ("", " › ")])

    if session.verbose:
        fmt.repl_banner(session.client.model)

    if initial_question:
        await _answer(session, initial_question, no_history)

    while True:
        try:
            print(file=sys.stderr)  # blank line before prompt
            line = await prompt(prompt_text)
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)  # newline after ^D / ^C
            break

        line = line.strip()
        if not line:
            continue

        if line.startswith("/"):
            try:
                action = await handle_command(
                    line,
                    session,
                    config=config or {},
                    make_clients=make_clients,
                    prompt=prompt,
                )
            except AgentError as e:
                fmt.error(str(e))
                continue
            if action == EXIT:
                break
            if action == HANDLED:
                continue
            line = action

        await _answer(session, line, no_history)
