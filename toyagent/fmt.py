"""ANSI-formatted stderr output using Rich."""

import re

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

_console = Console(stderr=True)

MAX_RESULT_LINES = 30
MAX_RESULT_CHARS = 1200


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level console from CLI flags.

    Call once at startup, before any output.
    """
    global _console
    kwargs: dict = {"stderr": True}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(**kwargs)


def _truncate(text: str) -> tuple[str, bool]:
    lines = text.splitlines()
    truncated = False
    if len(lines) > MAX_RESULT_LINES:
        lines = lines[:MAX_RESULT_LINES]
        truncated = True
    out = "\n".join(lines)
    if len(out) > MAX_RESULT_CHARS:
        out = out[:MAX_RESULT_CHARS] + "…"
        truncated = True
    return out, truncated


# -- Round structure ---------------------------------------------------------


def round_header(n: int, max_n: int, token_est: int) -> None:
    title = f"Round {n}/{max_n} (~{token_est} tokens)"
    _console.print(Rule(title, style="cyan"))


def llm_timing(elapsed: float, finish_reason: str | None) -> None:
    style = "green" if finish_reason in ("stop", "tool_calls") else "yellow"
    text = Text()
    text.append(f"  LLM responded in {elapsed:.1f}s", style=style)
    text.append(f"  finish_reason={escape(str(finish_reason))}", style=style)
    _console.print(text)


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold magenta")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, elapsed: float, preview: str) -> None:
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    header.append(f"  {elapsed:.1f}s", style="green")
    _console.print(header)
    if preview:
        body, truncated = _truncate(preview)
        for line in body.splitlines():
            _console.print(Text(f"    {line}", style="dim"))
        if truncated:
            _console.print(Text("    (truncated)", style="dim"))


def tool_error(name: str, msg: str) -> None:
    header = Text()
    header.append(f"  ✗ {name}", style="bold red")
    header.append(f"  {msg}", style="red")
    _console.print(header)


def note_update(action: str, key: str, total: int) -> None:
    prefix_map = {"add": "+1", "update": "~", "delete": "-1"}
    tag = prefix_map.get(action, action)
    line = Text()
    line.append(f"  [note {tag}]", style="yellow")
    line.append(f" {key} ({total} notes)", style="dim italic")
    _console.print(line)


# -- Model output ------------------------------------------------------------


def reasoning(text: str) -> None:
    if not text:
        return
    _console.print(
        Panel(
            Text(text, style="dim italic"),
            title="thinking",
            title_align="left",
            border_style="cyan",
        )
    )


def assistant(text: str) -> None:
    _console.print(
        Panel(Text(text), title="AI", title_align="left", border_style="bold cyan")
    )


def system(text: str) -> None:
    _console.print(
        Panel(Text(text), title="System", title_align="left", border_style="magenta")
    )


# -- Diagnostics -------------------------------------------------------------


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner(model: str | None = None) -> None:
    title = Text("toyagent", style="bold cyan")
    if model:
        title.append(f"  model={model}", style="dim")
    _console.print(title)
    _console.print(
        Text(
            "Type / for help. /clear resets context, /tools lists tools, /exit quits.",
            style="dim",
        )
    )


# -- Streaming preview -------------------------------------------------------

_WS_RE = re.compile(r"\s+")


class StreamPreview:
    """Rolling single-line view of a streaming sub-call.

    Each fragment is flattened to one line and the last `window` characters
    are redrawn in place. Reasoning and visible text get a one-time [T] / [O]
    marker when they first appear.
    """

    def __init__(self, prefix: str = "[outline stream] ", window: int = 80):
        self.prefix = prefix
        self.window = window
        self._buffer = ""
        self._marked: set[str] = set()
        self._wrote = False

    def feed(self, kind: str, chunk: str) -> None:
        if not chunk:
            return
        if kind not in self._marked:
            self._marked.add(kind)
            self._buffer += "[T] " if kind == "reasoning" else "[O] "
        self._buffer += _WS_RE.sub(" ", chunk.replace("\n", " "))
        if len(self._buffer) > self.window * 50:
            self._buffer = self._buffer[-self.window * 50 :]
        view = self._buffer[-self.window :]
        out = _console.file
        out.write(f"\r{self.prefix}{view.ljust(self.window)}")
        out.flush()
        self._wrote = True

    def close(self) -> None:
        if self._wrote:
            _console.file.write("\n")
            _console.file.flush()
            self._wrote = False


def stream_preview(prefix: str = "[outline stream] ", window: int = 80) -> StreamPreview:
    return StreamPreview(prefix=prefix, window=window)
