import argparse
import asyncio
import json
import sys
import time
from dataclasses import replace
from datetime import datetime
from importlib import metadata
from pathlib import Path

import tiktoken

from . import fmt
from .config import (
    _UNSET,
    apply_config_to_args,
    generate_config,
    global_config_dir,
    load_config,
    require_llm_settings,
    resolve_llm_settings,
)
from .context import compose_messages
from .errors import AgentError, ConfigError, EmptyResponseError
from .history import History
from .stream import assemble
from .turns import AssistantTurn, SystemTurn, ToolTurn

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"
DEFAULT_MAX_ROUNDS = 100
TOYAGENT_DIR = ".toyagent"

_encoder = tiktoken.get_encoding("cl100k_base")

MAX_HISTORY_SIZE = 500 * 1024  # 500KB


class _NoAnswer:
    """Returned by run_tool_loop when the round budget runs out."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_ANSWER"

    def __bool__(self) -> bool:
        return False


NO_ANSWER = _NoAnswer()


# --- Reasoning policies ---
# Applied to an assistant turn that carries tool calls, before it is committed.


def reasoning_as_content(turn: AssistantTurn) -> AssistantTurn:
    """Replace visible content with the reasoning text."""
    return replace(turn, content=turn.reasoning)


def keep_content(turn: AssistantTurn) -> AssistantTurn:
    return turn


# --- History file and prompt helpers ---


def _safe_history_path(base_dir: str) -> Path:
    """Build history path, verify it resolves inside base_dir."""
    base = Path(base_dir).resolve()
    history_path = (Path(base_dir) / TOYAGENT_DIR / "HISTORY.md").resolve()
    if not history_path.is_relative_to(base):
        raise ValueError(f"history path {history_path} escapes base directory {base}")
    return history_path


def append_history(base_dir: str, question: str, answer: str) -> None:
    """Append a timestamped Q&A entry to .toyagent/HISTORY.md."""
    if not answer or not answer.strip():
        return

    try:
        history_path = _safe_history_path(base_dir)
    except ValueError:
        fmt.warning("history path escapes base directory, skipping write")
        return

    try:
        history_path.parent.mkdir(parents=True, exist_ok=True)

        current_size = history_path.stat().st_size if history_path.exists() else 0
        if current_size >= MAX_HISTORY_SIZE:
            fmt.warning("history file at capacity, skipping write")
            return

        q_display = question[:200] + "..." if len(question) > 200 else question
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        entry = f"---\n\n**{timestamp}** *{q_display}*\n\n{answer}\n\n"

        with history_path.open("a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        fmt.warning("failed to write history entry")


def load_system_prompt(override: str | None = None) -> str:
    if override:
        return override
    return DEFAULT_SYSTEM_PROMPT_FILE.read_text(encoding="utf-8")


def ensure_system_prompt(history: History, text: str | None = None) -> History:
    """Return a History whose first turn is the instruction turn.

    A history that already starts with a system turn is returned unchanged;
    otherwise a new History seeded with the system prompt is built and the
    existing turns are replayed into it.
    """
    if len(history) and isinstance(history[0], SystemTurn):
        return history
    seeded = History(seed=SystemTurn(load_system_prompt(text)))
    for turn in history:
        seeded.append(turn)
    return seeded


def estimate_tokens(messages: list, tools: list | None = None) -> int:
    """Count tokens across wire messages using tiktoken."""
    total = 0
    for m in messages:
        content = m.get("content") or ""
        for tc in m.get("tool_calls") or []:
            fn = tc.get("function", {})
            content += fn.get("name", "") + (fn.get("arguments", "") or "")
        total += len(_encoder.encode(content))
    if tools:
        total += len(_encoder.encode(json.dumps(tools)))
    # Per-message overhead (role, separators), about 4 tokens each
    total += 4 * len(messages)
    return total


# --- Tool loop ---


async def run_tool_loop(
    history: History,
    *,
    client,
    registry,
    context,
    notebook,
    environment,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    reasoning_policy=reasoning_as_content,
    verbose: bool = False,
):
    """Run request/assemble/dispatch rounds until the model answers.

    Returns the final answer text (possibly ""), or NO_ANSWER after exactly
    max_rounds requests. A turn is committed to history only once it is
    fully assembled and, for tool rounds, once every call has a result; an
    interrupted or failed round leaves history as it was.

    Raises TransportError from the client and EmptyResponseError when a
    tool-free turn has no content at all.
    """
    tools = registry.to_openai_tools()

    for round_no in range(1, max_rounds + 1):
        messages = compose_messages(history, notebook, environment)
        if verbose:
            fmt.round_header(round_no, max_rounds, estimate_tokens(messages, tools))

        t0 = time.monotonic()
        turn = await assemble(client.stream(messages, tools))
        elapsed = time.monotonic() - t0

        if verbose:
            fmt.llm_timing(elapsed, "tool_calls" if turn.invocations else "stop")
            if turn.reasoning:
                fmt.reasoning(turn.reasoning)

        if turn.invocations:
            committed = reasoning_policy(turn)
            results = await registry.dispatch(
                committed.invocations, context, verbose=verbose
            )
            history.append(committed)
            for result in results:
                history.append(ToolTurn.from_result(result))
            continue

        if turn.content is None:
            raise EmptyResponseError(
                "model returned neither content nor tool calls"
            )
        history.append(turn)
        return turn.content

    return NO_ANSWER


# --- CLI ---


def build_parser():
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="toyagent",
        usage="%(prog)s [options] [question]\n       %(prog)s --repl [options] [question]",
        description=(
            "An interactive tool-calling agent: file search, reading, listing, "
            "notes and outlines over any OpenAI-compatible endpoint."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "question",
        nargs="?",
        default=None,
        help="Answer a single question and exit (omit to start the REPL).",
    )
    parser.add_argument(
        "--repl",
        action="store_true",
        help="Start an interactive session (after answering question, if given).",
    )
    parser.add_argument(
        "--provider",
        choices=["openai", "openrouter", "lmstudio"],
        default=None,
        help="LLM provider (default: openai, meaning any OpenAI-compatible endpoint).",
    )
    parser.add_argument("--model", default=None, help="Model identifier.")
    parser.add_argument(
        "--fast-model",
        default=None,
        help="Cheaper model for sub-calls such as outline (default: --model).",
    )
    parser.add_argument(
        "--base-url", default=None, help="Server base URL (overrides TOY_BASE_URL)."
    )
    parser.add_argument(
        "--api-key", default=None, help="API key (overrides TOY_API_KEY)."
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Use the named [profiles.<name>] table from the config file.",
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=_UNSET,
        help=f"Maximum model requests per question (default: {DEFAULT_MAX_ROUNDS}).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: provider default).",
    )
    parser.add_argument(
        "--base-dir",
        default=".",
        help="Base directory for file tools and .toyagent/ state (default: .).",
    )
    parser.add_argument(
        "--system-prompt",
        default=_UNSET,
        help="Replace the built-in system prompt.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Suppress all diagnostics; only print the final result.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )

    parser.add_argument(
        "--no-history",
        action="store_true",
        default=_UNSET,
        help="Don't write answers to .toyagent/HISTORY.md",
    )
    parser.add_argument(
        "--debug-log",
        action="store_true",
        default=_UNSET,
        help="Append every request payload to .toyagent/debug.log",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented config template and exit.",
    )
    parser.add_argument(
        "--project",
        action="store_true",
        help="With --init-config, write <base-dir>/toyagent.toml instead of the global file.",
    )

    return parser


def _init_config(args) -> None:
    if args.project:
        path = Path(args.base_dir).resolve() / "toyagent.toml"
    else:
        path = global_config_dir() / "config.toml"
    if path.exists():
        raise ConfigError(f"{path} already exists, not overwriting")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_config(project=args.project), encoding="utf-8")
    print(path)


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("toyagent")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.project and not args.init_config:
        parser.error("--project is only valid with --init-config")

    try:
        if args.init_config:
            _init_config(args)
            sys.exit(0)

        config = load_config(Path(args.base_dir))
        apply_config_to_args(args, config)
        args.verbose = not args.quiet
        if args.max_rounds < 1:
            parser.error("--max-rounds must be at least 1")

        fmt.init(color=args.color, no_color=args.no_color)
        code = asyncio.run(_run_main(args, config))
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        fmt.warning("interrupted")
        sys.exit(130)
    sys.exit(code)


def build_clients(settings, args):
    """Create (client, fast_client) for the resolved connection settings."""
    from .llm import CompletionClient

    debug_log = (
        Path(args.base_dir).resolve() / TOYAGENT_DIR / "debug.log"
        if args.debug_log
        else None
    )
    client = CompletionClient(
        model=settings.model,
        base_url=settings.base_url,
        api_key=settings.api_key,
        provider=settings.provider,
        temperature=args.temperature,
        debug_log=debug_log,
        verbose=args.verbose,
    )
    fast_client = client.with_model(settings.fast_model) if settings.fast_model else None
    return client, fast_client


async def _run_main(args, config) -> int:
    from .session import ChatSession

    cli = {
        "model": args.model,
        "fast_model": args.fast_model,
        "api_key": args.api_key,
        "base_url": args.base_url,
        "provider": args.provider,
    }

    def make_clients(profile: str | None):
        settings = require_llm_settings(resolve_llm_settings(config, profile, cli))
        if args.verbose:
            sources = ", ".join(f"{k}={v}" for k, v in settings.sources.items())
            fmt.info(f"Using model {settings.model} ({sources})")
        return (*build_clients(settings, args), settings)

    client, fast_client, settings = make_clients(args.profile)
    session = ChatSession(
        client=client,
        fast_client=fast_client,
        llm_settings=settings,
        base_dir=args.base_dir,
        system_prompt=args.system_prompt,
        max_rounds=args.max_rounds,
        verbose=args.verbose,
    )

    if not args.repl and args.question is not None:
        answer = await session.ask(args.question)
        if answer is NO_ANSWER:
            fmt.warning("No final response received (tool loop limit reached).")
            return 2
        if not args.no_history:
            append_history(args.base_dir, args.question, answer)
        print(answer)
        return 0

    from .repl import repl_loop

    await repl_loop(
        session,
        config=config,
        make_clients=make_clients,
        initial_question=args.question,
        no_history=args.no_history,
    )
    return 0
