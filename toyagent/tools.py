"""Tool definitions and implementations for the agent."""

import fnmatch
import os
import re
from datetime import datetime, timezone
from pathlib import Path

from . import notebook, outline, question
from .registry import ToolDescriptor, ToolRegistry

BINARY_CHECK_BYTES = 8 * 1024  # 8 KB
MAX_LINE_LENGTH = 2000

READ_MAX_LINES = 500
READ_MAX_CHARS = 100_000

LS_MAX_DEPTH = 50
LS_MAX_ENTRIES = 2000

GREP_DEFAULT_OUTPUT = 200
GREP_MAX_OUTPUT = 5000
GREP_DEFAULT_FILE_SIZE = 1_000_000
GREP_FILE_SIZE_RANGE = (1_000, 50_000_000)
GREP_EXCLUDED_DIRS = {".git", "node_modules"}


def resolve_path(raw: str, base_dir: str) -> Path:
    """Resolve a tool path argument against the session base directory."""
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = Path(base_dir) / p
    return p.resolve()


def _str_arg(args: dict, name: str) -> str:
    value = args.get(name)
    return value.strip() if isinstance(value, str) else ""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _int_arg(args: dict, name: str, default: int, lo: int, hi: int) -> int:
    value = args.get(name)
    if not _is_int(value):
        value = default
    return max(lo, min(hi, value))


def _bool_arg(args: dict, name: str, default: bool) -> bool:
    value = args.get(name)
    return value if isinstance(value, bool) else default


def _is_binary(path: Path) -> bool:
    with open(path, "rb") as f:
        return b"\x00" in f.read(BINARY_CHECK_BYTES)


# -- get_time / pwd ----------------------------------------------------------


def get_time(ctx, args: dict) -> str:
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def pwd(ctx, args: dict) -> str:
    return str(Path(ctx.base_dir).resolve())


# -- ls ----------------------------------------------------------------------


def load_gitignore(root: Path) -> list[str]:
    """Read fnmatch patterns from root/.gitignore. Negations are skipped."""
    try:
        text = (root / ".gitignore").read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []
    patterns = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        patterns.append(line)
    return patterns


def is_ignored(rel: str, is_dir: bool, patterns: list[str]) -> bool:
    """Check a root-relative POSIX path against .gitignore-style patterns."""
    parts = rel.split("/")
    for pat in patterns:
        dir_only = pat.endswith("/")
        if dir_only and not is_dir:
            continue
        body = pat.strip("/")
        if not body:
            continue
        if "/" in body:
            # Anchored to the root.
            if fnmatch.fnmatchcase(rel, body):
                return True
        elif fnmatch.fnmatchcase(parts[-1], body):
            return True
    return False


def _walk_entries(root: Path, depth: int, dot: bool, ignore: list[str]) -> list[str]:
    entries: list[str] = []

    def walk(directory: Path, prefix: str, level: int) -> None:
        try:
            children = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for child in children:
            if not dot and child.name.startswith("."):
                continue
            rel = f"{prefix}{child.name}"
            is_dir = child.is_dir(follow_symlinks=False)
            if ignore and is_ignored(rel, is_dir, ignore):
                continue
            entries.append(rel + "/" if is_dir else rel)
            if is_dir and level < depth:
                walk(Path(child.path), rel + "/", level + 1)

    walk(root, "", 1)
    return sorted(entries)


def ls(ctx, args: dict) -> str:
    raw = _str_arg(args, "path") or "."
    depth = _int_arg(args, "depth", 1, 1, LS_MAX_DEPTH)
    limit = _int_arg(args, "max_entries", 100, 1, LS_MAX_ENTRIES)
    use_gitignore = _bool_arg(args, "gitignore", True)
    dot = _bool_arg(args, "dot", False)

    root = resolve_path(raw, ctx.base_dir)
    if not root.exists():
        return f"Error: failed to list '{raw}' - path does not exist: {root}"
    if not root.is_dir():
        return f"Error: failed to list '{raw}' - not a directory: {root}"

    ignore = load_gitignore(root) if use_gitignore else []
    entries = _walk_entries(root, depth, dot, ignore)
    shown = entries[:limit]

    out = [f"ls {raw} (depth={depth}, showing {len(shown)}/{len(entries)} items)"]
    out.extend(shown)
    if len(entries) > limit:
        out.append("...")
        out.append(
            f"[WARN] Output truncated. Total entries: {len(entries)}. "
            "Narrow your search or decrease depth."
        )
    return "\n".join(out)


# -- read_file ---------------------------------------------------------------


def read_file(ctx, args: dict) -> str:
    raw = _str_arg(args, "path")
    if not raw:
        return "Error: 'path' is required"

    resolved = resolve_path(raw, ctx.base_dir)
    if not resolved.exists():
        return f"Error: path does not exist: '{raw}' (resolved: {resolved})"
    if not resolved.is_file():
        return f"Error: '{raw}' (resolved: {resolved}) is not a file"

    try:
        if _is_binary(resolved):
            return f"Error: binary file detected: {raw}"
        text = resolved.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        return f"Error: failed to decode '{raw}' as UTF-8: {exc}"
    except OSError as exc:
        return f"Error: failed to read '{raw}' (resolved: {resolved}) - {exc}"

    lines = text.splitlines()
    total = len(lines)
    wants_range = args.get("start_line") is not None or args.get("line_count") is not None
    if not wants_range and (total > READ_MAX_LINES or len(text) > READ_MAX_CHARS):
        return (
            f"Error: file is too large to read entirely (lines={total}, "
            f"chars={len(text)}). Specify 'start_line' and 'line_count'."
        )

    start = args.get("start_line")
    start = max(1, start) if _is_int(start) else 1
    count = args.get("line_count")
    count = max(1, count) if _is_int(count) else None

    if total == 0 and not wants_range:
        return f"read_file {raw} (resolved: {resolved}) lines 0-0 of 0"
    if start > total:
        return f"Error: start_line ({start}) is beyond EOF (total lines: {total})"

    end = min(total, start + count - 1) if count else total
    width = len(str(end))
    body = []
    for n in range(start, end + 1):
        line = lines[n - 1]
        if len(line) > MAX_LINE_LENGTH:
            line = line[:MAX_LINE_LENGTH]
        body.append(f"{n:>{width}} | {line}")

    header = f"read_file {raw} (resolved: {resolved}) lines {start}-{end} of {total}"
    return "\n".join([header, *body])


# -- grep --------------------------------------------------------------------


def glob_to_regex(glob: str) -> re.Pattern:
    """Translate a path glob: `*` and `?` stop at `/`, `**` crosses it."""
    g = glob.replace("\\", "/")
    out = ["^"]
    i = 0
    while i < len(g):
        ch = g[i]
        if ch == "*":
            if g[i + 1 : i + 2] == "*":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    out.append("$")
    return re.compile("".join(out))


def _glob_list(value) -> list[str]:
    if not isinstance(value, str):
        return []
    return [s.strip() for s in re.split(r"[;,]", value) if s.strip()]


class _GrepRun:
    def __init__(
        self, matcher, include, exclude, include_globs, recursive, max_lines, max_size
    ):
        self.matcher = matcher
        self.include = include
        self.exclude = exclude
        self.include_globs = include_globs
        self.recursive = recursive
        self.max_lines = max_lines
        self.max_size = max_size
        self.results: dict[str, list[tuple[int, str]]] = {}
        self.scanned = 0
        self.skipped = 0
        self.shown = 0
        self.truncated = False

    def wanted(self, rel: str) -> bool:
        if self.exclude and any(r.match(rel) for r in self.exclude):
            return False
        if self.include and not any(r.match(rel) for r in self.include):
            return False
        return True

    def scan_file(self, path: Path, rel: str) -> None:
        if self.truncated:
            return
        if not self.wanted(rel):
            self.skipped += 1
            return
        try:
            st = path.stat()
            if not path.is_file() or st.st_size > self.max_size:
                self.skipped += 1
                return
            data = path.read_bytes()
        except OSError:
            self.skipped += 1
            return
        if b"\x00" in data:
            self.skipped += 1
            return

        self.scanned += 1
        text = data.decode("utf-8", errors="replace")
        for line_no, line in enumerate(text.splitlines(), start=1):
            if not self.matcher(line):
                continue
            if self.shown >= self.max_lines:
                self.truncated = True
                return
            self.results.setdefault(rel, []).append((line_no, line))
            self.shown += 1

    def walk(self, directory: Path, root: Path) -> None:
        try:
            children = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for child in children:
            if self.truncated:
                return
            path = Path(child.path)
            if child.is_dir(follow_symlinks=False):
                if not self.recursive:
                    continue
                if child.name in GREP_EXCLUDED_DIRS and not any(
                    child.name in g for g in self.include_globs
                ):
                    continue
                self.walk(path, root)
            elif child.is_file():
                self.scan_file(path, path.relative_to(root).as_posix())


def grep(ctx, args: dict) -> str:
    pattern = args.get("pattern") if isinstance(args.get("pattern"), str) else ""
    if not pattern.strip():
        return "Error: 'pattern' is required"
    raw = _str_arg(args, "path") or "."

    recursive = _bool_arg(args, "recursive", True)
    regex_mode = _bool_arg(args, "regex", True)
    ignore_case = _bool_arg(args, "ignore_case", False)
    filter_text = args.get("filter") if isinstance(args.get("filter"), str) else ""
    filter_ignore_case = _bool_arg(args, "filter_ignore_case", False)
    max_lines = _int_arg(
        args, "max_output_lines", GREP_DEFAULT_OUTPUT, 1, GREP_MAX_OUTPUT
    )
    max_size = _int_arg(
        args, "max_file_size_bytes", GREP_DEFAULT_FILE_SIZE, *GREP_FILE_SIZE_RANGE
    )
    include_globs = _glob_list(args.get("include_glob"))
    exclude_globs = _glob_list(args.get("exclude_glob"))

    try:
        main_re = (
            re.compile(pattern, re.IGNORECASE if ignore_case else 0)
            if regex_mode
            else None
        )
        filter_re = (
            re.compile(filter_text, re.IGNORECASE if filter_ignore_case else 0)
            if filter_text.strip()
            else None
        )
    except re.error as exc:
        return f"Error: invalid regex - {exc}"

    needle = pattern.lower() if ignore_case else pattern

    def matcher(line: str) -> bool:
        if main_re is not None:
            ok = main_re.search(line) is not None
        else:
            ok = needle in (line.lower() if ignore_case else line)
        if ok and filter_re is not None:
            return filter_re.search(line) is not None
        return ok

    target = resolve_path(raw, ctx.base_dir)
    if not target.exists():
        return f"Error: failed to stat '{raw}' (resolved: {target}) - no such file or directory"

    run = _GrepRun(
        matcher,
        [glob_to_regex(g) for g in include_globs],
        [glob_to_regex(g) for g in exclude_globs],
        include_globs,
        recursive,
        max_lines,
        max_size,
    )
    if target.is_file():
        run.scan_file(target, target.name)
    elif target.is_dir():
        run.walk(target, target)
    else:
        return f"Error: '{raw}' (resolved: {target}) is neither a file nor a directory"

    header = [
        f"grep {pattern}",
        f"path={raw}",
        f"recursive={str(recursive).lower()}",
        f"regex={str(regex_mode).lower()}",
        f"ignore_case={str(ignore_case).lower()}",
    ]
    if include_globs:
        header.append(f"include_glob={','.join(include_globs)}")
    if exclude_globs:
        header.append(f"exclude_glob={','.join(exclude_globs)}")
    if filter_text.strip():
        header.append(f"filter={filter_text}")
    header.append(f"shown_lines={run.shown}/{max_lines}")
    header.append(f"truncated={str(run.truncated).lower()}")

    out = [" | ".join(header)]
    if not run.results:
        out.append("(no matches)")
    for rel, matches in run.results.items():
        out.append("")
        out.append(f"==> {rel} <== ({len(matches)} matches)")
        for line_no, text in matches:
            if len(text) > MAX_LINE_LENGTH:
                text = text[:MAX_LINE_LENGTH]
            out.append(f"{line_no:6d} | {text}")

    summary = (
        f"summary: files_scanned={run.scanned}, files_with_matches={len(run.results)}, "
        f"files_skipped={run.skipped}, matches_shown={run.shown}"
    )
    if run.truncated:
        summary += ", NOTE: output truncated"
    out.extend(["", summary])
    return "\n".join(out)


# -- write_report ------------------------------------------------------------


def slugify(text: str, fallback: str = "report") -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or fallback


def docs_dir(base_dir: str) -> Path:
    return Path(base_dir).resolve() / ".toyagent" / "docs"


def write_report(ctx, args: dict) -> str:
    title = _str_arg(args, "title")
    body = _str_arg(args, "body")
    if not title:
        return "Error: 'title' is required"
    if not body:
        return "Error: 'body' is required"

    directory = docs_dir(ctx.base_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return f"Error: failed to ensure report directory '{directory}' - {exc}"

    now = datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    path = directory / f"{stamp}-{slugify(title)}.md"
    try:
        path.write_text(f"# {title}\n\n{body}", encoding="utf-8")
    except OSError as exc:
        return f"Error: failed to write report file '{path}' - {exc}"

    rel = path.relative_to(Path(ctx.base_dir).resolve()).as_posix()
    return f"Success: report written to '{rel}'"


# -- Registry ----------------------------------------------------------------

_EMPTY = {"type": "object", "properties": {}, "additionalProperties": False}


def default_tools() -> list[ToolDescriptor]:
    return [
        ToolDescriptor(
            name="get_time",
            description=(
                "Get the current local time as an ISO 8601 string "
                "(includes timezone offset)."
            ),
            handler=get_time,
            parameters=_EMPTY,
        ),
        ToolDescriptor(
            name="pwd",
            description="Print the current working directory.",
            handler=pwd,
            parameters=_EMPTY,
        ),
        ToolDescriptor(
            name="ls",
            description=(
                "List directory entries. Supports depth-based traversal, an entry "
                "limit, .gitignore filtering and hidden files."
            ),
            handler=ls,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Directory path (default: .)"},
                    "depth": {
                        "type": "integer",
                        "description": "Maximum depth (1 means direct children only).",
                    },
                    "max_entries": {
                        "type": "integer",
                        "description": "Maximum number of entries to return (default: 100).",
                    },
                    "gitignore": {
                        "type": "boolean",
                        "description": "Apply .gitignore filtering (default: true).",
                    },
                    "dot": {
                        "type": "boolean",
                        "description": "Include hidden entries (default: false).",
                    },
                },
                "required": [],
                "additionalProperties": False,
            },
        ),
        ToolDescriptor(
            name="read_file",
            description=(
                "Read a text file. Accepts absolute or relative paths. Optionally "
                "specify start_line (1-based) and line_count."
            ),
            handler=read_file,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File path."},
                    "start_line": {
                        "type": "integer",
                        "description": "Start line number (1-based).",
                    },
                    "line_count": {
                        "type": "integer",
                        "description": "Number of lines to read.",
                    },
                },
                "required": ["path"],
                "additionalProperties": False,
            },
        ),
        ToolDescriptor(
            name="outline",
            description=outline.DESCRIPTION,
            handler=outline.outline,
            parameters=outline.PARAMETERS,
        ),
        ToolDescriptor(
            name="grep",
            description=(
                "Search files under a path for a pattern (regex by default). Supports "
                "recursive search, grouped output with line numbers, include/exclude "
                "globs, an output limit and an optional secondary line filter."
            ),
            handler=grep,
            parameters=GREP_PARAMETERS,
        ),
        ToolDescriptor(
            name="question",
            description=question.DESCRIPTION,
            handler=question.question,
            parameters=question.PARAMETERS,
        ),
        ToolDescriptor(
            name="add_note",
            description="Add a new note to the notebook.",
            handler=notebook.add_note,
            parameters=notebook.ADD_NOTE_PARAMETERS,
        ),
        ToolDescriptor(
            name="update_note",
            description="Update fields of an existing note (partial update).",
            handler=notebook.update_note,
            parameters=notebook.UPDATE_NOTE_PARAMETERS,
        ),
        ToolDescriptor(
            name="delete_note",
            description="Delete a note from the notebook.",
            handler=notebook.delete_note,
            parameters=notebook.DELETE_NOTE_PARAMETERS,
        ),
        ToolDescriptor(
            name="write_report",
            description=(
                "Write a final report as a Markdown file under .toyagent/docs. Only "
                "for user-facing summary documents."
            ),
            handler=write_report,
            parameters={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Report title."},
                    "body": {"type": "string", "description": "Markdown body."},
                },
                "required": ["title", "body"],
                "additionalProperties": False,
            },
        ),
    ]


GREP_PARAMETERS = {
    "type": "object",
    "properties": {
        "pattern": {"type": "string", "description": "Search pattern (regex by default)."},
        "path": {"type": "string", "description": "File or directory (default: .)"},
        "recursive": {
            "type": "boolean",
            "description": "Search subdirectories (default: true).",
        },
        "regex": {
            "type": "boolean",
            "description": "Treat pattern as a regex (default: true).",
        },
        "ignore_case": {
            "type": "boolean",
            "description": "Case-insensitive matching (default: false).",
        },
        "include_glob": {
            "type": "string",
            "description": (
                "Only search files whose relative path matches (comma or "
                "semicolon separated). Example: **/*.py"
            ),
        },
        "exclude_glob": {
            "type": "string",
            "description": "Skip files whose relative path matches. Example: tests/**",
        },
        "max_output_lines": {
            "type": "integer",
            "description": "Maximum matching lines to return (default: 200, max: 5000).",
        },
        "filter": {
            "type": "string",
            "description": "Optional secondary regex applied to matching lines.",
        },
        "filter_ignore_case": {
            "type": "boolean",
            "description": "Case-insensitive filter (default: false).",
        },
        "max_file_size_bytes": {
            "type": "integer",
            "description": "Skip files larger than this (default: 1000000).",
        },
    },
    "required": ["pattern"],
    "additionalProperties": False,
}


def default_registry() -> ToolRegistry:
    return ToolRegistry(default_tools())
