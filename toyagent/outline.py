"""The outline tool: a structured summary of one source file via a sub-call.

Outlines are cached per file content under .toyagent/cache/outline/, keyed by
the SHA-256 of the text. Cache reads and writes are best-effort: any failure
behaves like a miss.
"""

import hashlib
import os
import tempfile
from pathlib import Path

import tiktoken

from . import fmt
from .errors import TransportError

MAX_CONTEXT_TOKENS = 100_000

DESCRIPTION = (
    "Generate a structured Markdown outline of a source file "
    "(types, globals, classes, functions) via a dedicated LLM call."
)

PARAMETERS = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File path (absolute or relative)."},
    },
    "required": ["path"],
    "additionalProperties": False,
}

OUTLINE_SYSTEM_PROMPT = """\
You are a precise Code Outline Extractor.
Goal: Produce a compact, structured Markdown outline of the file's *top-level API surface*.

### Hard Rules
1. **Output Format**: Strict Markdown. No code blocks, no intro/outro text.
2. **Scope**: Extract ONLY top-level exported/public definitions. Ignore local variables inside functions.
3. **Detail Level**:
   - For `Interfaces/Types/Classes`: You **MUST** list their properties/methods as sub-items.
   - For `Functions`: You **MUST** preserve the exact argument types and return types.
4. **Brevity**: Keep summaries to 5 words or less.
5. Do not overthink. Prefer output over analysis.

### Example

**Input Code:**
```python
class User:
    id: str  # The user id
    name: str

def login(user: User) -> bool: ...
```

**Output:**
## Types
- **Class**: `User`
  - `id: str` - The user id
  - `name: str`

## Functions
- **Function**: `login(user: User) -> bool`
"""

_FENCE_LANGS = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".cs": "csharp",
    ".c": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".h": "cpp",
    ".hpp": "cpp",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".md": "markdown",
}


def fence_language(path: str) -> str:
    return _FENCE_LANGS.get(Path(path).suffix.lower(), "")


def count_tokens(model: str, *texts: str) -> int:
    try:
        encoder = tiktoken.encoding_for_model(model)
    except KeyError:
        encoder = tiktoken.get_encoding("cl100k_base")
    return sum(len(encoder.encode(t)) for t in texts)


class OutlineCache:
    def __init__(self, base_dir: str):
        self.directory = Path(base_dir).resolve() / ".toyagent" / "cache" / "outline"

    def _path(self, content: str) -> Path:
        key = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return self.directory / f"{key}.cache"

    def get(self, content: str) -> str | None:
        try:
            cached = self._path(content).read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        return cached or None

    def set(self, content: str, outline_text: str) -> None:
        text = outline_text.strip()
        if not text:
            return
        target = self._path(content)
        tmp = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, target)
        except OSError:
            if tmp is not None:
                Path(tmp).unlink(missing_ok=True)


async def outline(ctx, args: dict) -> str:
    from .tools import resolve_path

    raw = args.get("path")
    raw = raw.strip() if isinstance(raw, str) else ""
    if not raw:
        return "Error: 'path' is required"

    resolved = resolve_path(raw, ctx.base_dir)
    if not resolved.is_file():
        return f"Error: '{raw}' (resolved: {resolved}) is not a file"
    try:
        content = resolved.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return f"Error: failed to read '{raw}' (resolved: {resolved}) - {exc}"
    if "\x00" in content:
        return f"Error: '{raw}' appears to be a binary file (NUL byte found)"

    cache = OutlineCache(ctx.base_dir)
    cached = cache.get(content)
    if cached is not None:
        if ctx.verbose:
            fmt.info(f"outline cache hit for {raw}")
        return cached

    client = ctx.fast_client or ctx.client
    if client is None:
        return "Error: no completion client configured for outline"

    user_content = f"File: {raw}\n\n```{fence_language(raw)}\n{content}\n```\n"
    tokens = count_tokens(client.model, OUTLINE_SYSTEM_PROMPT, user_content)
    if tokens > MAX_CONTEXT_TOKENS:
        return (
            f"Error: input too large ({tokens} tokens) exceeds limit "
            f"({MAX_CONTEXT_TOKENS})."
        )

    messages = [
        {"role": "system", "content": OUTLINE_SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]
    preview = fmt.stream_preview() if ctx.verbose else None
    try:
        result = await client.complete(messages, preview=preview)
    except TransportError as exc:
        return f"Error: outline LLM call failed - {exc}"

    result = result.strip()
    if not result:
        return "Error: no outline returned by the model"
    cache.set(content, result)
    return result
