"""In-memory notebook the model uses as short-term working memory."""

import json
from dataclasses import asdict, dataclass, field, replace

from . import fmt
from .errors import NotebookError


@dataclass(frozen=True)
class Note:
    key: str
    title: str
    content: str
    tags: list[str] = field(default_factory=list)


class Notebook:
    """Notes keyed by a semantic id, kept in insertion order."""

    def __init__(self):
        self._notes: dict[str, Note] = {}

    def __len__(self) -> int:
        return len(self._notes)

    def has(self, key: str) -> bool:
        return key in self._notes

    def get(self, key: str) -> Note | None:
        return self._notes.get(key)

    def add(self, note: Note) -> None:
        if note.key in self._notes:
            raise NotebookError(f"Key '{note.key}' already exists")
        self._notes[note.key] = note

    def update(self, key: str, *, title=None, content=None, tags=None) -> Note:
        existing = self._notes.get(key)
        if existing is None:
            raise NotebookError(f"Note with key '{key}' not found")
        changes = {}
        if title is not None:
            changes["title"] = title
        if content is not None:
            changes["content"] = content
        if tags is not None:
            changes["tags"] = list(tags)
        # dict assignment keeps the original insertion position
        updated = replace(existing, **changes)
        self._notes[key] = updated
        return updated

    def delete(self, key: str) -> None:
        if key not in self._notes:
            raise NotebookError(f"Note with key '{key}' not found")
        del self._notes[key]

    def clear(self) -> None:
        self._notes.clear()

    def notes(self) -> list[Note]:
        return list(self._notes.values())

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(
            [asdict(n) for n in self._notes.values()], indent=indent, ensure_ascii=False
        )


# -- Tool handlers -----------------------------------------------------------


def _required(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _optional(value) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _tags(value) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [t.strip() for t in value if isinstance(t, str) and t.strip()]


def _notebook(ctx) -> Notebook:
    nb = getattr(ctx, "notebook", None)
    if not isinstance(nb, Notebook):
        raise NotebookError("notebook is not attached to the tool context")
    return nb


def add_note(ctx, args: dict) -> str:
    key = _required(args.get("key"))
    title = _required(args.get("title"))
    content = _required(args.get("content"))
    for name, value in (("key", key), ("title", title), ("content", content)):
        if not value:
            return f"Error: '{name}' is required"

    notebook = _notebook(ctx)
    if notebook.has(key):
        return f"Error: Key '{key}' already exists. Use update_note to modify."
    tags = _tags(args.get("tags")) or []
    notebook.add(Note(key=key, title=title, content=content, tags=tags))
    if getattr(ctx, "verbose", False):
        fmt.note_update("add", key, len(notebook))
    return f"Success: Note '{key}' added."


def update_note(ctx, args: dict) -> str:
    key = _required(args.get("key"))
    if not key:
        return "Error: 'key' is required"

    notebook = _notebook(ctx)
    if not notebook.has(key):
        return f"Error: Note with key '{key}' not found."
    notebook.update(
        key,
        title=_optional(args.get("title")),
        content=_optional(args.get("content")),
        tags=_tags(args.get("tags")),
    )
    if getattr(ctx, "verbose", False):
        fmt.note_update("update", key, len(notebook))
    return f"Success: Note '{key}' updated."


def delete_note(ctx, args: dict) -> str:
    key = _required(args.get("key"))
    if not key:
        return "Error: 'key' is required"

    notebook = _notebook(ctx)
    if not notebook.has(key):
        return f"Error: Note with key '{key}' not found."
    notebook.delete(key)
    if getattr(ctx, "verbose", False):
        fmt.note_update("delete", key, len(notebook))
    return f"Success: Note '{key}' deleted."


_TAGS_SCHEMA = {"type": "array", "items": {"type": "string"}}

ADD_NOTE_PARAMETERS = {
    "type": "object",
    "properties": {
        "key": {"type": "string", "description": "Unique semantic key, e.g. plan_v1."},
        "title": {"type": "string", "description": "Short title."},
        "content": {"type": "string", "description": "Note content. Keep it brief."},
        "tags": {**_TAGS_SCHEMA, "description": "Tags such as TODO, DONE, Verified."},
    },
    "required": ["key", "title", "content"],
    "additionalProperties": False,
}

UPDATE_NOTE_PARAMETERS = {
    "type": "object",
    "properties": {
        "key": {"type": "string", "description": "Key of the note to update."},
        "title": {"type": "string", "description": "New title."},
        "content": {"type": "string", "description": "New content."},
        "tags": {**_TAGS_SCHEMA, "description": "New tags (replaces existing tags)."},
    },
    "required": ["key"],
    "additionalProperties": False,
}

DELETE_NOTE_PARAMETERS = {
    "type": "object",
    "properties": {
        "key": {"type": "string", "description": "Key of the note to delete."},
    },
    "required": ["key"],
    "additionalProperties": False,
}
