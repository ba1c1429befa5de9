"""Tool registry and the dispatcher that runs model-requested calls."""

import inspect
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from . import fmt
from .errors import ToolRegistrationError
from .turns import InvocationRequest, InvocationResult

MAX_ARG_LOG = 1000
MAX_RESULT_PREVIEW = 500


@dataclass(frozen=True)
class ToolDescriptor:
    """A named tool: JSON-schema parameters plus handler(context, args)."""

    name: str
    description: str
    handler: Callable[[Any, dict], Any]
    parameters: dict = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_openai(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def decode_arguments(name: str, argument_text: str) -> tuple[dict | None, str | None]:
    """Parse tool arguments. Returns (args, None) or (None, error_text)."""
    if not argument_text or not argument_text.strip():
        return {}, None
    try:
        args = json.loads(argument_text)
    except (json.JSONDecodeError, RecursionError) as e:
        return None, f"Error: invalid JSON arguments for tool '{name}': {e}"
    if not isinstance(args, dict):
        return None, (
            f"Error: invalid JSON arguments for tool '{name}': "
            f"expected an object, got {type(args).__name__}"
        )
    return args, None


class ToolRegistry:
    def __init__(self, descriptors=()):
        self._tools: dict[str, ToolDescriptor] = {}
        for d in descriptors:
            self.register(d)

    def register(self, descriptor: ToolDescriptor) -> ToolDescriptor:
        name = (descriptor.name or "").strip()
        if not name:
            raise ToolRegistrationError("tool name must be a non-empty string")
        if name in self._tools:
            raise ToolRegistrationError(f"tool '{name}' is already registered")
        if name != descriptor.name:
            descriptor = ToolDescriptor(
                name=name,
                description=descriptor.description,
                handler=descriptor.handler,
                parameters=descriptor.parameters,
            )
        self._tools[name] = descriptor
        return descriptor

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __contains__(self, name) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def to_openai_tools(self) -> list[dict]:
        return [d.to_openai() for d in self._tools.values()]

    async def execute(self, name: str, args: dict, context) -> str:
        """Run one tool by name. Failures come back as "Error: ..." text."""
        descriptor = self._tools.get(name)
        if descriptor is None:
            return f"Error: unknown tool '{name}'"
        try:
            result = descriptor.handler(context, args)
            if inspect.isawaitable(result):
                result = await result
            return result if isinstance(result, str) else str(result)
        except Exception as e:
            return f"Error: tool '{name}' failed - {e}"

    async def dispatch(
        self, requests, context, *, verbose: bool = False
    ) -> list[InvocationResult]:
        """Run a batch of invocation requests sequentially in slot order.

        Returns exactly one result per request, in the same order. Never
        raises for tool-level failures.
        """
        results = []
        for req in sorted(requests, key=lambda r: r.slot_index):
            results.append(await self._run_one(req, context, verbose))
        return results

    async def _run_one(
        self, req: InvocationRequest, context, verbose: bool
    ) -> InvocationResult:
        name = req.tool_name
        args, error = decode_arguments(name, req.argument_text)
        if error is not None:
            if verbose:
                fmt.tool_error(name or "?", error)
            return InvocationResult(call_id=req.id, content=error)

        if verbose:
            pretty = json.dumps(args, indent=2, ensure_ascii=False)
            if len(pretty) > MAX_ARG_LOG:
                pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
            fmt.tool_call(name, pretty)

        t0 = time.monotonic()
        content = await self.execute(name, args, context)
        elapsed = time.monotonic() - t0

        if verbose:
            if content.startswith("Error:"):
                fmt.tool_error(name, content)
            else:
                fmt.tool_result(name, elapsed, content[:MAX_RESULT_PREVIEW])
        return InvocationResult(call_id=req.id, content=content)
