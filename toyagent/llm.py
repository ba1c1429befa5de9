"""Streaming completion client built on LiteLLM."""

import json
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path

from . import fmt
from .errors import ConfigError, TransportError
from .stream import collect_stream, event_from_chunk

PROVIDERS = ("openai", "openrouter", "lmstudio")


def resolve_model(provider: str, model: str, base_url: str | None, api_key: str | None):
    """Map (provider, model) to a LiteLLM model string plus call kwargs."""
    if provider == "openai":
        # Any OpenAI-compatible endpoint; base_url selects the server.
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["api_base"] = base_url
        return f"openai/{model.removeprefix('openai/')}", kwargs
    if provider == "openrouter":
        bare_id = (
            model[len("openrouter/") :]
            if model.startswith("openrouter/openrouter/")
            else model
        )
        kwargs = {"api_key": api_key}
        if base_url:
            kwargs["api_base"] = base_url
        return f"openrouter/{bare_id}", kwargs
    if provider == "lmstudio":
        base = (base_url or "http://127.0.0.1:1234").rstrip("/")
        if not base.endswith("/v1"):
            base += "/v1"
        return f"openai/{model}", {"api_base": base, "api_key": api_key or "lm-studio"}
    raise ConfigError(f"unknown provider {provider!r}")


def append_debug_log(path: Path, payload: dict) -> None:
    """Append a timestamped request dump. Write failures are ignored."""
    timestamp = datetime.now().astimezone().isoformat(timespec="milliseconds")
    body = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(f"\n----- {timestamp} | LLM Request Payload -----\n{body}\n")
    except OSError:
        pass


@dataclass(frozen=True)
class CompletionClient:
    """Completion service endpoint. stream() yields StreamEvents."""

    model: str
    base_url: str | None = None
    api_key: str | None = None
    provider: str = "openai"
    temperature: float | None = None
    debug_log: Path | None = None
    verbose: bool = False

    def with_model(self, model: str) -> "CompletionClient":
        return replace(self, model=model)

    def request_kwargs(self, messages: list, tools: list | None = None) -> dict:
        model_str, extra = resolve_model(
            self.provider, self.model, self.base_url, self.api_key
        )
        kwargs = dict(model=model_str, messages=messages, stream=True, **extra)
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        return kwargs

    async def stream(self, messages: list, tools: list | None = None):
        """Start a streamed completion and yield StreamEvents as chunks arrive.

        Any provider failure, before or during streaming, is raised as
        TransportError.
        """
        import litellm

        litellm.suppress_debug_info = True

        kwargs = self.request_kwargs(messages, tools)
        if self.debug_log is not None:
            append_debug_log(
                self.debug_log, {k: v for k, v in kwargs.items() if k != "api_key"}
            )
        if self.verbose:
            fmt.info(f"Calling model {kwargs['model']} ({len(messages)} messages)")

        try:
            response = await litellm.acompletion(**kwargs)
            async for chunk in response:
                yield event_from_chunk(chunk)
        except Exception as e:
            raise TransportError(f"LLM call failed: {e}") from e

    async def complete(self, messages: list, preview=None) -> str:
        """Run a tool-free completion and return its visible text."""
        _, content = await collect_stream(self.stream(messages), preview=preview)
        return content
