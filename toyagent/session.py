"""Public library API for toyagent: ChatSession and the tool context."""

from dataclasses import dataclass
from typing import Any, Callable

from .agent import (
    DEFAULT_MAX_ROUNDS,
    ensure_system_prompt,
    reasoning_as_content,
    run_tool_loop,
)
from .context import Environment
from .history import History
from .notebook import Notebook
from .registry import ToolRegistry
from .tools import default_registry
from .turns import UserTurn


@dataclass
class ToolContext:
    """What a tool handler can reach while it runs."""

    base_dir: str
    notebook: Notebook
    history: History
    registry: ToolRegistry
    client: Any = None
    fast_client: Any = None
    ask: Callable | None = None
    verbose: bool = False


class ChatSession:
    """Programmatic interface to the agent loop.

    Holds one conversation: its history (seeded with the system prompt),
    the notebook, the tool registry and the completion client. Call .ask()
    once per user message.
    """

    def __init__(
        self,
        *,
        client,
        fast_client=None,
        llm_settings=None,
        base_dir: str = ".",
        system_prompt: str | None = None,
        registry: ToolRegistry | None = None,
        notebook: Notebook | None = None,
        environment: Environment | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        reasoning_policy=reasoning_as_content,
        ask: Callable | None = None,
        verbose: bool = False,
    ):
        self.client = client
        self.fast_client = fast_client
        self.llm_settings = llm_settings
        self.base_dir = base_dir
        self.registry = registry if registry is not None else default_registry()
        self.notebook = notebook if notebook is not None else Notebook()
        self.environment = environment or Environment(base_dir)
        self.max_rounds = max_rounds
        self.reasoning_policy = reasoning_policy
        self.ask_user = ask
        self.verbose = verbose
        self.history = ensure_system_prompt(History(), system_prompt)

    def context(self) -> ToolContext:
        return ToolContext(
            base_dir=self.base_dir,
            notebook=self.notebook,
            history=self.history,
            registry=self.registry,
            client=self.client,
            fast_client=self.fast_client,
            ask=self.ask_user,
            verbose=self.verbose,
        )

    async def ask(self, text: str):
        """Append a user message and run the tool loop.

        Returns the answer string or agent.NO_ANSWER.
        """
        self.history.append(UserTurn(text))
        return await run_tool_loop(
            self.history,
            client=self.client,
            registry=self.registry,
            context=self.context(),
            notebook=self.notebook,
            environment=self.environment,
            max_rounds=self.max_rounds,
            reasoning_policy=self.reasoning_policy,
            verbose=self.verbose,
        )

    def reset(self) -> int:
        """Drop everything but the system prompt and clear the notebook."""
        self.notebook.clear()
        return self.history.reset()

    def set_client(self, client, fast_client=None, settings=None) -> None:
        self.client = client
        self.fast_client = fast_client
        self.llm_settings = settings
