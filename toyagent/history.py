"""Append-only conversation history with pairing checks."""

from .errors import HistoryError
from .turns import TURN_TYPES, AssistantTurn, SystemTurn, ToolTurn, UserTurn


class History:
    """Ordered, append-only sequence of turns.

    The only mutations are append() and reset(). Appends are validated so that
    every tool turn answers a call declared by the nearest preceding assistant
    turn with invocations, each call is answered once, and no other turn is
    appended while calls are still waiting for their results.
    """

    def __init__(self, seed: SystemTurn | None = None):
        self._seed = seed
        self._turns: list = []
        self._pending: list[str] = []
        if seed is not None:
            self.append(seed)

    @property
    def seed(self) -> SystemTurn | None:
        return self._seed

    @property
    def turns(self) -> tuple:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(tuple(self._turns))

    def __getitem__(self, index):
        return self._turns[index]

    def pending_calls(self) -> list[str]:
        """Call ids of the last assistant turn that have no tool result yet."""
        return list(self._pending)

    def append(self, turn) -> None:
        if not isinstance(turn, TURN_TYPES):
            raise HistoryError(
                f"cannot append {type(turn).__name__!s} to history; expected a Turn"
            )

        if isinstance(turn, ToolTurn):
            if turn.call_id not in self._pending:
                raise HistoryError(
                    f"tool result for {turn.call_id!r} does not answer a pending call"
                )
            self._pending.remove(turn.call_id)
        elif self._pending:
            raise HistoryError(
                f"cannot append a {turn.role} turn while tool calls are unanswered: "
                + ", ".join(self._pending)
            )

        if isinstance(turn, AssistantTurn) and turn.invocations:
            ids = [inv.id for inv in turn.invocations]
            if len(set(ids)) != len(ids):
                raise HistoryError(f"duplicate tool call ids in one turn: {ids}")
            self._pending = ids

        self._turns.append(turn)

    def reset(self) -> int:
        """Truncate back to the seed turn. Returns the number of turns dropped."""
        dropped = len(self._turns) - (1 if self._seed is not None else 0)
        self._turns = [self._seed] if self._seed is not None else []
        self._pending = []
        return dropped

    def last_user_query(self) -> str:
        for turn in reversed(self._turns):
            if isinstance(turn, UserTurn):
                return turn.content
        return ""

    def to_messages(self) -> list[dict]:
        return [t.to_message() for t in self._turns]
