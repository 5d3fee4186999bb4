from __future__ import annotations

from collections.abc import Iterable

from deachat.assistant.models import Turn


class ConversationSession:
    """Turn history for one request.

    Prior turns come from the caller. The new user turn and the final model
    turn are held back until :meth:`finish_turn`, so a failed request never
    yields a partially extended history.
    """

    def __init__(self, history: Iterable[Turn] | None = None):
        self._prior: tuple[Turn, ...] = tuple(history or ())
        self._user_turn: Turn | None = None
        self._model_turn: Turn | None = None

    @property
    def prior_turns(self) -> tuple[Turn, ...]:
        return self._prior

    @property
    def finished(self) -> bool:
        return self._model_turn is not None

    def start_turn(self, message: str) -> Turn:
        if self._user_turn is not None:
            raise RuntimeError("turn already started")
        self._user_turn = Turn(role="user", content=message)
        return self._user_turn

    def finish_turn(self, text: str) -> Turn:
        if self._user_turn is None:
            raise RuntimeError("finish_turn called before start_turn")
        if self._model_turn is not None:
            raise RuntimeError("turn already finished")
        self._model_turn = Turn(role="model", content=text)
        return self._model_turn

    def history(self) -> list[Turn]:
        if self._user_turn is None or self._model_turn is None:
            raise RuntimeError("history requested before the turn finished")
        return [*self._prior, self._user_turn, self._model_turn]
