from __future__ import annotations
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
import logging

log = logging.getLogger("notecharts.pipeline")


class Stage(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RECOMMENDING = "recommending"
    DERIVING_FIELDS = "deriving_fields"
    RERANKING = "reranking"
    READY = "ready"
    ERROR = "error"


TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.IDLE: frozenset({Stage.LOADING}),
    Stage.LOADING: frozenset({Stage.IDLE, Stage.RECOMMENDING}),
    # a newer run may supersede a busy one (back to loading)
    Stage.RECOMMENDING: frozenset({Stage.DERIVING_FIELDS, Stage.RERANKING, Stage.READY, Stage.LOADING}),
    Stage.DERIVING_FIELDS: frozenset({Stage.RERANKING, Stage.READY, Stage.LOADING}),
    Stage.RERANKING: frozenset({Stage.READY, Stage.LOADING}),
    Stage.READY: frozenset({Stage.LOADING, Stage.IDLE}),
    Stage.ERROR: frozenset({Stage.LOADING, Stage.IDLE}),
}

Listener = Callable[[Stage, Stage, str], None]


class InvalidTransition(ValueError):
    pass


class StageMachine:
    """
    Single owner of the observable pipeline stage.

    ``error`` is reachable from every stage; every other move must be listed
    in TRANSITIONS. Listeners get (previous, current, message) after each move.
    """

    def __init__(self) -> None:
        self.stage = Stage.IDLE
        self.message = ""
        self.run_key: Optional[str] = None
        self.history: List[Tuple[Stage, str]] = [(Stage.IDLE, "")]
        self._listeners: List[Listener] = []

    def subscribe(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def can(self, to: Stage) -> bool:
        return to == Stage.ERROR or to in TRANSITIONS[self.stage]

    def advance(self, to: Stage | str, message: str = "", run_key: Optional[str] = None) -> Stage:
        target = Stage(to)
        if not self.can(target):
            raise InvalidTransition(f"{self.stage.value} -> {target.value}")
        prev, self.stage, self.message = self.stage, target, message
        if run_key is not None:
            self.run_key = run_key
        self.history.append((target, message))
        level = logging.ERROR if target == Stage.ERROR else logging.INFO
        log.log(level, "stage", extra={"stage": target.value, "from": prev.value, "run_key": self.run_key})
        for fn in self._listeners:
            fn(prev, target, message)
        return target

    def fail(self, message: str) -> Stage:
        return self.advance(Stage.ERROR, message)

    def reset(self) -> Stage:
        return self.advance(Stage.IDLE)

    @property
    def busy(self) -> bool:
        return self.stage in (Stage.LOADING, Stage.RECOMMENDING, Stage.DERIVING_FIELDS, Stage.RERANKING)


__all__ = ["Stage", "TRANSITIONS", "InvalidTransition", "StageMachine"]
