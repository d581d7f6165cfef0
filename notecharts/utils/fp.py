from __future__ import annotations
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from toolz import frequencies as _frequencies, take as _take
from more_itertools import first as _first, unique_everseen as _unique_everseen

A = TypeVar("A")
B = TypeVar("B")


def try_or(default: B) -> Callable[[Callable[[A], B]], Callable[[A], B]]:
    def _wrap(fn: Callable[[A], B]) -> Callable[[A], B]:
        @wraps(fn)
        def _inner(x: A) -> B:
            try:
                return fn(x)
            except (TypeError, ValueError):
                return default
        return _inner
    return _wrap


def unique_stable(seq: Iterable[A]) -> List[A]:
    # preserves first-seen order
    return list(_unique_everseen(seq))


def take(n: int, seq: Iterable[A]) -> List[A]:
    return list(_take(max(0, int(n)), seq))


def first_or(seq: Iterable[A], default: Optional[A] = None) -> Optional[A]:
    return _first(seq, default)


def frequencies(seq: Iterable[A]) -> Dict[A, int]:
    # insertion order follows first appearance
    return dict(_frequencies(seq))


def clamp01(x: Any) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    if v != v:  # NaN
        return 0.0
    return max(0.0, min(1.0, v))
