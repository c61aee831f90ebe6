"""
Ordered fallback cascades for fact fields.

A cascade holds an explicit, ordered tuple of strategy callables. Each
strategy inspects the parsed document and returns a candidate or ``None``;
the first candidate that is non-empty and passes the cascade's validator
wins. Results of different strategies are never merged.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

T = TypeVar("T")


def _non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return bool(value)
    return True


@dataclass(frozen=True)
class CascadeHit(Generic[T]):
    value: T
    strategy: str


@dataclass(frozen=True)
class FieldCascade(Generic[T]):
    """
    Named, ordered list of extraction strategies for one fact field.
    """

    name: str
    strategies: tuple[Callable[..., T | None], ...]
    validator: Callable[[T], bool] = _non_empty

    def resolve(self, *args: Any, **kwargs: Any) -> CascadeHit[T] | None:
        for strategy in self.strategies:
            candidate = strategy(*args, **kwargs)
            if _non_empty(candidate) and self.validator(candidate):
                return CascadeHit(
                    value=candidate,
                    strategy=getattr(strategy, "__name__", repr(strategy)),
                )
        return None

    def with_strategies(self, strategies: Sequence[Callable[..., T | None]]) -> "FieldCascade[T]":
        return replace(self, strategies=tuple(strategies))
