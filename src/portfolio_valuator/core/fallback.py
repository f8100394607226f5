"""Ordered fallback chain of named lookup strategies."""

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")
V_co = TypeVar("V_co", covariant=True)


class FallbackStrategy(Protocol[V_co]):
    """
    Interface that every strategy in a fallback chain implements.

    Attributes
    ----------
    name : str
        Unique strategy identifier, reported with the result

    Methods
    -------
    lookup(key)
        Return a value for the key, or None when the strategy has nothing

    """

    name: str

    def lookup(self, key: Any) -> V_co | None:
        """
        Look up a value for the key.

        Parameters
        ----------
        key : Any
            Lookup key

        Returns
        -------
        V_co | None
            Value, or None if this strategy cannot answer

        """
        ...


class FunctionStrategy(Generic[K, V]):
    """
    Adapts a plain function into a named strategy.

    Parameters
    ----------
    name : str
        Strategy name
    func : Callable[[K], V | None]
        Lookup function returning None when it has no answer

    """

    def __init__(self, name: str, func: Callable[[K], V | None]) -> None:
        self.name = name
        self._func = func

    def lookup(self, key: K) -> V | None:
        return self._func(key)

    def __repr__(self) -> str:
        return f"FunctionStrategy({self.name!r})"


class FallbackChain(Generic[K, V]):
    """
    Tries strategies in order and stops at the first one with an answer.

    A strategy has no answer when it returns None, or a value rejected by
    ``accept``. Exceptions are not caught here; strategies own their failure
    modes.

    Parameters
    ----------
    strategies : Iterable[FallbackStrategy]
        Strategies in priority order
    accept : Callable[[V], bool] | None
        Extra predicate a value must satisfy to count as an answer

    Raises
    ------
    ValueError
        If two strategies share a name

    """

    def __init__(
        self,
        strategies: Iterable[FallbackStrategy[V]],
        accept: Callable[[V], bool] | None = None,
    ) -> None:
        self._strategies = list(strategies)
        self._accept = accept

        names = [strategy.name for strategy in self._strategies]
        if len(names) != len(set(names)):
            msg = f"Duplicate strategy names in fallback chain: {names}"
            raise ValueError(msg)

    @property
    def names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    def __iter__(self) -> Iterator[FallbackStrategy[V]]:
        return iter(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)

    def resolve(self, key: K) -> tuple[str, V] | None:
        """
        Run the chain for one key.

        Parameters
        ----------
        key : K
            Lookup key

        Returns
        -------
        tuple[str, V] | None
            Name of the winning strategy and its value, or None if every strategy declined

        """
        for strategy in self._strategies:
            value = strategy.lookup(key)
            if value is None:
                continue
            if self._accept is not None and not self._accept(value):
                logger.debug("Strategy %s rejected value %s for %s", strategy.name, value, key)
                continue
            return strategy.name, value
        return None
