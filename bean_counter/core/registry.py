"""
StrategyRegistry — process-wide catalog of concrete Strategy types.

Strategies are registered explicitly, once, at import time of the module
that defines them:

    @register_strategy("pool")
    class PoolStrategy(Strategy):
        ...

Registration is expected to finish before the first materialize() call.
Writes are serialized by a lock; reads take no lock and always work on the
current mapping.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from bean_counter.core.strategy import Strategy
from bean_counter.domain.errors import UnknownStrategyError

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=type[Strategy])


class StrategyRegistry:
    """Mapping of identifier -> Strategy subclass. Entries are never removed."""

    def __init__(self) -> None:
        self._strategies: dict[str, type[Strategy]] = {}
        self._write_lock = threading.Lock()

    def register(self, identifier: str, strategy_type: type[Strategy]) -> None:
        """Register `strategy_type` under `identifier`. Last registration wins."""
        if not (isinstance(strategy_type, type) and issubclass(strategy_type, Strategy)):
            raise TypeError(f"{strategy_type!r} is not a Strategy subclass")
        with self._write_lock:
            previous = self._strategies.get(identifier)
            self._strategies = {**self._strategies, identifier: strategy_type}
        if previous is not None and previous is not strategy_type:
            logger.debug(
                "Strategy %r re-registered: %s replaces %s",
                identifier,
                strategy_type.__qualname__,
                previous.__qualname__,
            )
        else:
            logger.debug("Registered strategy %r -> %s", identifier, strategy_type.__qualname__)

    def is_known(self, identifier: object) -> bool:
        """
        True if `identifier` is a Strategy subclass or a registered identifier.

        Classes are accepted directly; strings are looked up by name.
        """
        if isinstance(identifier, type):
            return issubclass(identifier, Strategy)
        return isinstance(identifier, str) and identifier in self._strategies

    def materialize(self, identifier: object) -> type[Strategy]:
        """
        Resolve `identifier` to a Strategy subclass.

        Raises UnknownStrategyError (listing every known identifier) if it
        does not resolve.
        """
        if not self.is_known(identifier):
            raise UnknownStrategyError(identifier, self._strategies)
        if isinstance(identifier, type):
            return identifier
        return self._strategies[identifier]  # type: ignore[index]

    def strategies(self) -> dict[str, type[Strategy]]:
        """A copy of the registry; mutating it does not affect the registry."""
        return dict(self._strategies)


registry = StrategyRegistry()


def register_strategy(
    identifier: str, *, into: StrategyRegistry | None = None
) -> Callable[[S], S]:
    """Class decorator registering a concrete Strategy under `identifier`."""

    def _register(strategy_type: S) -> S:
        (into or registry).register(identifier, strategy_type)
        return strategy_type

    return _register


def known_strategy(identifier: object) -> bool:
    return registry.is_known(identifier)


def materialize_strategy(identifier: object) -> type[Strategy]:
    return registry.materialize(identifier)


def strategies() -> dict[str, type[Strategy]]:
    return registry.strategies()
