"""
Exception hierarchy for bean_counter.

BeanCounterError
├── UnknownStrategyError         — identifier does not resolve to a registered strategy
├── StrategyNotImplementedError  — capability invoked on the abstract Strategy
├── PoolMemberUnreachableError   — connection failure while querying a pool member
└── InvalidMatchKeyError         — predicate key outside the matchable attributes
"""

from __future__ import annotations

from collections.abc import Iterable


class BeanCounterError(Exception):
    """Base class for all bean_counter exceptions."""


class UnknownStrategyError(BeanCounterError):
    """Raised when a strategy identifier cannot be materialized."""

    def __init__(self, identifier: object, known: Iterable[str]) -> None:
        self.identifier = identifier
        self.known = tuple(sorted(known))
        super().__init__(
            f"Could not find {identifier!r} among known strategies: {list(self.known)}"
        )


class StrategyNotImplementedError(BeanCounterError, NotImplementedError):
    """Raised by the abstract Strategy for every capability it only documents."""

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"Strategy.{capability} must be implemented by a subclass")


class PoolMemberUnreachableError(BeanCounterError):
    """
    Wraps a connection-level failure from one pool member.

    Attributes
    ----------
    address : str
        The pool member that failed.
    cause : Exception
        The original exception from the connection.
    """

    def __init__(self, address: str, cause: Exception) -> None:
        self.address = address
        self.cause = cause
        super().__init__(f"Pool member {address} unreachable: {cause}")


class InvalidMatchKeyError(BeanCounterError):
    """Raised when a predicate key is not a matchable attribute."""

    def __init__(self, key: object, allowed: Iterable[str]) -> None:
        self.key = key
        self.allowed = tuple(sorted(allowed))
        super().__init__(
            f"{key!r} is not a matchable attribute; expected one of {list(self.allowed)}"
        )
