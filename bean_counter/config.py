"""Pool configuration and strategy construction."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from bean_counter.core.registry import materialize_strategy
from bean_counter.core.strategy import Strategy
from bean_counter.ports.connection import QueueConnectionPort

DEFAULT_PORT = 11300
DEFAULT_URL = f"localhost:{DEFAULT_PORT}"

Connect = Callable[[str, int], QueueConnectionPort]


@dataclass(slots=True)
class PoolSettings:
    """Which servers make up the pool and which strategy inspects them."""

    urls: tuple[str, ...] = (DEFAULT_URL,)
    strategy: str = "pool"

    @classmethod
    def from_env(cls) -> PoolSettings:
        """
        Load settings from the environment.

        BEANSTALKD_URLS        comma separated beanstalk://host:port, host:port or host
        BEAN_COUNTER_STRATEGY  registered strategy identifier (default "pool")
        """
        raw_urls = os.getenv("BEANSTALKD_URLS", DEFAULT_URL)
        urls = tuple(url.strip() for url in raw_urls.split(",") if url.strip())
        return cls(
            urls=urls or (DEFAULT_URL,),
            strategy=os.getenv("BEAN_COUNTER_STRATEGY", "pool").strip() or "pool",
        )

    def addresses(self) -> list[tuple[str, int]]:
        return [parse_address(url) for url in self.urls]


def parse_address(url: str) -> tuple[str, int]:
    """
    ``beanstalk://host:port`` / ``host:port`` / ``host`` -> ``(host, port)``.

    Raises ValueError for a malformed URL.
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"beanstalk://{candidate}"
    parsed = urlparse(candidate)
    if parsed.scheme != "beanstalk" or not parsed.hostname:
        raise ValueError(f"Invalid beanstalkd URL: {url!r}")
    try:
        port = parsed.port or DEFAULT_PORT
    except ValueError as exc:
        raise ValueError(f"Invalid beanstalkd URL: {url!r}") from exc
    return parsed.hostname, port


def _greenstalk_connect(host: str, port: int) -> QueueConnectionPort:
    from bean_counter.adapters.connection.greenstalk import GreenstalkConnection

    return GreenstalkConnection(host=host, port=port)


def build_strategy(
    settings: PoolSettings | None = None,
    connect: Connect | None = None,
) -> Strategy:
    """
    Materialize the configured strategy over one connection per URL.

    `connect(host, port)` builds each pool member; it defaults to a
    GreenstalkConnection.
    """
    # Importing the package registers the built-in strategies.
    import bean_counter  # noqa: F401

    settings = settings or PoolSettings.from_env()
    strategy_type = materialize_strategy(settings.strategy)
    connect = connect or _greenstalk_connect
    pool = [connect(host, port) for host, port in settings.addresses()]
    return strategy_type(pool)  # type: ignore[call-arg]
