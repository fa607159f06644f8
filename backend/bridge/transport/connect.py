from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from bridge.core.errors import TransportUnavailable
from bridge.transport.base import MessagingClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStrategy:
    """A named way of establishing the messaging client."""

    name: str
    connect: Callable[[], Awaitable[MessagingClient]]


async def connect_first(strategies: Sequence[ConnectionStrategy]) -> MessagingClient:
    """Try each strategy in order and return the first connected client.

    Raises TransportUnavailable with every strategy's error when all fail.
    """

    errors: list[tuple[str, BaseException]] = []
    for strategy in strategies:
        logger.info("Connecting messaging client using %s", strategy.name)
        try:
            client = await strategy.connect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Connection strategy %s failed: %s", strategy.name, exc)
            errors.append((strategy.name, exc))
            continue
        logger.info("Messaging client connected using %s", strategy.name)
        return client
    raise TransportUnavailable(errors)


def load_transport_factory(path: str) -> Callable[..., Sequence[ConnectionStrategy]]:
    """Resolve a ``module:callable`` path to a strategy factory."""

    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"TRANSPORT_FACTORY must look like 'module:callable', got {path!r}.")
    module = importlib.import_module(module_name)
    factory: Any = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"TRANSPORT_FACTORY {path!r} is not callable.")
    return factory
