"""Streaming connection interface and a synthetic development connection."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import numpy as np

from options_tutor.data.placeholder import base_price

logger = logging.getLogger(__name__)


class Connection(ABC):
    """One streaming session. Transport failures surface as OSError."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def receive(self) -> dict[str, Any] | None:
        """Next message, or None once the peer has closed the session."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class PlaceholderConnection(Connection):
    """Emits random-walk prices for subscribed symbols, one message per interval.

    Stands in for a live feed during development and demos. Each message
    carries ``pl`` as the move from the symbol's base price on a 10-share
    position.
    """

    def __init__(self, interval: float = 1.0, seed: int | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._interval = interval
        self._rng = np.random.default_rng(seed)
        self._sleep = sleep
        self._subscribed: list[str] = []
        self._prices: dict[str, float] = {}
        self._next = 0
        self._open = False

    async def connect(self) -> None:
        self._open = True
        logger.debug("Placeholder feed connected")

    async def send(self, message: dict[str, Any]) -> None:
        if not self._open:
            raise ConnectionError("placeholder connection is closed")
        symbol = str(message.get("symbol", "")).upper()
        action = message.get("action")
        if action == "subscribe" and symbol and symbol not in self._subscribed:
            self._subscribed.append(symbol)
            self._prices.setdefault(symbol, base_price(symbol))
        elif action == "unsubscribe" and symbol in self._subscribed:
            self._subscribed.remove(symbol)

    async def receive(self) -> dict[str, Any] | None:
        while self._open:
            await self._sleep(self._interval)
            if not self._open:
                break
            if not self._subscribed:
                continue
            symbol = self._subscribed[self._next % len(self._subscribed)]
            self._next += 1
            price = round(self._prices[symbol] * (1 + self._rng.normal(0, 0.002)), 2)
            self._prices[symbol] = price
            return {"symbol": symbol, "price": price, "pl": round((price - base_price(symbol)) * 10, 2)}
        return None

    async def close(self) -> None:
        self._open = False
