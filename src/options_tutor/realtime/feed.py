"""PriceFeed: streaming price and P&L updates with reconnect backoff."""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable

from options_tutor.config import FeedConfig
from options_tutor.realtime.connection import Connection
from options_tutor.types import FeedState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceUpdate:
    symbol: str
    price: float
    received_at: datetime


@dataclass(frozen=True)
class PLUpdate:
    symbol: str
    pl: float
    received_at: datetime


FeedEvent = PriceUpdate | PLUpdate


class PriceFeed:
    """Owns one connection loop and a bounded queue of parsed events.

    State machine::

        DISCONNECTED -> CONNECTING -> CONNECTED -> BACKOFF -> CONNECTING ...
                             \\------ (connect failed) ----^

    Backoff doubles from ``reconnect_delay`` up to ``max_reconnect_delay``
    and resets after a successful connect. Subscriptions are replayed on
    every connect. When the queue is full the oldest event is dropped so
    consumers always see the latest prices.
    """

    def __init__(self, connection_factory: Callable[[], Connection], config: FeedConfig | None = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = config or FeedConfig()
        self._factory = connection_factory
        self._sleep = sleep
        self._clock = clock
        self._queue: asyncio.Queue[FeedEvent] = asyncio.Queue(maxsize=self.config.queue_size)
        self._subscriptions: set[str] = {s.upper() for s in self.config.subscriptions}
        self._prices: dict[str, float] = {}
        self._connection: Connection | None = None
        self._task: asyncio.Task | None = None
        self._failures = 0
        self._state = FeedState.DISCONNECTED
        self.state_history: list[FeedState] = [FeedState.DISCONNECTED]
        self.dropped = 0

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == FeedState.CONNECTED

    @property
    def subscriptions(self) -> list[str]:
        return sorted(self._subscriptions)

    def _set_state(self, state: FeedState) -> None:
        if state != self._state:
            logger.debug(f"Feed {self._state.name} -> {state.name}")
            self._state = state
            self.state_history.append(state)

    # --- lifecycle ---

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="price-feed")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_state(FeedState.DISCONNECTED)

    async def _run(self) -> None:
        while True:
            self._set_state(FeedState.CONNECTING)
            conn = self._factory()
            try:
                await conn.connect()
            except (OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Feed connect failed: {e}")
            else:
                self._failures = 0
                self._connection = conn
                self._set_state(FeedState.CONNECTED)
                logger.info("Feed connected")
                try:
                    await self._pump(conn)
                except (OSError, asyncio.TimeoutError) as e:
                    logger.warning(f"Feed connection lost: {e}")
                finally:
                    self._connection = None
                    await self._close(conn)

            self._failures += 1
            delay = min(self.config.reconnect_delay * 2 ** (self._failures - 1), self.config.max_reconnect_delay)
            self._set_state(FeedState.BACKOFF)
            logger.info(f"Reconnecting in {delay:.1f}s")
            await self._sleep(delay)

    async def _pump(self, conn: Connection) -> None:
        for symbol in sorted(self._subscriptions):
            await conn.send({"action": "subscribe", "symbol": symbol})
        while True:
            message = await conn.receive()
            if message is None:
                logger.info("Feed closed by peer")
                return
            self._handle_message(message)

    async def _close(self, conn: Connection) -> None:
        try:
            await conn.close()
        except OSError as e:
            logger.debug(f"Error closing feed connection: {e}")

    # --- subscriptions ---

    async def subscribe(self, symbol: str) -> None:
        sym = symbol.upper()
        self._subscriptions.add(sym)
        if self._connection is not None:
            await self._connection.send({"action": "subscribe", "symbol": sym})

    async def unsubscribe(self, symbol: str) -> None:
        sym = symbol.upper()
        self._subscriptions.discard(sym)
        if self._connection is not None:
            await self._connection.send({"action": "unsubscribe", "symbol": sym})

    # --- messages ---

    def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict) or not isinstance(message.get("symbol"), str):
            logger.debug(f"Ignoring malformed feed message: {message!r}")
            return
        symbol = message["symbol"].upper()
        now = self._clock()

        price = _number(message.get("price"))
        if price is not None and price > 0:
            self._prices[symbol] = price
            self._enqueue(PriceUpdate(symbol, price, now))

        pl = _number(message.get("pl"))
        if pl is not None:
            self._enqueue(PLUpdate(symbol, pl, now))

    def _enqueue(self, event: FeedEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    def latest_price(self, symbol: str) -> float | None:
        return self._prices.get(symbol.upper())

    def pending(self) -> int:
        return self._queue.qsize()

    async def next_update(self) -> FeedEvent:
        return await self._queue.get()

    async def updates(self) -> AsyncIterator[FeedEvent]:
        while True:
            yield await self._queue.get()


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None
