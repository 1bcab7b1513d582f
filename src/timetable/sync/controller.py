"""Optimistic status mutations with bounded retry and rollback.

Each ``(entity_id, field_key)`` has at most one live mutation chain::

    IDLE -> APPLYING -> CONFIRMED                      -> IDLE
                     -> ROLLING_BACK -> (wait) -> APPLYING ...
                     -> ROLLING_BACK -> FAILED         -> IDLE

A chain applies the new value to the LocalStatusView straight away, then
writes it to the StatusStore. A failed write, whether a network error or a
rejection, rolls the view back to the chain's baseline, waits
``base_delay * 2**attempt`` on a cancellable timer and tries again, up to
``max_attempts`` writes in total.

Starting a new mutation on a key supersedes the live chain: the per-key
generation counter moves on, the old chain's timer is cancelled and it stops
touching the view. The new chain inherits the old chain's baseline, so an
unconfirmed optimistic value is never used as a rollback target. If the
superseded chain's write lands anyway, its canonical value becomes the new
chain's baseline; with no live chain left, the view takes that value so it
agrees with the server.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from opentelemetry import trace

from timetable.config import SyncConfig
from timetable.core.metrics import TimetableMetrics
from timetable.errors import MutationFailedError, StoreError, TransientNetworkError
from timetable.sync.store import LocalStatusView, StatusStore

logger = logging.getLogger(__name__)

# StoreError covers StatusRejectedError: a rejected write shares the retry budget.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (TransientNetworkError, StoreError)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RETRYABLE_ERRORS)


class MutationState(StrEnum):
    IDLE = "idle"
    APPLYING = "applying"
    ROLLING_BACK = "rolling_back"
    CONFIRMED = "confirmed"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationResult:
    """Outcome of one ``mutate`` call.

    ``value`` is the canonical value for CONFIRMED results and None for
    SUPERSEDED ones.
    """

    entity_id: str
    field_key: str
    state: MutationState
    value: Any
    previous: Any
    attempts: int
    generation: int


@dataclass
class _Chain:
    generation: int
    baseline: Any
    state: MutationState = MutationState.APPLYING
    timer: asyncio.TimerHandle | None = None
    waiter: asyncio.Future[bool] | None = None

    def cancel_wait(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.waiter is not None and not self.waiter.done():
            self.waiter.set_result(False)


def _wake(waiter: asyncio.Future[bool]) -> None:
    if not waiter.done():
        waiter.set_result(True)


class ResilientMutationController:
    """Applies status mutations optimistically and reconciles with the store."""

    def __init__(
        self,
        store: StatusStore,
        view: LocalStatusView,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        metrics: TimetableMetrics | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self._store = store
        self._view = view
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._metrics = metrics or TimetableMetrics()
        self._chains: dict[tuple[str, str], _Chain] = {}
        self._generations: dict[tuple[str, str], int] = {}
        self._closed = False

    @classmethod
    def from_config(
        cls,
        store: StatusStore,
        view: LocalStatusView,
        config: SyncConfig,
        *,
        metrics: TimetableMetrics | None = None,
    ) -> ResilientMutationController:
        return cls(
            store,
            view,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            metrics=metrics,
        )

    @property
    def view(self) -> LocalStatusView:
        return self._view

    def retry_delay(self, attempt: int) -> float:
        """Delay before the write following zero-based *attempt*."""
        return self._base_delay * (2**attempt)

    def state_of(self, entity_id: str, field_key: str) -> MutationState:
        chain = self._chains.get((entity_id, field_key))
        return chain.state if chain is not None else MutationState.IDLE

    def generation_of(self, entity_id: str, field_key: str) -> int:
        return self._generations.get((entity_id, field_key), 0)

    def _is_current(self, key: tuple[str, str], chain: _Chain) -> bool:
        return self._generations.get(key) == chain.generation

    def _finish(self, key: tuple[str, str], chain: _Chain, state: MutationState) -> None:
        chain.state = state
        if self._chains.get(key) is chain:
            del self._chains[key]

    async def _wait(self, chain: _Chain, delay: float) -> bool:
        """Sleep on a cancellable timer; False means the chain was superseded."""
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[bool] = loop.create_future()
        chain.waiter = waiter
        chain.timer = loop.call_later(delay, _wake, waiter)
        try:
            return await waiter
        finally:
            chain.timer = None
            chain.waiter = None

    def _superseded(
        self, entity_id: str, field_key: str, chain: _Chain, attempts: int
    ) -> MutationResult:
        chain.state = MutationState.SUPERSEDED
        logger.debug(
            "Mutation of %s/%s (generation %d) superseded", entity_id, field_key, chain.generation
        )
        return MutationResult(
            entity_id=entity_id,
            field_key=field_key,
            state=MutationState.SUPERSEDED,
            value=None,
            previous=chain.baseline,
            attempts=attempts,
            generation=chain.generation,
        )

    def _absorb_late_write(self, key: tuple[str, str], canonical: Any) -> None:
        newest = self._chains.get(key)
        if newest is not None:
            newest.baseline = canonical
        elif self._view.get(*key) != canonical:
            logger.info(
                "Late status write %s/%s landed as %r; updating the view", *key, canonical
            )
            self._view.set(*key, canonical)

    def _begin(self, key: tuple[str, str]) -> _Chain:
        prior = self._chains.get(key)
        if prior is not None:
            baseline = prior.baseline
            prior.cancel_wait()
        else:
            baseline = self._view.get(*key)
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        chain = _Chain(generation=generation, baseline=baseline)
        self._chains[key] = chain
        return chain

    async def mutate(self, entity_id: str, field_key: str, new_value: Any) -> MutationResult:
        """Set ``(entity_id, field_key)`` to *new_value*, optimistically.

        Returns a CONFIRMED result once the store accepted the value (the view
        then holds the canonical value), or a SUPERSEDED result if a newer
        mutation of the same key took over.

        Raises:
            MutationFailedError: every attempt failed, whether on the network or
                because the store rejected the value; the view holds the
                baseline value again.
            Exception: any other error from the store, after rolling back.
        """
        if self._closed:
            raise RuntimeError("ResilientMutationController is closed")

        key = (entity_id, field_key)
        chain = self._begin(key)
        tracer = trace.get_tracer("timetable")
        with tracer.start_as_current_span("timetable.sync.mutate") as span:
            span.set_attribute("entity_id", entity_id)
            span.set_attribute("field_key", field_key)
            span.set_attribute("generation", chain.generation)

            attempts = 0
            while True:
                if not self._is_current(key, chain):
                    return self._superseded(entity_id, field_key, chain, attempts)

                chain.state = MutationState.APPLYING
                self._view.set(entity_id, field_key, new_value)
                attempts += 1
                try:
                    canonical = await self._store.write_status(entity_id, field_key, new_value)
                except Exception as exc:
                    if not self._is_current(key, chain):
                        logger.warning(
                            "Superseded status write %s/%s failed: %s", entity_id, field_key, exc
                        )
                        return self._superseded(entity_id, field_key, chain, attempts)
                    chain.state = MutationState.ROLLING_BACK
                    self._view.set(entity_id, field_key, chain.baseline)
                    self._metrics.record_rollback(field_key)
                    if not is_retryable(exc):
                        self._finish(key, chain, MutationState.FAILED)
                        raise
                    if attempts >= self._max_attempts:
                        self._finish(key, chain, MutationState.FAILED)
                        self._metrics.record_failure(field_key)
                        span.set_attribute("attempts", attempts)
                        logger.error(
                            "Status write %s/%s gave up after %d attempt(s); rolled back to %r",
                            entity_id,
                            field_key,
                            attempts,
                            chain.baseline,
                        )
                        raise MutationFailedError(
                            entity_id=entity_id,
                            field_key=field_key,
                            previous=chain.baseline,
                            attempts=attempts,
                            last_error=exc,
                        ) from exc
                    delay = self.retry_delay(attempts - 1)
                    self._metrics.record_retry(field_key)
                    logger.warning(
                        "Status write %s/%s failed (%s), retrying in %.2fs (attempt %d/%d)",
                        entity_id,
                        field_key,
                        exc,
                        delay,
                        attempts,
                        self._max_attempts,
                    )
                    if not await self._wait(chain, delay):
                        return self._superseded(entity_id, field_key, chain, attempts)
                    continue

                if not self._is_current(key, chain):
                    # Late write: the server now holds this value.
                    self._absorb_late_write(key, canonical)
                    return self._superseded(entity_id, field_key, chain, attempts)

                self._view.set(entity_id, field_key, canonical)
                self._finish(key, chain, MutationState.CONFIRMED)
                span.set_attribute("attempts", attempts)
                logger.debug(
                    "Status %s/%s confirmed as %r after %d attempt(s)",
                    entity_id,
                    field_key,
                    canonical,
                    attempts,
                )
                return MutationResult(
                    entity_id=entity_id,
                    field_key=field_key,
                    state=MutationState.CONFIRMED,
                    value=canonical,
                    previous=chain.baseline,
                    attempts=attempts,
                    generation=chain.generation,
                )

    async def aclose(self) -> None:
        """Cancel every pending retry timer; waiting mutations return SUPERSEDED."""
        self._closed = True
        for key, chain in list(self._chains.items()):
            # Moving the generation on makes the waiting chain stand down.
            self._generations[key] = self._generations.get(key, 0) + 1
            chain.cancel_wait()
        self._chains.clear()
