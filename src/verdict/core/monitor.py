# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Resolution monitor.

Drives claims through the lifecycle on two schedules:
- preliminary tick (fast): ACTIVE past expiry -> EXPIRED -> DISPUTABLE
- final tick (slow): dispute window closures, refunds, final aggregation

Each claim is handled under its own lock, with at most ``max_workers``
claims in flight. A failing claim never stops the batch; after
``max_attempts`` failures of the same transition it is flagged for review.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

from .aggregation import ClaimEvaluator, confidence_level
from .config import MonitorConfig
from .events import EventBus, EventKind, ResolutionEvent
from .exceptions import DataInconsistencyError, StaleStateError
from .lifecycle import ClaimLifecycle, preliminary_outcome, require_window_data
from .logging import claim_context, tick_context
from .models import Claim, ClaimStatus, Outcome, TransitionResult
from .ports import DisputeRegistry, Ledger
from .store import ClaimStore

logger = logging.getLogger(__name__)

# Name of the transition the monitor attempts from each status
TRANSITION_NAMES: dict[ClaimStatus, str] = {
    ClaimStatus.ACTIVE: "expire",
    ClaimStatus.EXPIRED: "preliminary_resolve",
    ClaimStatus.DISPUTABLE: "close_dispute_window",
    ClaimStatus.PENDING_FINAL: "final_resolve",
}

ACTIVE_DISPUTE_REASON = "Has active disputes after dispute period ended"

ClaimHandler = Callable[[Claim, datetime], Awaitable[list[TransitionResult]]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResolutionMonitor:
    """Periodic driver of claim resolution.

    Args:
        store: Claim persistence.
        lifecycle: Guarded state machine; the only writer of claim status.
        evaluator: Runs the three signals and aggregates them.
        ledger: Stake totals for the preliminary outcome.
        disputes: Open-dispute lookup at window close.
        config: Intervals, timeouts, worker pool and retry cap.
        events: Bus for AGGREGATION and ATTEMPT_FAILED events.
        clock: Returns the current time; injected for tests.
    """

    def __init__(
        self,
        store: ClaimStore,
        lifecycle: ClaimLifecycle,
        evaluator: ClaimEvaluator,
        ledger: Ledger,
        disputes: DisputeRegistry,
        config: MonitorConfig | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.evaluator = evaluator
        self.ledger = ledger
        self.disputes = disputes
        self.config = config or MonitorConfig()
        self.events = events or lifecycle.events
        self.clock = clock or _utcnow

        # claim id -> (lock, tasks holding or waiting for it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self._semaphore = asyncio.Semaphore(self.config.max_workers)
        self._attempts: dict[tuple[str, str], int] = {}

        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._last_tick: dict[str, datetime | None] = {"preliminary": None, "final": None}
        self._next_tick: dict[str, datetime | None] = {"preliminary": None, "final": None}

    # -------------------------------------------------------------------------
    # TICKS
    # -------------------------------------------------------------------------

    async def tick_preliminary(self, now: datetime | None = None) -> list[TransitionResult]:
        """Expire claims past their expiry and open their dispute windows."""
        now = now or self.clock()
        expiring = await asyncio.to_thread(self.store.list_claims, [ClaimStatus.ACTIVE], now)
        expired = await asyncio.to_thread(self.store.list_claims, [ClaimStatus.EXPIRED])
        return await self._run_batch([*expiring, *expired], self._advance_preliminary, now)

    async def tick_final(self, now: datetime | None = None) -> list[TransitionResult]:
        """Close dispute windows, refund stale claims and resolve pending ones."""
        now = now or self.clock()
        claims = await asyncio.to_thread(
            self.store.list_claims, [ClaimStatus.DISPUTABLE, ClaimStatus.PENDING_FINAL]
        )
        return await self._run_batch(claims, self._advance_final, now)

    async def tick(self, now: datetime | None = None) -> list[TransitionResult]:
        """Run the preliminary tick, then the final tick, at the same instant."""
        now = now or self.clock()
        results = await self.tick_preliminary(now)
        results.extend(await self.tick_final(now))
        return results

    @asynccontextmanager
    async def _claim_lock(self, claim_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(claim_id)
        lock, users = entry if entry is not None else (asyncio.Lock(), 0)
        self._locks[claim_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._locks[claim_id]
            if users == 1:
                del self._locks[claim_id]
            else:
                self._locks[claim_id] = (lock, users - 1)

    async def _run_batch(self, claims: Iterable[Claim], handler: ClaimHandler, now: datetime) -> list[TransitionResult]:
        async def run(claim: Claim) -> list[TransitionResult]:
            async with self._semaphore, self._claim_lock(claim.id):
                with claim_context(claim.id):
                    return await self._attempt(claim, handler, now)

        batches = await asyncio.gather(*(run(claim) for claim in claims))
        return [result for batch in batches for result in batch]

    async def _attempt(self, snapshot: Claim, handler: ClaimHandler, now: datetime) -> list[TransitionResult]:
        try:
            claim = await asyncio.to_thread(self.store.get_claim, snapshot.id)
            if claim.status != snapshot.status:
                logger.debug("Claim %s moved to %s since listing; skipping", claim.id, claim.status.value)
                return []
            results = await handler(claim, now)
        except StaleStateError as exc:
            logger.debug("Skipping claim %s: %s", snapshot.id, exc.message)
            return []
        except DataInconsistencyError as exc:
            logger.warning("Skipping claim %s: %s", snapshot.id, exc.message)
            return [
                TransitionResult(snapshot.id, snapshot.status, snapshot.status, applied=False, reason=exc.message, at=now)
            ]
        except Exception as exc:
            logger.warning("Transition attempt failed for claim %s", snapshot.id, exc_info=True)
            return await self._record_failure(snapshot, exc, now)

        self._attempts.pop((snapshot.id, TRANSITION_NAMES[snapshot.status]), None)
        return results

    async def _record_failure(self, snapshot: Claim, error: Exception, now: datetime) -> list[TransitionResult]:
        try:
            claim = await asyncio.to_thread(self.store.get_claim, snapshot.id)
        except Exception:
            logger.exception("Could not re-read claim %s after a failed attempt", snapshot.id)
            claim = snapshot

        name = TRANSITION_NAMES.get(claim.status)
        if name is None:
            return []
        key = (claim.id, name)
        attempts = self._attempts.get(key, 0) + 1
        self._attempts[key] = attempts

        self.events.emit(
            ResolutionEvent(
                kind=EventKind.ATTEMPT_FAILED,
                claim_id=claim.id,
                prior_state=claim.status.value,
                details={"transition": name, "attempt": attempts, "error": str(error)},
            )
        )

        if attempts < self.config.max_attempts:
            reason = f"Attempt {attempts} of {self.config.max_attempts} at {name} failed: {error}"
            return [TransitionResult(claim.id, claim.status, claim.status, applied=False, reason=reason, at=now)]

        del self._attempts[key]
        reason = f"Transition {name} failed {attempts} times: {error}"
        try:
            flagged = await asyncio.to_thread(self.lifecycle.flag_for_review, claim, reason)
        except StaleStateError:
            return []
        except Exception:
            logger.exception("Could not flag claim %s for review", claim.id)
            return [TransitionResult(claim.id, claim.status, claim.status, applied=False, reason=reason, at=now)]
        return [TransitionResult(claim.id, claim.status, flagged.status, applied=True, reason=reason, at=now)]

    # -------------------------------------------------------------------------
    # HANDLERS
    # -------------------------------------------------------------------------

    async def _advance_preliminary(self, claim: Claim, now: datetime) -> list[TransitionResult]:
        results: list[TransitionResult] = []
        if claim.status is ClaimStatus.ACTIVE:
            claim = await asyncio.to_thread(self.lifecycle.expire, claim, now)
            results.append(
                TransitionResult(claim.id, ClaimStatus.ACTIVE, ClaimStatus.EXPIRED, applied=True, reason="Claim expired", at=now)
            )

        totals = await asyncio.to_thread(self.ledger.get_stake_totals, claim.id)
        outcome, confidence = preliminary_outcome(totals)
        try:
            await asyncio.to_thread(self.lifecycle.open_dispute_window, claim, outcome, now, confidence)
        except StaleStateError as exc:
            logger.debug("Dispute window for claim %s not opened: %s", claim.id, exc.message)
            return results
        results.append(
            TransitionResult(
                claim.id,
                ClaimStatus.EXPIRED,
                ClaimStatus.DISPUTABLE,
                applied=True,
                reason=f"Preliminary outcome {outcome.value} from bet majority ({confidence:.0f}%)",
                at=now,
            )
        )
        return results

    async def _advance_final(self, claim: Claim, now: datetime) -> list[TransitionResult]:
        require_window_data(claim)
        window_closed = now >= claim.dispute_window_end

        if window_closed and await self._has_active_dispute(claim.id):
            flagged = await asyncio.to_thread(self.lifecycle.flag_for_review, claim, ACTIVE_DISPUTE_REASON)
            return [TransitionResult(claim.id, claim.status, flagged.status, applied=True, reason=ACTIVE_DISPUTE_REASON, at=now)]

        refund_reason = self.lifecycle.refund_reason(claim, now)
        if refund_reason:
            refunded = await asyncio.to_thread(self.lifecycle.refund, claim, refund_reason)
            return [TransitionResult(claim.id, claim.status, refunded.status, applied=True, reason=refund_reason, at=now)]

        results: list[TransitionResult] = []
        if claim.status is ClaimStatus.DISPUTABLE:
            if not window_closed:
                return []
            claim = await asyncio.to_thread(self.lifecycle.close_dispute_window, claim, now)
            results.append(
                TransitionResult(
                    claim.id,
                    ClaimStatus.DISPUTABLE,
                    ClaimStatus.PENDING_FINAL,
                    applied=True,
                    reason="Dispute window closed with no active disputes",
                    at=now,
                )
            )

        aggregation = await self.evaluator.evaluate(claim, computed_at=now)
        await asyncio.to_thread(self.store.record_aggregation, aggregation)
        confidence = aggregation.outcome_confidence
        self.events.emit(
            ResolutionEvent(
                kind=EventKind.AGGREGATION,
                claim_id=claim.id,
                prior_state=claim.status.value,
                confidence=aggregation.final_confidence,
                strategy=aggregation.strategy.value,
                details={
                    "recommended_outcome": aggregation.recommended_outcome.value,
                    "outcome_confidence": round(confidence, 2),
                    "suspect_manipulation": aggregation.suspect_manipulation,
                    "warnings": list(aggregation.warnings),
                },
            )
        )

        floor = self.lifecycle.config.auto_resolve_floor
        if confidence >= floor:
            outcome = Outcome.parse(aggregation.recommended_outcome.value)
            resolved = await asyncio.to_thread(self.lifecycle.resolve, claim, outcome, confidence, now)
            results.append(
                TransitionResult(
                    claim.id,
                    ClaimStatus.PENDING_FINAL,
                    resolved.status,
                    applied=True,
                    reason=f"Resolved {outcome.value} with {confidence_level(confidence)} confidence ({confidence:.1f}%)",
                    aggregation=aggregation,
                    at=now,
                )
            )
        else:
            await asyncio.to_thread(self.lifecycle.record_assessment, claim, confidence)
            reason = f"Confidence {confidence:.1f}% is below the auto-resolve floor of {floor:.0f}%"
            logger.info("Claim %s stays pending: %s", claim.id, reason)
            results.append(
                TransitionResult(
                    claim.id,
                    ClaimStatus.PENDING_FINAL,
                    ClaimStatus.PENDING_FINAL,
                    applied=False,
                    reason=reason,
                    aggregation=aggregation,
                    at=now,
                )
            )
        return results

    async def _has_active_dispute(self, claim_id: str) -> bool:
        try:
            return await asyncio.to_thread(self.disputes.has_active_dispute, claim_id)
        except Exception:
            logger.exception("Dispute lookup failed for claim %s; treating as disputed", claim_id)
            return True

    # -------------------------------------------------------------------------
    # SCHEDULER
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start both tick loops."""
        if self._running:
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._loop("preliminary", self.tick_preliminary, self.config.preliminary_interval)),
            asyncio.create_task(self._loop("final", self.tick_final, self.config.final_interval)),
        ]
        logger.info(
            "Resolution monitor started (preliminary every %gs, final every %gs)",
            self.config.preliminary_interval,
            self.config.final_interval,
        )

    async def stop(self) -> None:
        """Stop both tick loops and wait for them to finish."""
        self._running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Resolution monitor stopped")

    async def _loop(self, name: str, tick: Callable[[], Awaitable[list[TransitionResult]]], interval: float) -> None:
        while self._running:
            with tick_context():
                try:
                    results = await tick()
                    applied = sum(1 for r in results if r.applied)
                    if results:
                        logger.info("%s tick: %d results, %d transitions applied", name, len(results), applied)
                except Exception:
                    logger.exception("Error in %s tick", name)
            self._last_tick[name] = self.clock()
            self._next_tick[name] = self._last_tick[name] + timedelta(seconds=interval)
            await asyncio.sleep(interval)

    @property
    def running(self) -> bool:
        return self._running

    def status(self) -> dict[str, Any]:
        """Scheduler state for operators."""

        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "running": self._running,
            "preliminary_interval": self.config.preliminary_interval,
            "final_interval": self.config.final_interval,
            "last_preliminary_tick": iso(self._last_tick["preliminary"]),
            "last_final_tick": iso(self._last_tick["final"]),
            "next_preliminary_tick": iso(self._next_tick["preliminary"]),
            "next_final_tick": iso(self._next_tick["final"]),
            "pending_retries": {f"{claim_id}:{name}": n for (claim_id, name), n in self._attempts.items()},
        }
