# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Resolution state machine.

Lifecycle of a claim:

    ACTIVE ─> EXPIRED ─> DISPUTABLE ─> PENDING_FINAL ─> RESOLVED
                │            │              │
                └────────────┴──────────────┴─> REFUNDED / FLAGGED_FOR_REVIEW

Any open state may be flagged for review when automation gives up on it.
FLAGGED_FOR_REVIEW leaves only through an admin final resolution.
RESOLVED and REFUNDED are terminal.

``ClaimLifecycle.transition`` is the only code that writes a claim's
status. It re-reads the claim, checks that it is still in the expected
state, checks the edge against ``TRANSITIONS`` and the field invariants,
and then writes through the store's compare-and-set.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from .config import ResolutionConfig
from .events import EventBus, EventKind, ResolutionEvent
from .exceptions import DataInconsistencyError, StaleStateError, TransitionError, ValidationException
from .models import Claim, ClaimStatus, Outcome
from .ports import StakeTotals
from .store import ClaimStore

logger = logging.getLogger(__name__)

TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.ACTIVE: frozenset({ClaimStatus.EXPIRED, ClaimStatus.FLAGGED_FOR_REVIEW}),
    ClaimStatus.EXPIRED: frozenset({ClaimStatus.DISPUTABLE, ClaimStatus.FLAGGED_FOR_REVIEW, ClaimStatus.REFUNDED}),
    ClaimStatus.DISPUTABLE: frozenset(
        {ClaimStatus.PENDING_FINAL, ClaimStatus.FLAGGED_FOR_REVIEW, ClaimStatus.REFUNDED}
    ),
    ClaimStatus.PENDING_FINAL: frozenset(
        {ClaimStatus.RESOLVED, ClaimStatus.FLAGGED_FOR_REVIEW, ClaimStatus.REFUNDED}
    ),
    ClaimStatus.FLAGGED_FOR_REVIEW: frozenset({ClaimStatus.RESOLVED}),
    ClaimStatus.RESOLVED: frozenset(),
    ClaimStatus.REFUNDED: frozenset(),
}

# Position along the lifecycle; no allowed edge lowers it
STATUS_RANK: dict[ClaimStatus, int] = {
    ClaimStatus.ACTIVE: 0,
    ClaimStatus.EXPIRED: 1,
    ClaimStatus.DISPUTABLE: 2,
    ClaimStatus.PENDING_FINAL: 3,
    ClaimStatus.FLAGGED_FOR_REVIEW: 4,
    ClaimStatus.RESOLVED: 5,
    ClaimStatus.REFUNDED: 5,
}

WINDOW_STATES = frozenset({ClaimStatus.DISPUTABLE, ClaimStatus.PENDING_FINAL})


def can_transition(source: ClaimStatus, target: ClaimStatus) -> bool:
    """Whether the edge exists. A same-status write is allowed for open states."""
    if source.is_terminal:
        return False
    return target == source or target in TRANSITIONS[source]


def preliminary_outcome(totals: StakeTotals) -> tuple[Outcome, float]:
    """Majority of bet volume, with the majority's share as confidence.

    A tie or an empty market resolves NO at 50.
    """
    if totals.total <= 0:
        return Outcome.NO, 50.0
    if totals.yes_stake > totals.no_stake:
        return Outcome.YES, totals.yes_stake / totals.total * 100.0
    return Outcome.NO, totals.no_stake / totals.total * 100.0


def require_window_data(claim: Claim) -> None:
    """Raise DataInconsistencyError if a window state lacks its timestamps."""
    if claim.status not in WINDOW_STATES:
        return
    missing = [name for name in ("dispute_window_end", "preliminary_resolved_at") if getattr(claim, name) is None]
    if missing:
        raise DataInconsistencyError(claim.id, missing)


class ClaimLifecycle:
    """Guarded writer of claim status.

    Args:
        store: Claim persistence with compare-and-set.
        config: Dispute window, refund and auto-resolve thresholds.
        events: Bus that receives one TRANSITION event per status change.
    """

    def __init__(self, store: ClaimStore, config: ResolutionConfig | None = None, events: EventBus | None = None):
        self.store = store
        self.config = config or ResolutionConfig()
        self.events = events or EventBus()

    # -------------------------------------------------------------------------
    # GUARD
    # -------------------------------------------------------------------------

    def transition(
        self,
        claim_id: str,
        expected: ClaimStatus,
        target: ClaimStatus,
        changes: dict[str, Any] | None = None,
        reason: str = "",
    ) -> Claim:
        """Move a claim from ``expected`` to ``target``.

        Raises:
            StaleStateError: The claim is no longer in ``expected``.
            TransitionError: The edge is not allowed or the changes would
                break a field invariant.
            DataInconsistencyError: A window state would lose its window end.
        """
        claim = self.store.get_claim(claim_id)
        if claim.status != expected:
            raise StaleStateError(claim_id, expected.value, claim.status.value)
        if not can_transition(claim.status, target):
            raise TransitionError(
                f"Cannot move claim {claim_id} from {claim.status.value} to {target.value}",
                claim_id=claim_id,
                from_status=claim.status.value,
                to_status=target.value,
            )

        changes = dict(changes or {})
        changes["status"] = target

        if target in WINDOW_STATES:
            if changes.get("dispute_window_end", claim.dispute_window_end) is None:
                raise DataInconsistencyError(claim_id, ["dispute_window_end"])
        else:
            changes["dispute_window_end"] = None

        final_outcome = changes.get("final_outcome", claim.final_outcome)
        if (target is ClaimStatus.RESOLVED) != (final_outcome is not None):
            raise TransitionError(
                "final_outcome must be set exactly when a claim is resolved",
                claim_id=claim_id,
                from_status=claim.status.value,
                to_status=target.value,
            )

        updated = self.store.compare_and_set(claim_id, expected, claim.version, changes)

        if target != expected:
            logger.info("Claim %s: %s -> %s%s", claim_id, expected.value, target.value, f" ({reason})" if reason else "")
            self.events.emit(
                ResolutionEvent(
                    kind=EventKind.TRANSITION,
                    claim_id=claim_id,
                    prior_state=expected.value,
                    new_state=target.value,
                    confidence=updated.confidence_score,
                    details={"reason": reason} if reason else {},
                )
            )
        return updated

    # -------------------------------------------------------------------------
    # TRANSITIONS
    # -------------------------------------------------------------------------

    def expire(self, claim: Claim, now: datetime) -> Claim:
        if now < claim.expires_at:
            raise TransitionError(
                f"Claim {claim.id} does not expire until {claim.expires_at.isoformat()}",
                claim_id=claim.id,
                from_status=claim.status.value,
                to_status=ClaimStatus.EXPIRED.value,
            )
        return self.transition(
            claim.id,
            ClaimStatus.ACTIVE,
            ClaimStatus.EXPIRED,
            {"evidence_period_start": claim.evidence_period_start or claim.expires_at},
            reason="Claim expired",
        )

    def open_dispute_window(
        self,
        claim: Claim,
        outcome: Outcome,
        now: datetime,
        confidence: float | None = None,
        reason: str = "Preliminary outcome from bet majority",
    ) -> Claim:
        """Set the preliminary outcome and open the dispute window.

        Raises:
            StaleStateError: The claim is no longer EXPIRED, for instance
                because another monitor already opened its window.
        """
        current = self.store.get_claim(claim.id)

        changes: dict[str, Any] = {
            "preliminary_outcome": outcome,
            "preliminary_resolved_at": now,
            "dispute_window_end": now + timedelta(hours=self.config.dispute_window_hours),
            "evidence_period_start": current.evidence_period_start or current.expires_at,
        }
        if confidence is not None:
            changes["confidence_score"] = confidence
        return self.transition(claim.id, ClaimStatus.EXPIRED, ClaimStatus.DISPUTABLE, changes, reason=reason)

    def close_dispute_window(self, claim: Claim, now: datetime) -> Claim:
        require_window_data(claim)
        if now < claim.dispute_window_end:
            raise TransitionError(
                f"Dispute window for claim {claim.id} is open until {claim.dispute_window_end.isoformat()}",
                claim_id=claim.id,
                from_status=claim.status.value,
                to_status=ClaimStatus.PENDING_FINAL.value,
            )
        return self.transition(
            claim.id,
            ClaimStatus.DISPUTABLE,
            ClaimStatus.PENDING_FINAL,
            reason="Dispute window closed with no active disputes",
        )

    def flag_for_review(self, claim: Claim, reason: str) -> Claim:
        return self.transition(
            claim.id, claim.status, ClaimStatus.FLAGGED_FOR_REVIEW, {"review_reason": reason}, reason=reason
        )

    def refund(self, claim: Claim, reason: str) -> Claim:
        return self.transition(claim.id, claim.status, ClaimStatus.REFUNDED, {"refund_reason": reason}, reason=reason)

    def resolve(
        self,
        claim: Claim,
        outcome: Outcome,
        confidence: float,
        now: datetime,
        admin_override: bool = False,
        reason: str = "",
    ) -> Claim:
        """Record the final outcome.

        Raises:
            ValidationException: Confidence outside [0, 100].
            TransitionError: Confidence below the auto-resolve floor, or the
                claim is flagged, without an admin override.
        """
        if not 0.0 <= confidence <= 100.0:
            raise ValidationException("confidence must be within [0, 100]", field="confidence", value=confidence)
        if not admin_override:
            if claim.status is ClaimStatus.FLAGGED_FOR_REVIEW:
                raise TransitionError(
                    f"Claim {claim.id} is flagged for review and needs an admin decision",
                    claim_id=claim.id,
                    from_status=claim.status.value,
                    to_status=ClaimStatus.RESOLVED.value,
                )
            if confidence < self.config.auto_resolve_floor:
                raise TransitionError(
                    f"Confidence {confidence:.1f}% is below the auto-resolve floor of {self.config.auto_resolve_floor:.0f}%",
                    claim_id=claim.id,
                    from_status=claim.status.value,
                    to_status=ClaimStatus.RESOLVED.value,
                )
        return self.transition(
            claim.id,
            claim.status,
            ClaimStatus.RESOLVED,
            {
                "final_outcome": outcome,
                "confidence_score": confidence,
                "resolved_at": now,
                "admin_override": admin_override,
            },
            reason=reason or f"Resolved {outcome.value} at {confidence:.1f}% confidence",
        )

    def record_assessment(self, claim: Claim, confidence: float) -> Claim:
        """Store the latest confidence without changing status."""
        return self.transition(claim.id, claim.status, claim.status, {"confidence_score": confidence})

    # -------------------------------------------------------------------------
    # REFUNDS
    # -------------------------------------------------------------------------

    def refund_reason(self, claim: Claim, now: datetime) -> str | None:
        """Why the claim should be refunded now, or None if it should not.

        A claim is refunded once its evidence period has run longer than
        ``max_evidence_days`` while its stored confidence stays below
        ``min_confidence``.
        """
        if claim.evidence_period_start is None:
            return None
        elapsed = now - claim.evidence_period_start
        if elapsed <= timedelta(days=self.config.max_evidence_days):
            return None
        confidence = claim.confidence_score or 0.0
        if confidence >= self.config.min_confidence:
            return None
        return (
            f"Evidence period exceeded {self.config.max_evidence_days} days ({elapsed.days} days) "
            f"with confidence {confidence:.0f}% (below {self.config.min_confidence:.0f}% threshold)"
        )

    # -------------------------------------------------------------------------
    # ADMIN COMMANDS
    # -------------------------------------------------------------------------

    def force_preliminary_resolve(self, claim_id: str, outcome: Outcome | str, now: datetime) -> Claim:
        """Admin-set preliminary outcome; opens the dispute window as usual.

        An ACTIVE claim past its expiry is expired first.
        """
        outcome = Outcome.parse(outcome)
        claim = self.store.get_claim(claim_id)
        if claim.status is ClaimStatus.ACTIVE:
            claim = self.expire(claim, now)
        if claim.status is not ClaimStatus.EXPIRED:
            raise TransitionError(
                f"Preliminary resolution needs an expired claim; claim {claim_id} is {claim.status.value}",
                claim_id=claim_id,
                from_status=claim.status.value,
                to_status=ClaimStatus.DISPUTABLE.value,
            )
        return self.open_dispute_window(claim, outcome, now, reason=f"Admin preliminary resolution: {outcome.value}")

    def force_final_resolve(self, claim_id: str, outcome: Outcome | str, confidence: float, now: datetime) -> Claim:
        """Admin final resolution of a PENDING_FINAL or flagged claim."""
        outcome = Outcome.parse(outcome)
        claim = self.store.get_claim(claim_id)
        if claim.status not in (ClaimStatus.PENDING_FINAL, ClaimStatus.FLAGGED_FOR_REVIEW):
            raise TransitionError(
                f"Final resolution needs a pending or flagged claim; claim {claim_id} is {claim.status.value}",
                claim_id=claim_id,
                from_status=claim.status.value,
                to_status=ClaimStatus.RESOLVED.value,
            )
        return self.resolve(
            claim,
            outcome,
            confidence,
            now,
            admin_override=True,
            reason=f"Admin final resolution: {outcome.value} at {confidence:.1f}%",
        )
