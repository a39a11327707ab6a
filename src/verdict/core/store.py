# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Claim persistence and Postgres-backed collaborator ports.

Claim status is only ever written through ``compare_and_set``, which
succeeds only if the claim still has the status and version the caller
read. That check is what makes overlapping monitor ticks safe.

Two claim stores are provided:
- ``MemoryClaimStore`` for single-process use and tests
- ``PostgresClaimStore`` using ``UPDATE ... WHERE status = %s AND version = %s``
"""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from psycopg2 import sql as psql

from .credibility import infer_stance
from .db import get_cursor
from .exceptions import ConflictError, NotFoundError, StaleStateError, ValidationException
from .models import AggregationResult, Claim, ClaimStatus, EvidenceItem, SourceType, Stance
from .ports import StakeTotals

logger = logging.getLogger(__name__)

CLAIM_FIELDS = frozenset(f.name for f in dataclasses.fields(Claim))
_IMMUTABLE_FIELDS = frozenset({"id", "version", "created_at"})


def _check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - CLAIM_FIELDS
    if unknown:
        raise ValidationException(f"Unknown claim fields: {sorted(unknown)}", field="changes")
    frozen = set(changes) & _IMMUTABLE_FIELDS
    if frozen:
        raise ValidationException(f"Claim fields cannot be changed: {sorted(frozen)}", field="changes")


class ClaimStore(Protocol):
    """Transactional claim storage."""

    def add_claim(self, claim: Claim) -> Claim: ...

    def get_claim(self, claim_id: str) -> Claim: ...

    def list_claims(self, statuses: Iterable[ClaimStatus], expiring_before: datetime | None = None) -> list[Claim]: ...

    def compare_and_set(
        self,
        claim_id: str,
        expected_status: ClaimStatus,
        expected_version: int,
        changes: dict[str, Any],
    ) -> Claim: ...

    def record_aggregation(self, result: AggregationResult) -> bool: ...

    def list_aggregations(self, claim_id: str, limit: int = 10) -> list[dict[str, Any]]: ...


# =============================================================================
# IN-MEMORY
# =============================================================================


class MemoryClaimStore:
    """Claim store held in process memory.

    Returned claims are copies; mutating them does not change the store.
    """

    def __init__(self, claims: Iterable[Claim] = ()):
        self._claims: dict[str, Claim] = {}
        self._aggregations: dict[tuple[str, datetime], AggregationResult] = {}
        self._lock = threading.Lock()
        for claim in claims:
            self.add_claim(claim)

    def add_claim(self, claim: Claim) -> Claim:
        with self._lock:
            if claim.id in self._claims:
                raise ConflictError(f"Claim already exists: {claim.id}", existing_id=claim.id)
            self._claims[claim.id] = dataclasses.replace(claim)
        return dataclasses.replace(claim)

    def get_claim(self, claim_id: str) -> Claim:
        with self._lock:
            claim = self._claims.get(claim_id)
            if claim is None:
                raise NotFoundError("Claim", claim_id)
            return dataclasses.replace(claim)

    def list_claims(self, statuses: Iterable[ClaimStatus], expiring_before: datetime | None = None) -> list[Claim]:
        wanted = set(statuses)
        with self._lock:
            claims = [
                dataclasses.replace(c)
                for c in self._claims.values()
                if c.status in wanted and (expiring_before is None or c.expires_at <= expiring_before)
            ]
        return sorted(claims, key=lambda c: (c.expires_at, c.id))

    def compare_and_set(
        self,
        claim_id: str,
        expected_status: ClaimStatus,
        expected_version: int,
        changes: dict[str, Any],
    ) -> Claim:
        _check_changes(changes)
        with self._lock:
            current = self._claims.get(claim_id)
            if current is None:
                raise NotFoundError("Claim", claim_id)
            if current.status != expected_status or current.version != expected_version:
                raise StaleStateError(
                    claim_id,
                    f"{expected_status.value}@v{expected_version}",
                    f"{current.status.value}@v{current.version}",
                )
            updated = dataclasses.replace(current, **changes, version=current.version + 1)
            self._claims[claim_id] = updated
            return dataclasses.replace(updated)

    def record_aggregation(self, result: AggregationResult) -> bool:
        key = (result.claim_id, result.computed_at)
        with self._lock:
            if key in self._aggregations:
                return False
            self._aggregations[key] = result
            return True

    def list_aggregations(self, claim_id: str, limit: int = 10) -> list[dict[str, Any]]:
        with self._lock:
            results = [r for (cid, _), r in self._aggregations.items() if cid == claim_id]
        results.sort(key=lambda r: r.computed_at, reverse=True)
        return [r.to_dict() for r in results[:limit]]


# =============================================================================
# POSTGRES
# =============================================================================


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class PostgresClaimStore:
    """Claim store over the ``claims`` and ``aggregation_results`` tables."""

    def add_claim(self, claim: Claim) -> Claim:
        with get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO claims (id, text, expires_at, status)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                RETURNING *
                """,
                (claim.id, claim.text, claim.expires_at, claim.status.value),
            )
            row = cur.fetchone()
        if row is None:
            raise ConflictError(f"Claim already exists: {claim.id}", existing_id=claim.id)
        return Claim.from_row(row)

    def get_claim(self, claim_id: str) -> Claim:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
            row = cur.fetchone()
        if row is None:
            raise NotFoundError("Claim", claim_id)
        return Claim.from_row(row)

    def list_claims(self, statuses: Iterable[ClaimStatus], expiring_before: datetime | None = None) -> list[Claim]:
        status_values = [s.value for s in statuses]
        with get_cursor() as cur:
            if expiring_before is None:
                cur.execute(
                    "SELECT * FROM claims WHERE status = ANY(%s) ORDER BY expires_at, id",
                    (status_values,),
                )
            else:
                cur.execute(
                    "SELECT * FROM claims WHERE status = ANY(%s) AND expires_at <= %s ORDER BY expires_at, id",
                    (status_values, expiring_before),
                )
            rows = cur.fetchall()
        return [Claim.from_row(row) for row in rows]

    def compare_and_set(
        self,
        claim_id: str,
        expected_status: ClaimStatus,
        expected_version: int,
        changes: dict[str, Any],
    ) -> Claim:
        _check_changes(changes)
        columns = sorted(changes)
        assignments = psql.SQL(", ").join(
            [psql.SQL("{} = %s").format(psql.Identifier(column)) for column in columns]
            + [psql.SQL("version = version + 1")]
        )
        query = psql.SQL("UPDATE claims SET {} WHERE id = %s AND status = %s AND version = %s RETURNING *").format(
            assignments
        )
        params = [_db_value(changes[column]) for column in columns]
        params.extend([claim_id, expected_status.value, expected_version])

        with get_cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
            if row is None:
                cur.execute("SELECT status, version FROM claims WHERE id = %s", (claim_id,))
                current = cur.fetchone()
        if row is not None:
            return Claim.from_row(row)
        if current is None:
            raise NotFoundError("Claim", claim_id)
        raise StaleStateError(
            claim_id,
            f"{expected_status.value}@v{expected_version}",
            f"{current['status']}@v{current['version']}",
        )

    def record_aggregation(self, result: AggregationResult) -> bool:
        with get_cursor() as cur:
            cur.execute(
                """
                INSERT INTO aggregation_results
                    (claim_id, computed_at, final_confidence, recommended_outcome, strategy,
                     suspect_manipulation, explanation, payload)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (claim_id, computed_at) DO NOTHING
                """,
                (
                    result.claim_id,
                    result.computed_at,
                    result.final_confidence,
                    result.recommended_outcome.value,
                    result.strategy.value,
                    result.suspect_manipulation,
                    result.explanation,
                    json.dumps(result.to_dict()),
                ),
            )
            return cur.rowcount == 1

    def list_aggregations(self, claim_id: str, limit: int = 10) -> list[dict[str, Any]]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT payload FROM aggregation_results WHERE claim_id = %s ORDER BY computed_at DESC LIMIT %s",
                (claim_id, limit),
            )
            rows = cur.fetchall()
        return [row["payload"] for row in rows]


class PostgresLedger:
    """Stake totals from the ``stake_positions`` mirror table."""

    def get_stake_totals(self, claim_id: str) -> StakeTotals:
        with get_cursor() as cur:
            cur.execute(
                """
                SELECT COALESCE(SUM(amount) FILTER (WHERE side = 'YES'), 0) AS yes_stake,
                       COALESCE(SUM(amount) FILTER (WHERE side = 'NO'), 0) AS no_stake
                FROM stake_positions
                WHERE claim_id = %s
                """,
                (claim_id,),
            )
            row = cur.fetchone()
        return StakeTotals(yes_stake=float(row["yes_stake"]), no_stake=float(row["no_stake"]))

    def get_unique_participant_count(self, claim_id: str) -> int:
        with get_cursor() as cur:
            cur.execute(
                "SELECT COUNT(DISTINCT bettor) AS participants FROM stake_positions WHERE claim_id = %s",
                (claim_id,),
            )
            row = cur.fetchone()
        return int(row["participants"])


def evidence_from_row(row: dict[str, Any]) -> EvidenceItem:
    """Build an EvidenceItem, inferring the stance when none was declared."""
    if row.get("stance") is None:
        row = {**row, "stance": infer_stance(row.get("content") or "")}
    return EvidenceItem.from_row(row)


class PostgresEvidenceStore:
    """Evidence over the ``evidence_items`` table."""

    def list_evidence(self, claim_id: str) -> list[EvidenceItem]:
        with get_cursor() as cur:
            cur.execute(
                "SELECT * FROM evidence_items WHERE claim_id = %s ORDER BY submitted_at, id",
                (claim_id,),
            )
            rows = cur.fetchall()
        return [evidence_from_row(row) for row in rows]

    def update_evidence_review(
        self,
        evidence_id: str,
        stance: Stance,
        source_type: SourceType,
        verified: bool,
    ) -> EvidenceItem:
        """Apply the one-time admin review to an evidence item.

        Raises:
            NotFoundError: No such evidence item.
            ConflictError: The item was already reviewed.
        """
        with get_cursor() as cur:
            cur.execute(
                """
                UPDATE evidence_items
                SET stance = %s, source_type = %s, admin_verified = %s, reviewed_at = NOW()
                WHERE id = %s AND reviewed_at IS NULL
                RETURNING *
                """,
                (stance.value, source_type.value, verified, evidence_id),
            )
            row = cur.fetchone()
            if row is None:
                cur.execute("SELECT id FROM evidence_items WHERE id = %s", (evidence_id,))
                exists = cur.fetchone() is not None
        if row is not None:
            logger.info("Evidence %s reviewed: stance=%s source_type=%s verified=%s", evidence_id, stance, source_type, verified)
            return evidence_from_row(row)
        if not exists:
            raise NotFoundError("EvidenceItem", evidence_id)
        raise ConflictError(f"Evidence item already reviewed: {evidence_id}", existing_id=evidence_id)


class PostgresDisputeRegistry:
    """Open disputes from the ``disputes`` table."""

    def has_active_dispute(self, claim_id: str) -> bool:
        with get_cursor() as cur:
            cur.execute(
                "SELECT EXISTS (SELECT 1 FROM disputes WHERE claim_id = %s AND status = 'open') AS active",
                (claim_id,),
            )
            row = cur.fetchone()
        return bool(row["active"])
