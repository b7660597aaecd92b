"""Trust Service: append-only trust score events and the cached score.

Each record() call:
    1. locks the subject's party row (SELECT ... FOR UPDATE), so score
       updates for one party are applied one at a time,
    2. ignores a repeat of (subject, event type, related entity),
    3. appends the event with previous/new score and refreshes the cached
       score and level on the party.

The event log is the source of truth; recompute() rebuilds the cache from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from order_escrow.domain.enums import TrustEventType, TrustLevel
from order_escrow.domain.exceptions import PartyNotFoundError
from order_escrow.domain.trust_rules import (
    TrustContext,
    apply_delta,
    calculate_score_change,
    fold_score,
    level_for_score,
)
from order_escrow.infrastructure.database.orm_models import Party, TrustScoreEvent
from order_escrow.infrastructure.database.repositories import (
    PartyRepository,
    TrustEventRepository,
)
from order_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrustRecordResult:
    subject_id: str
    event_type: str
    delta: int
    previous_score: int
    new_score: int
    level: TrustLevel
    duplicate: bool = False


@dataclass(frozen=True)
class TrustSummary:
    subject_id: str
    score: int
    level: TrustLevel
    history: list[TrustScoreEvent] = field(default_factory=list)


class TrustService:
    """Records trust score events and maintains each party's cached score."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._party_repo = PartyRepository(session)
        self._event_repo = TrustEventRepository(session)

    async def record(
        self,
        subject_id: uuid.UUID,
        event_type: TrustEventType,
        related_entity_id: object,
        related_entity_type: str | None = None,
        context: TrustContext | None = None,
        notes: str | None = None,
    ) -> TrustRecordResult:
        """Apply one scoring event to a party. Idempotent per related entity."""
        party = await self._lock_party(subject_id)
        related = str(related_entity_id)
        previous = party.trust_score

        if await self._event_repo.exists(subject_id, event_type.value, related):
            logger.info(
                "trust.duplicate_ignored",
                subject_id=str(subject_id),
                event_type=event_type.value,
                related_entity_id=related,
            )
            return self._duplicate(party, event_type)

        delta = calculate_score_change(event_type, context)
        new_score = apply_delta(previous, delta)
        evt = TrustScoreEvent(
            subject_id=subject_id,
            event_type=event_type.value,
            delta=delta,
            previous_score=previous,
            new_score=new_score,
            related_entity_type=related_entity_type,
            related_entity_id=related,
            notes=notes,
        )
        try:
            async with self._session.begin_nested():
                await self._event_repo.add(evt)
        except IntegrityError:
            # Lost a race with a concurrent writer for the same key.
            logger.info(
                "trust.duplicate_ignored",
                subject_id=str(subject_id),
                event_type=event_type.value,
                related_entity_id=related,
            )
            return self._duplicate(party, event_type)

        level = level_for_score(new_score)
        await self._party_repo.set_trust(party, new_score, level.value)

        logger.info(
            "trust.recorded",
            subject_id=str(subject_id),
            event_type=event_type.value,
            delta=delta,
            previous_score=previous,
            new_score=new_score,
            level=level.value,
        )
        return TrustRecordResult(
            subject_id=str(subject_id),
            event_type=event_type.value,
            delta=delta,
            previous_score=previous,
            new_score=new_score,
            level=level,
        )

    async def recompute(self, subject_id: uuid.UUID) -> TrustSummary:
        """Rebuild the cached score by folding the subject's full event log."""
        party = await self._lock_party(subject_id)
        deltas = await self._event_repo.deltas_for_subject(subject_id)
        score = fold_score(deltas)
        level = level_for_score(score)

        if score != party.trust_score or level.value != party.trust_level:
            logger.warning(
                "trust.cache_corrected",
                subject_id=str(subject_id),
                cached_score=party.trust_score,
                rebuilt_score=score,
            )
        await self._party_repo.set_trust(party, score, level.value)
        return TrustSummary(subject_id=str(subject_id), score=score, level=level)

    async def history(self, subject_id: uuid.UUID, limit: int = 20) -> list[TrustScoreEvent]:
        return await self._event_repo.history(subject_id, limit)

    async def summary(self, subject_id: uuid.UUID, limit: int = 20) -> TrustSummary:
        """Cached score, level and most recent events for one party."""
        party = await self._party_repo.get(subject_id)
        if party is None:
            raise PartyNotFoundError(str(subject_id))
        return TrustSummary(
            subject_id=str(subject_id),
            score=party.trust_score,
            level=TrustLevel(party.trust_level),
            history=await self._event_repo.history(subject_id, limit),
        )

    async def delivery_streak(self, subject_id: uuid.UUID) -> int:
        """Consecutive on-time deliveries since the last late one."""
        streak = 0
        for evt in await self._event_repo.history(subject_id, limit=200):
            if evt.event_type == TrustEventType.LATE_DELIVERY.value:
                break
            if evt.event_type == TrustEventType.ON_TIME_DELIVERY.value:
                streak += 1
        return streak

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _lock_party(self, subject_id: uuid.UUID) -> Party:
        party = await self._party_repo.get(subject_id, for_update=True)
        if party is None:
            raise PartyNotFoundError(str(subject_id))
        return party

    @staticmethod
    def _duplicate(party: Party, event_type: TrustEventType) -> TrustRecordResult:
        return TrustRecordResult(
            subject_id=str(party.id),
            event_type=event_type.value,
            delta=0,
            previous_score=party.trust_score,
            new_score=party.trust_score,
            level=TrustLevel(party.trust_level),
            duplicate=True,
        )
