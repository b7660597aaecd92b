"""Tests for TrustService: append-only events and the cached score."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import update

from order_escrow.domain.enums import TrustEventType, TrustLevel
from order_escrow.domain.exceptions import PartyNotFoundError
from order_escrow.domain.trust_rules import TrustContext
from order_escrow.infrastructure.database.orm_models import Party
from order_escrow.infrastructure.database.repositories import TrustEventRepository
from order_escrow.services.trust_service import TrustService


class TestRecord:
    @pytest.mark.asyncio
    async def test_record_updates_cache_and_log(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        related = uuid.uuid4()

        result = await svc.record(
            party.id, TrustEventType.LIVENESS_VERIFIED, related, related_entity_type="kyc"
        )

        assert result.delta == 25
        assert result.previous_score == 0
        assert result.new_score == 25
        assert result.level is TrustLevel.VERIFIED
        reloaded = await flow.reload_party(party.id)
        assert reloaded.trust_score == 25
        assert reloaded.trust_level == "verified"
        history = await svc.history(party.id)
        assert len(history) == 1
        assert history[0].related_entity_id == str(related)

    @pytest.mark.asyncio
    async def test_same_event_for_same_entity_counts_once(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        related = uuid.uuid4()

        await svc.record(party.id, TrustEventType.ORDER_COMPLETED, related)
        repeat = await svc.record(party.id, TrustEventType.ORDER_COMPLETED, related)

        assert repeat.duplicate
        assert repeat.delta == 0
        assert repeat.new_score == 2
        assert len(await svc.history(party.id)) == 1

    @pytest.mark.asyncio
    async def test_same_event_for_different_entities_counts_twice(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        await svc.record(party.id, TrustEventType.ORDER_COMPLETED, uuid.uuid4())
        result = await svc.record(party.id, TrustEventType.ORDER_COMPLETED, uuid.uuid4())
        assert result.new_score == 4

    @pytest.mark.asyncio
    async def test_score_is_floored_at_zero(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)

        result = await svc.record(party.id, TrustEventType.SUSPICIOUS_ACTIVITY, uuid.uuid4())

        assert result.delta == -20
        assert result.new_score == 0
        assert result.level is TrustLevel.NEW

    @pytest.mark.asyncio
    async def test_context_modifier(self, flow) -> None:
        party = await flow.party()
        result = await TrustService(flow.session).record(
            party.id,
            TrustEventType.ON_TIME_DELIVERY,
            uuid.uuid4(),
            context=TrustContext(delivery_streak=12),
        )
        assert result.delta == 6

    @pytest.mark.asyncio
    async def test_unknown_party(self, flow) -> None:
        with pytest.raises(PartyNotFoundError):
            await TrustService(flow.session).record(
                uuid.uuid4(), TrustEventType.ORDER_COMPLETED, uuid.uuid4()
            )


class TestRecompute:
    @pytest.mark.asyncio
    async def test_recompute_repairs_a_drifted_cache(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        await svc.record(party.id, TrustEventType.LIVENESS_VERIFIED, uuid.uuid4())
        await svc.record(party.id, TrustEventType.PHONE_VERIFIED, uuid.uuid4())
        await flow.session.execute(
            update(Party)
            .where(Party.id == party.id)
            .values(trust_score=80, trust_level="top_rated")
        )

        summary = await svc.recompute(party.id)

        assert summary.score == 35
        assert summary.level is TrustLevel.VERIFIED
        reloaded = await flow.reload_party(party.id)
        assert reloaded.trust_score == 35

    @pytest.mark.asyncio
    async def test_recompute_matches_incremental_score(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        for event_type in (
            TrustEventType.DISPUTE_LOST,
            TrustEventType.ORDER_COMPLETED,
            TrustEventType.POSITIVE_REVIEW_4,
            TrustEventType.LATE_DELIVERY,
        ):
            await svc.record(party.id, event_type, uuid.uuid4())
        cached = (await flow.reload_party(party.id)).trust_score

        summary = await svc.recompute(party.id)

        assert summary.score == cached == 2
        deltas = await TrustEventRepository(flow.session).deltas_for_subject(party.id)
        assert deltas == [-10, 2, 3, -3]


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary_with_history(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        for _ in range(3):
            await svc.record(party.id, TrustEventType.ORDER_COMPLETED, uuid.uuid4())

        summary = await svc.summary(party.id, limit=2)

        assert summary.score == 6
        assert summary.level is TrustLevel.NEW
        assert len(summary.history) == 2

    @pytest.mark.asyncio
    async def test_summary_unknown_party(self, flow) -> None:
        with pytest.raises(PartyNotFoundError):
            await TrustService(flow.session).summary(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delivery_streak_resets_after_late_delivery(self, flow) -> None:
        party = await flow.party()
        svc = TrustService(flow.session)
        await svc.record(party.id, TrustEventType.ON_TIME_DELIVERY, uuid.uuid4())
        await svc.record(party.id, TrustEventType.LATE_DELIVERY, uuid.uuid4())
        await svc.record(party.id, TrustEventType.ON_TIME_DELIVERY, uuid.uuid4())
        await svc.record(party.id, TrustEventType.ON_TIME_DELIVERY, uuid.uuid4())

        assert await svc.delivery_streak(party.id) == 2
