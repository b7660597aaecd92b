"""HTTP tests for the gateway callback and the admin endpoints."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select, update

from order_escrow.infrastructure.database.orm_models import Order, Party, WebhookLog

SECRET = "test-webhook-secret"
ADMIN = {"X-Admin-Key": "test-admin-key"}


def _callback(tx_ref: str, amount: int = 50000) -> str:
    return json.dumps(
        {
            "event": "charge.completed",
            "data": {
                "id": 77,
                "tx_ref": tx_ref,
                "amount": amount,
                "currency": "NGN",
                "status": "successful",
            },
        }
    )


async def _order_with_payment(api_client, client_id, provider_id) -> tuple[dict, str]:
    resp = await api_client.post(
        "/api/v1/orders",
        json={
            "provider_id": str(provider_id),
            "title": "Bookkeeping for March",
            "description": "Reconcile the March bank statements against the ledger.",
            "amount": 50000,
            "delivery_days": 2,
        },
        headers={"X-Party-ID": str(client_id)},
    )
    order = resp.json()
    resp = await api_client.post(
        f"/api/v1/orders/{order['id']}/payments",
        json={"redirect_url": "https://shop.example.com/thanks"},
        headers={"X-Party-ID": str(client_id)},
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["payment_link"].endswith(resp.json()["tx_ref"])
    return order, resp.json()["tx_ref"]


async def _post_callback(api_client, body: str, signature: str | None = SECRET):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["verif-hash"] = signature
    return await api_client.post("/api/v1/webhooks/flutterwave", content=body, headers=headers)


class TestWebhookEndpoint:
    @pytest.mark.asyncio
    async def test_valid_callback_then_replay(self, api_client, seeded_parties) -> None:
        order, tx_ref = await _order_with_payment(api_client, *seeded_parties)

        first = await _post_callback(api_client, _callback(tx_ref))
        replay = await _post_callback(api_client, _callback(tx_ref))

        assert first.status_code == 200
        assert first.json() == {"status": "received", "outcome": "confirmed", "tx_ref": tx_ref}
        assert replay.status_code == 200
        assert replay.json()["outcome"] == "already_processed"

    @pytest.mark.asyncio
    async def test_bad_signature_is_401_and_audited(
        self, api_client, seeded_parties, session_factory
    ) -> None:
        _, tx_ref = await _order_with_payment(api_client, *seeded_parties)

        resp = await _post_callback(api_client, _callback(tx_ref), signature="nope")

        assert resp.status_code == 401
        assert resp.json()["error"] == "INVALID_SIGNATURE"
        async with session_factory() as session:
            entries = (
                await session.scalars(select(WebhookLog).order_by(WebhookLog.received_at.desc()))
            ).all()
        assert [e.verified for e in entries] == [False]

    @pytest.mark.asyncio
    async def test_missing_signature_is_401(self, api_client, seeded_parties) -> None:
        _, tx_ref = await _order_with_payment(api_client, *seeded_parties)
        resp = await _post_callback(api_client, _callback(tx_ref), signature=None)
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_amount_mismatch_is_400(self, api_client, seeded_parties) -> None:
        order, tx_ref = await _order_with_payment(api_client, *seeded_parties)

        resp = await _post_callback(api_client, _callback(tx_ref, amount=40000))

        assert resp.status_code == 400
        assert resp.json()["error"] == "AMOUNT_MISMATCH"
        client_id = seeded_parties[0]
        resp = await api_client.get(
            f"/api/v1/orders/{order['id']}", headers={"X-Party-ID": str(client_id)}
        )
        assert resp.json()["status"] == "pending_payment"

    @pytest.mark.asyncio
    async def test_unknown_reference_is_acknowledged(self, api_client) -> None:
        resp = await _post_callback(api_client, _callback("TX-1-00000000"))
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "unknown_reference"


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_sweep_endpoint_auto_approves(
        self, api_client, seeded_parties, session_factory
    ) -> None:
        client_id, provider_id = seeded_parties
        order, tx_ref = await _order_with_payment(api_client, client_id, provider_id)
        await _post_callback(api_client, _callback(tx_ref))
        resp = await api_client.post(
            f"/api/v1/orders/{order['id']}/deliver",
            json={
                "delivery_note": "Reconciliation workbook and summary attached.",
                "delivery_files": ["https://files.example.com/march.xlsx"],
            },
            headers={"X-Party-ID": str(provider_id)},
        )
        assert resp.status_code == 200, resp.text
        async with session_factory() as session:
            await session.execute(
                update(Order)
                .where(Order.id == uuid.UUID(order["id"]))
                .values(delivered_at=datetime.now(UTC) - timedelta(days=8))
            )
            await session.commit()

        resp = await api_client.post("/api/v1/admin/sweeps/auto-approval", headers=ADMIN)

        assert resp.status_code == 200, resp.text
        assert resp.json() == {
            "lock_acquired": True,
            "scanned": 1,
            "approved": 1,
            "skipped": 0,
            "failed": 0,
        }
        resp = await api_client.get(
            f"/api/v1/orders/{order['id']}", headers={"X-Party-ID": str(client_id)}
        )
        assert resp.json()["status"] == "completed"
        assert resp.json()["escrow_status"] == "released"

    @pytest.mark.asyncio
    async def test_sweep_requires_admin(self, api_client) -> None:
        resp = await api_client.post("/api/v1/admin/sweeps/auto-approval")
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_trust_recompute(self, api_client, session_factory) -> None:
        party_id = uuid.uuid4()
        async with session_factory() as session:
            session.add(Party(id=party_id, trust_score=55, trust_level="trusted"))
            await session.commit()

        resp = await api_client.post(
            f"/api/v1/admin/parties/{party_id}/trust/recompute", headers=ADMIN
        )

        assert resp.status_code == 200, resp.text
        assert resp.json() == {"subject_id": str(party_id), "score": 0, "level": "new"}

    @pytest.mark.asyncio
    async def test_trust_recompute_unknown_party(self, api_client) -> None:
        resp = await api_client.post(
            f"/api/v1/admin/parties/{uuid.uuid4()}/trust/recompute", headers=ADMIN
        )
        assert resp.status_code == 404


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_reports_ok_when_dependencies_answer(
        self, api_client, engine, fake_redis, monkeypatch
    ) -> None:
        from order_escrow.api.routes import health

        monkeypatch.setattr(health, "get_engine", lambda: engine)
        monkeypatch.setattr(health, "get_redis", lambda: fake_redis)

        resp = await api_client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["database"] == "healthy"
        assert resp.json()["redis"] == "healthy"

    @pytest.mark.asyncio
    async def test_degraded_when_redis_is_down(
        self, api_client, engine, monkeypatch
    ) -> None:
        from order_escrow.api.routes import health

        def _no_redis():
            raise RuntimeError("Redis not initialized")

        monkeypatch.setattr(health, "get_engine", lambda: engine)
        monkeypatch.setattr(health, "get_redis", _no_redis)

        resp = await api_client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"
        assert resp.json()["redis"].startswith("unhealthy")
