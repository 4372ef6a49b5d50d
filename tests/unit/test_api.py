"""
Unit tests for the HTTP API.
Runs the aiohttp application against in-memory stores.
"""

from datetime import date

import pytest
from aiohttp.test_utils import TestClient, TestServer

from api import create_app

BOOKING = {
    "practitioner_id": "doc-1",
    "client_id": "client-1",
    "appointment_date": "2024-01-01",
    "start_time": "09:00",
    "service_type": "general_consultation",
    "location_type": "clinic",
}


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_check(self, ledger, generator, profile_store):
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/health")
            data = await response.json()

        assert response.status == 200
        assert data["status"] == "ok"
        assert data["configuration"]["booking_backend"] == "memory"

    @pytest.mark.asyncio
    async def test_security_headers(self, ledger, generator, profile_store):
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)
        async with TestClient(TestServer(app)) as client:
            response = await client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"


class TestSlots:
    @pytest.mark.asyncio
    async def test_list_slots(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/practitioners/doc-1/slots",
                params={"from": "2024-01-01", "to": "2024-01-01", "duration": "30"},
            )
            data = await response.json()

        assert response.status == 200
        assert data["duration_minutes"] == 30
        assert len(data["slots"]) == 6
        assert data["slots"][0]["start_time"] == "09:00:00"

    @pytest.mark.asyncio
    async def test_service_sets_duration(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/practitioners/doc-1/slots",
                params={"from": "2024-01-01", "to": "2024-01-01", "service": "nutrition"},
            )
            data = await response.json()

        assert response.status == 200
        assert data["duration_minutes"] == 45
        assert [s["start_time"] for s in data["slots"]] == [
            "09:00:00", "09:45:00", "10:30:00", "11:15:00"
        ]

    @pytest.mark.asyncio
    async def test_unknown_practitioner(self, ledger, generator, profile_store):
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get("/practitioners/nobody/slots")
            data = await response.json()

        assert response.status == 404
        assert data["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_reversed_range_rejected(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/practitioners/doc-1/slots", params={"from": "2024-01-10", "to": "2024-01-01"}
            )
            data = await response.json()

        assert response.status == 422
        assert data["status"] == "error"

    @pytest.mark.asyncio
    async def test_bad_date_rejected(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get("/practitioners/doc-1/slots", params={"from": "monday"})
            data = await response.json()

        assert response.status == 422
        assert "from" in data["errors"]

    @pytest.mark.asyncio
    async def test_next_available(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)

        async with TestClient(TestServer(app)) as client:
            response = await client.get(
                "/practitioners/doc-1/next-available", params={"from": "2024-01-02"}
            )
            data = await response.json()

        assert response.status == 200
        assert data["slot"]["appointment_date"] == "2024-01-08"
        assert data["slot"]["start_time"] == "09:00:00"


class TestBookings:
    async def _client(self, ledger, generator, profile_store, monday_morning):
        await profile_store.save_weekly_availability("doc-1", monday_morning)
        app = create_app(ledger=ledger, generator=generator, profiles=profile_store)
        return TestClient(TestServer(app))

    @pytest.mark.asyncio
    async def test_create_and_get(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            booking = await created.json()
            fetched = await client.get(f"/bookings/{booking['id']}")
            data = await fetched.json()

        assert created.status == 201
        assert booking["status"] == "pending"
        assert booking["end_time"] == "09:30:00"
        assert fetched.status == 200
        assert data["id"] == booking["id"]

    @pytest.mark.asyncio
    async def test_double_booking_conflict(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            first = await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            second = await client.post(
                "/bookings", json=dict(BOOKING, client_id="client-2", duration_minutes=30)
            )
            data = await second.json()

        assert first.status == 201
        assert second.status == 409
        assert data["error"] == "slot_conflict"

    @pytest.mark.asyncio
    async def test_outside_availability_conflict(
        self, ledger, generator, profile_store, monday_morning
    ):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            response = await client.post(
                "/bookings", json=dict(BOOKING, start_time="14:00", duration_minutes=30)
            )

        assert response.status == 409

    @pytest.mark.asyncio
    async def test_invalid_body(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            response = await client.post("/bookings", json={"client_id": "client-1"})
            data = await response.json()

        assert response.status == 422
        assert data["error"] == "validation_failed"

    @pytest.mark.asyncio
    async def test_start_with_seconds_rejected(
        self, ledger, generator, profile_store, monday_morning
    ):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            response = await client.post(
                "/bookings", json=dict(BOOKING, start_time="09:00:30", duration_minutes=30)
            )
            data = await response.json()

        assert response.status == 422
        assert "start_time" in data["errors"]
        monday = date(2024, 1, 1)
        assert await ledger.list_for_practitioner("doc-1", monday, monday) == []

    @pytest.mark.asyncio
    async def test_malformed_json(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            response = await client.post(
                "/bookings", data="{not json", headers={"Content-Type": "application/json"}
            )

        assert response.status == 400

    @pytest.mark.asyncio
    async def test_unknown_booking(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            response = await client.get("/bookings/missing")
            data = await response.json()

        assert response.status == 404
        assert data["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_lifecycle_actions(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await (
                await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            ).json()
            booking_id = created["id"]

            confirmed = await client.post(f"/bookings/{booking_id}/confirm")
            confirmed_data = await confirmed.json()
            moved = await client.post(
                f"/bookings/{booking_id}/reschedule",
                json={"appointment_date": "2024-01-08", "start_time": "10:00"},
            )
            moved_data = await moved.json()
            cancelled = await client.post(
                f"/bookings/{booking_id}/cancel", json={"reason": "Feeling better"}
            )
            again = await client.post(f"/bookings/{booking_id}/cancel")
            completed = await client.post(f"/bookings/{booking_id}/complete")
            completed_data = await completed.json()

        assert confirmed.status == 200
        assert confirmed_data["status"] == "confirmed"
        assert moved.status == 200
        assert moved_data["appointment_date"] == "2024-01-08"
        assert moved_data["start_time"] == "10:00:00"
        assert moved_data["end_time"] == "10:30:00"
        assert cancelled.status == 200
        assert again.status == 200
        assert completed.status == 409
        assert completed_data["error"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_extend_into_own_interval(
        self, ledger, generator, profile_store, monday_morning
    ):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await (
                await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            ).json()
            await client.post(f"/bookings/{created['id']}/confirm")
            moved = await client.post(
                f"/bookings/{created['id']}/reschedule",
                json={
                    "appointment_date": "2024-01-01",
                    "start_time": "09:00",
                    "duration_minutes": 60,
                },
            )
            moved_data = await moved.json()

        assert moved.status == 200
        assert moved_data["start_time"] == "09:00:00"
        assert moved_data["end_time"] == "10:00:00"
        assert moved_data["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_reschedule_onto_other_booking_rejected(
        self, ledger, generator, profile_store, monday_morning
    ):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await (
                await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            ).json()
            await client.post(
                "/bookings",
                json=dict(BOOKING, client_id="client-2", start_time="10:00", duration_minutes=30),
            )
            response = await client.post(
                f"/bookings/{created['id']}/reschedule",
                json={"appointment_date": "2024-01-01", "start_time": "10:00"},
            )

        assert response.status == 409

    @pytest.mark.asyncio
    async def test_reschedule_requires_target(
        self, ledger, generator, profile_store, monday_morning
    ):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await (
                await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            ).json()
            response = await client.post(f"/bookings/{created['id']}/reschedule", json={})
            data = await response.json()

        assert response.status == 422
        assert set(data["errors"]) == {"appointment_date", "start_time"}

    @pytest.mark.asyncio
    async def test_unknown_action(self, ledger, generator, profile_store, monday_morning):
        client = await self._client(ledger, generator, profile_store, monday_morning)
        async with client:
            created = await (
                await client.post("/bookings", json=dict(BOOKING, duration_minutes=30))
            ).json()
            response = await client.post(f"/bookings/{created['id']}/archive")

        assert response.status == 404
