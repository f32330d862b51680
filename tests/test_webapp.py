"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from focus_ledger.models import ActivityCategory, Intent, ParsedActivity
from focus_ledger.service import TrackerService
from focus_ledger.webapp import create_app

DAY = "2024-01-15"


class CannedParser:
    def __init__(self, result):
        self.result = result

    async def request(self, message, has_ongoing_activity):
        return self.result


@pytest.fixture
def service(store, clock):
    return TrackerService(store=store, clock=clock)


@pytest.fixture
def client(service):
    app = create_app(service=service, start_monitor=False)
    with TestClient(app) as test_client:
        yield test_client


def add(client, description, category, start, end=None):
    payload = {"description": description, "category": category, "startTime": f"{DAY}T{start}"}
    if end:
        payload["endTime"] = f"{DAY}T{end}"
    return client.post("/api/activities", json=payload)


def app_switch(client, package, name, time):
    return client.post(
        "/api/app-switches",
        json={"toApp": package, "toAppName": name, "timestamp": f"{DAY}T{time}"},
    )


class TestActivities:
    def test_create_and_list(self, client):
        response = add(client, "coding", "coding", "09:00:00", "10:00:00")
        assert response.status_code == 201
        assert response.json()["activity"]["duration"] == 60

        listed = client.get("/api/activities", params={"date": DAY}).json()
        assert [a["description"] for a in listed["activities"]] == ["coding"]
        assert listed["dates"] == [DAY]

    def test_gap_is_returned_with_new_activity(self, client):
        add(client, "coding", "coding", "09:00:00", "10:00:00")
        body = add(client, "writing", "work", "10:20:00").json()

        assert body["gap"]["durationMinutes"] == 20
        filled = client.post("/api/gap/fill", json={"description": "coffee", "category": "break"})
        assert filled.status_code == 201
        assert client.get("/api/gap").json() == {"gap": None}

    def test_validation_errors_are_400(self, client):
        assert add(client, "coding", "coding", "10:00:00", "09:00:00").status_code == 400
        assert add(client, "coding", "hobbies", "09:00:00").status_code == 400
        extra = client.post(
            "/api/activities",
            json={"description": "x", "category": "work", "startTime": "09:00", "colour": "red"},
        )
        assert extra.status_code == 400

    def test_unknown_activity_is_404(self, client):
        assert client.patch("/api/activities/nope", json={"description": "x"}).status_code == 404
        assert client.delete("/api/activities/nope").status_code == 404

    def test_invalid_transition_is_409(self, client):
        activity = add(client, "coding", "coding", "09:00:00", "10:00:00").json()["activity"]
        response = client.patch(f"/api/activities/{activity['id']}", json={"endTime": None})
        assert response.status_code == 409

    def test_patch_and_delete(self, client):
        activity = add(client, "coding", "coding", "09:00:00", "10:00:00").json()["activity"]
        patched = client.patch(
            f"/api/activities/{activity['id']}", json={"endTime": f"{DAY}T10:30:00"}
        )
        assert patched.json()["activity"]["duration"] == 90
        assert client.delete(f"/api/activities/{activity['id']}").status_code == 200

    def test_stop(self, client):
        assert client.post("/api/activities/stop").json() == {"activity": None}
        add(client, "coding", "coding", "09:00:00")
        stopped = client.post("/api/activities/stop", json={"endTime": f"{DAY}T09:45:00"})
        assert stopped.json()["activity"]["duration"] == 45


class TestNarration:
    def test_narrate_applies_parse(self, client, service):
        service.parser = CannedParser(
            ParsedActivity(Intent.START, "coding", ActivityCategory.CODING, None)
        )
        body = client.post("/api/narrate", json={"message": "started coding"}).json()

        assert body["applied"] is True
        assert body["activity"]["isOngoing"] is True

    def test_unconfigured_parser_is_502(self, client):
        response = client.post("/api/narrate", json={"message": "lunch"})
        assert response.status_code == 502

    def test_message_too_long(self, client):
        response = client.post("/api/narrate", json={"message": "x" * 501})
        assert response.status_code == 400


class TestDistractions:
    def test_episode_prompt_and_resolution(self, client):
        app_switch(client, "com.instagram.android", "Instagram", "10:00:00")
        recorded = app_switch(client, "com.focusledger.app", "Focus Ledger", "10:04:00").json()

        event = recorded["recorded"]
        assert event["severity"] == "grouped"
        assert recorded["state"] == "returned_unscored"

        pending = client.get("/api/distractions/pending").json()
        assert [e["id"] for e in pending["grouped"]] == [event["id"]]

        needs_reason = client.post(
            "/api/distractions/resolve",
            json={"resolutions": [{"id": event["id"], "isWorkRelated": True}]},
        )
        assert needs_reason.status_code == 422
        assert needs_reason.json()["eventId"] == event["id"]

        resolved = client.post(
            "/api/distractions/resolve",
            json={"resolutions": [{"id": event["id"], "isWorkRelated": False}]},
        )
        assert resolved.status_code == 200
        assert resolved.json()["events"][0]["userResponded"] is True

        again = client.post(
            "/api/distractions/resolve",
            json={"resolutions": [{"id": event["id"], "isWorkRelated": False}]},
        )
        assert again.status_code == 409

    def test_app_settings(self, client):
        created = client.post("/api/apps", json={"appName": "Instagram", "packageName": "com.instagram.android"})
        assert created.status_code == 201

        updated = client.patch(
            "/api/apps/com.instagram.android",
            json={"isWhitelisted": True, "category": "social"},
        )
        assert updated.json()["app"]["isWhitelisted"] is True
        assert updated.json()["app"]["category"] == "social"
        assert client.patch("/api/apps/com.none", json={"isWorkApp": True}).status_code == 404

        app_switch(client, "com.instagram.android", "Instagram", "10:00:00")
        app_switch(client, "com.focusledger.app", "Focus Ledger", "10:30:00")
        assert client.get("/api/distractions").json() == {"events": []}


class TestRollups:
    def test_day_summary_and_heatmap(self, client):
        add(client, "coding", "coding", "09:00:00", "11:00:00")

        summary = client.get("/api/summary/day", params={"date": DAY}).json()
        assert summary["current"]["productiveMinutes"] == 120
        assert summary["current"]["integrity"] == 100

        week = client.get("/api/heatmap", params={"date": DAY, "span": "week"}).json()
        assert len(week["days"]) == 7
        assert week["days"][0]["hours"][9]["band"] == "high"

    def test_unknown_period_and_bad_date(self, client):
        assert client.get("/api/summary/year").status_code == 400
        assert client.get("/api/summary/day", params={"date": "15-01-2024"}).status_code == 400

    def test_session_time(self, client, service):
        service.tick()
        body = client.get("/api/session-time").json()
        assert body["todaySeconds"] == 1
        assert len(body["chart"]) == 14

    def test_session_time_pauses_while_hidden(self, client, service):
        assert client.post("/api/session-time/active", json={"active": False}).json() == {
            "active": False
        }
        service.tick()
        assert client.get("/api/session-time").json()["todaySeconds"] == 0

        client.post("/api/session-time/active", json={"active": True})
        service.tick()
        assert client.get("/api/session-time").json()["todaySeconds"] == 1

    def test_insights_unavailable(self, client):
        assert client.post("/api/insights", json={"date": DAY}).status_code == 502


class TestImportExport:
    def test_round_trip(self, client):
        add(client, "coding", "coding", "09:00:00", "10:00:00")
        exported = client.get("/api/export")
        assert exported.headers["content-type"].startswith("application/json")

        client.post("/api/clear")
        assert client.get("/api/activities", params={"date": DAY}).json()["activities"] == []

        imported = client.post("/api/import", content=exported.text)
        assert imported.json() == {"days": 1}
        assert len(client.get("/api/activities", params={"date": DAY}).json()["activities"]) == 1

    def test_import_rejects_garbage(self, client):
        assert client.post("/api/import", content="{nope").status_code == 400


def test_status(client):
    body = client.get("/api/status").json()
    assert body["monitoring"] is False
    assert body["episode_state"] == "idle"
