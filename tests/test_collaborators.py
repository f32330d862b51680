"""Tests for the narration parser and insight generator clients."""

import asyncio
import json

import httpx
import pytest

from conftest import at
from focus_ledger.collaborators import InsightGenerator, NarrationParser, SubmissionGuard
from focus_ledger.errors import CollaboratorUnavailable, SubmissionInProgress, ValidationError
from focus_ledger.models import Activity, ActivityCategory, Intent

URL = "http://collaborator.test/endpoint"


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_handler(status, body, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)

    return handler


class TestNarrationParser:
    def test_parses_start_intent(self):
        seen = []
        body = {
            "intent": "start",
            "description": "coding",
            "category": "coding",
            "startTime": "2024-01-15T09:00:00",
        }
        parser = NarrationParser(URL, api_key="k", client=client_for(json_handler(200, body, seen)))

        parsed = asyncio.run(parser.request("started coding", False))

        assert parsed.intent is Intent.START
        assert parsed.category is ActivityCategory.CODING
        assert parsed.start_time == at(9)
        assert json.loads(seen[0].content) == {
            "message": "started coding",
            "hasOngoingActivity": False,
        }
        assert seen[0].headers["Authorization"] == "Bearer k"

    def test_missing_start_time_is_none(self):
        body = {"intent": "stop", "description": "", "category": "other", "startTime": None}
        parser = NarrationParser(URL, client=client_for(json_handler(200, body)))
        assert asyncio.run(parser.request("done", True)).start_time is None

    @pytest.mark.parametrize(
        "status,body",
        [
            (200, {"error": "could not understand"}),
            (500, {"detail": "boom"}),
            (200, {"intent": "dance"}),
            (200, ["not", "an", "object"]),
        ],
    )
    def test_failures_surface_as_unavailable(self, status, body):
        parser = NarrationParser(URL, client=client_for(json_handler(status, body)))
        with pytest.raises(CollaboratorUnavailable):
            asyncio.run(parser.request("lunch", True))

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        parser = NarrationParser(URL, client=client_for(handler))
        with pytest.raises(CollaboratorUnavailable):
            asyncio.run(parser.request("lunch", True))

    def test_unconfigured_endpoint(self):
        with pytest.raises(CollaboratorUnavailable):
            asyncio.run(NarrationParser("").request("lunch", True))

    @pytest.mark.parametrize("message", ["", "   ", "x" * 501])
    def test_message_validated_before_sending(self, message):
        def handler(request):
            raise AssertionError("should not be called")

        parser = NarrationParser(URL, client=client_for(handler))
        with pytest.raises(ValidationError):
            asyncio.run(parser.request(message, False))


class TestInsightGenerator:
    def test_sends_closed_activities_only(self):
        seen = []
        body = {
            "summary": "Solid morning.",
            "redFlags": [],
            "greenFlags": ["long focus block"],
            "recommendations": ["take breaks"],
        }
        generator = InsightGenerator(URL, client=client_for(json_handler(200, body, seen)))
        activities = [
            Activity("coding", ActivityCategory.CODING, at(9), at(10), 60),
            Activity("lunch", ActivityCategory.MEALS, at(12), is_ongoing=True),
        ]

        analysis = asyncio.run(generator.request(activities, "2024-01-15"))

        sent = json.loads(seen[0].content)
        assert sent["date"] == "2024-01-15"
        assert [a["description"] for a in sent["activities"]] == ["coding"]
        assert sent["activities"][0]["duration"] == 60
        assert analysis.green_flags == ["long focus block"]

    def test_too_many_activities(self):
        generator = InsightGenerator(URL, client=client_for(json_handler(200, {})))
        activities = [
            Activity("a", ActivityCategory.WORK, at(9), at(9), 0) for _ in range(101)
        ]
        with pytest.raises(ValidationError):
            asyncio.run(generator.request(activities, "2024-01-15"))


def test_submission_guard_rejects_second_submit():
    guard = SubmissionGuard()

    async def scenario():
        async with guard.hold():
            assert guard.busy
            with pytest.raises(SubmissionInProgress):
                async with guard.hold():
                    pass
        assert not guard.busy

    asyncio.run(scenario())
