"""
Unit tests for push dispatch.
Tests target resolution, per-subscription delivery outcomes, dead
subscription pruning and the fire-and-forget push clients.
"""

import json

import httpx
import pytest

from conftest import ALICE, BOB, CAROL, MockConfig, add_subscription
from dataponto.notifications.errors import DispatchStoreError, DispatchValidationError
from dataponto.notifications.push import (
    DispatchRequest,
    HttpPushClient,
    LocalPushClient,
    PushDispatchService,
    SubscriptionRegistry,
    is_valid_uuid,
)
from dataponto.notifications.vapid import generate_vapid_keys


class PushRecorder:
    """MockTransport handler that records requests and answers per endpoint."""

    def __init__(self, statuses=None, errors=None):
        self.statuses = statuses or {}
        self.errors = errors or set()
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.errors:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.statuses.get(url, 201), text="gone" if self.statuses.get(url) == 410 else "")

    @property
    def urls(self):
        return [str(r.url) for r in self.requests]


def _endpoint(name):
    return f"https://push.example.com/send/{name}"


@pytest.fixture
def subscriptions(db):
    add_subscription(db, "sub-alice", ALICE, _endpoint("alice"))
    add_subscription(db, "sub-bob", BOB, _endpoint("bob"))
    add_subscription(db, "sub-carol", CAROL, _endpoint("carol"))


def _service(db, recorder, config=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return PushDispatchService(db, config or MockConfig(), client=client)


class TestIsValidUuid:
    """Tests for sender id validation."""

    def test_accepts_uuid(self):
        assert is_valid_uuid(ALICE)
        assert is_valid_uuid(ALICE.upper())

    @pytest.mark.parametrize("value", ["", "alice", "1234", None, 42, ALICE + "0"])
    def test_rejects_everything_else(self, value):
        assert not is_valid_uuid(value)


class TestDispatchRequest:
    """Tests for request validation."""

    def test_from_dict(self):
        request = DispatchRequest.from_dict({
            "title": "Oi",
            "body": "Tudo bem?",
            "sender_id": ALICE,
            "type": "message",
        })

        assert request.sender_id == ALICE
        assert request.type == "message"

    def test_defaults(self):
        request = DispatchRequest.from_dict({"title": "Oi", "body": ""})

        assert request.sender_id == ""
        assert request.type == "message"

    @pytest.mark.parametrize("data", [
        None,
        [],
        {"body": "x"},
        {"title": "", "body": "x"},
        {"title": "x", "body": 3},
        {"title": "x", "body": "x", "sender_id": 7},
        {"title": "x", "body": "x", "type": "sms"},
    ])
    def test_invalid(self, data):
        with pytest.raises(DispatchValidationError):
            DispatchRequest.from_dict(data)


class TestDispatchTargets:
    """Tests for which subscriptions a dispatch reaches."""

    @pytest.mark.asyncio
    async def test_empty_sender_reaches_everyone(self, db, subscriptions):
        """Appointment reminders carry no sender and go to all endpoints."""
        recorder = PushRecorder()
        service = _service(db, recorder)

        result = await service.dispatch({"title": "📅", "body": "x", "sender_id": "", "type": "appointment"})

        assert set(recorder.urls) == {_endpoint("alice"), _endpoint("bob"), _endpoint("carol")}
        assert result.sent == 3

    @pytest.mark.asyncio
    async def test_valid_sender_is_excluded(self, db, subscriptions):
        recorder = PushRecorder()
        service = _service(db, recorder)

        await service.dispatch({"title": "Oi", "body": "x", "sender_id": ALICE, "type": "message"})

        assert set(recorder.urls) == {_endpoint("bob"), _endpoint("carol")}

    @pytest.mark.asyncio
    async def test_malformed_sender_is_not_excluded(self, db, subscriptions):
        recorder = PushRecorder()
        service = _service(db, recorder)

        await service.dispatch({"title": "Oi", "body": "x", "sender_id": "alice"})

        assert len(recorder.urls) == 3

    @pytest.mark.asyncio
    async def test_no_subscriptions(self, db):
        recorder = PushRecorder()
        service = _service(db, recorder)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert result.results == []
        assert result.message == "No subscriptions found"
        assert result.to_dict() == {"results": [], "message": "No subscriptions found"}
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_store_unavailable(self, db, subscriptions):
        db.fail_on = "push_subscriptions"
        service = _service(db, PushRecorder())

        with pytest.raises(DispatchStoreError):
            await service.dispatch({"title": "Oi", "body": "x"})

    @pytest.mark.asyncio
    async def test_malformed_request(self, db, subscriptions):
        recorder = PushRecorder()
        service = _service(db, recorder)

        with pytest.raises(DispatchValidationError):
            await service.dispatch({"title": 5})
        assert recorder.requests == []


class TestDelivery:
    """Tests for per-subscription delivery."""

    @pytest.mark.asyncio
    async def test_request_carries_payload_and_ttl(self, db, subscriptions):
        recorder = PushRecorder()
        service = _service(db, recorder)

        await service.dispatch({"title": "Oi", "body": "Tudo?", "sender_id": ALICE, "type": "message"})

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["TTL"] == "86400"
        assert json.loads(request.content) == {"title": "Oi", "body": "Tudo?", "type": "message"}

    @pytest.mark.asyncio
    async def test_gone_subscription_is_pruned(self, db, subscriptions):
        """A 410 endpoint is deleted and absent from the next dispatch."""
        recorder = PushRecorder(statuses={_endpoint("bob"): 410})
        service = _service(db, recorder)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert "Removed expired subscription sub-bob" in result.results
        assert result.removed == 1
        assert result.sent == 2

        recorder.requests.clear()
        await service.dispatch({"title": "Oi", "body": "x"})
        assert _endpoint("bob") not in recorder.urls
        assert len(recorder.urls) == 2

    @pytest.mark.asyncio
    async def test_not_found_is_also_pruned(self, db, subscriptions):
        recorder = PushRecorder(statuses={_endpoint("carol"): 404})
        service = _service(db, recorder)

        await service.dispatch({"title": "Oi", "body": "x"})

        remaining = {s.id for s in SubscriptionRegistry(db).list_targets()}
        assert remaining == {"sub-alice", "sub-bob"}

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_fan_out(self, db, subscriptions):
        """A 500 and a connection error are recorded; other endpoints still get it."""
        recorder = PushRecorder(
            statuses={_endpoint("alice"): 500},
            errors={_endpoint("bob")},
        )
        service = _service(db, recorder)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert "Sent to sub-carol" in result.results
        assert any(line.startswith("Failed for sub-alice: 500") for line in result.results)
        assert any(line.startswith("Error for sub-bob:") for line in result.results)
        assert result.failed == 2
        # Transient failures keep their subscription
        assert len(SubscriptionRegistry(db).list_targets()) == 3

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, db, subscriptions):
        recorder = PushRecorder(statuses={_endpoint("carol"): 410})
        config = MockConfig(preferences={"push_max_concurrency": 2})
        service = _service(db, recorder, config)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert len(result.results) == 3
        assert result.sent == 2
        assert result.removed == 1

    @pytest.mark.asyncio
    async def test_vapid_authorization_header(self, db, subscriptions):
        keys = generate_vapid_keys()
        config = MockConfig(env={
            "vapid_public_key": keys.public_key,
            "vapid_private_key": keys.private_key,
        })
        recorder = PushRecorder()
        service = _service(db, recorder, config)

        await service.dispatch({"title": "Oi", "body": "x"})

        auth = recorder.requests[0].headers["Authorization"]
        assert auth.startswith("vapid t=")
        assert f"k={keys.public_key}" in auth

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 2])
    async def test_unsignable_endpoint_only_fails_itself(self, db, concurrency):
        """An endpoint the VAPID signer cannot parse is recorded; the rest still get it."""
        add_subscription(db, "sub-bad", ALICE, "http://[bad")
        add_subscription(db, "sub-good", BOB, _endpoint("bob"))
        keys = generate_vapid_keys()
        config = MockConfig(
            preferences={"push_max_concurrency": concurrency},
            env={
                "vapid_public_key": keys.public_key,
                "vapid_private_key": keys.private_key,
            },
        )
        recorder = PushRecorder()
        service = _service(db, recorder, config)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert recorder.urls == [_endpoint("bob")]
        assert "Sent to sub-good" in result.results
        assert any(line.startswith("Error for sub-bad:") for line in result.results)
        assert result.sent == 1
        assert result.failed == 1
        assert len(SubscriptionRegistry(db).list_targets()) == 2

    @pytest.mark.asyncio
    async def test_unexpected_transport_error_only_fails_itself(self, db, subscriptions):
        def handler(request):
            if str(request.url) == _endpoint("alice"):
                raise RuntimeError("transport exploded")
            return httpx.Response(201)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = PushDispatchService(db, MockConfig(), client=client)

        result = await service.dispatch({"title": "Oi", "body": "x"})

        assert "Error for sub-alice: transport exploded" in result.results
        assert result.sent == 2
        assert result.failed == 1


class TestSubscriptionRegistry:
    """Tests for SubscriptionRegistry."""

    def test_upsert_is_idempotent_per_endpoint(self, db):
        registry = SubscriptionRegistry(db)

        first = registry.upsert(ALICE, _endpoint("a"), "k1", "a1")
        second = registry.upsert(ALICE, _endpoint("a"), "k2", "a2")

        assert first.id == second.id
        stored = registry.list_for_user(ALICE)
        assert len(stored) == 1
        assert stored[0].p256dh == "k2"

    def test_remove(self, db):
        registry = SubscriptionRegistry(db)
        registry.upsert(ALICE, _endpoint("a"), "k", "a")

        assert registry.remove(ALICE, _endpoint("a")) is True
        assert registry.remove(ALICE, _endpoint("a")) is False
        assert registry.list_for_user(ALICE) == []


class TestPushClients:
    """Tests for the fire-and-forget senders."""

    @pytest.mark.asyncio
    async def test_http_client_posts_with_anon_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        push = HttpPushClient("https://fn.example.com/push", "anon-key", client=client)

        await push.send("Oi", "x", ALICE, "message")

        request = seen[0]
        assert request.headers["Authorization"] == "Bearer anon-key"
        assert request.headers["apikey"] == "anon-key"
        assert json.loads(request.content) == {
            "title": "Oi",
            "body": "x",
            "sender_id": ALICE,
            "type": "message",
        }

    @pytest.mark.asyncio
    async def test_http_client_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        push = HttpPushClient("https://fn.example.com/push", "anon-key", client=client)

        await push.send("Oi", "x", "", "appointment")

    @pytest.mark.asyncio
    async def test_http_client_tolerates_error_status(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(500, json={"error": "Failed to fetch subscriptions"})
        ))
        push = HttpPushClient("https://fn.example.com/push", "anon-key", client=client)

        await push.send("Oi", "x", "", "appointment")

    @pytest.mark.asyncio
    async def test_local_client_swallows_dispatch_errors(self, db, subscriptions):
        db.fail_on = "push_subscriptions"
        push = LocalPushClient(_service(db, PushRecorder()))

        await push.send("Oi", "x", ALICE, "message")

    @pytest.mark.asyncio
    async def test_local_client_swallows_unexpected_errors(self, db, subscriptions, monkeypatch):
        service = _service(db, PushRecorder())

        async def explode(request):
            raise RuntimeError("boom")

        monkeypatch.setattr(service, "dispatch", explode)
        push = LocalPushClient(service)

        await push.send("Oi", "x", ALICE, "message")

    @pytest.mark.asyncio
    async def test_http_client_swallows_unexpected_errors(self):
        def handler(request):
            raise RuntimeError("boom")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        push = HttpPushClient("https://fn.example.com/push", "anon-key", client=client)

        await push.send("Oi", "x", "", "appointment")
