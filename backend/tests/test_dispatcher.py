"""Tests for the broadcast dispatch engine."""
import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from pushrelay.exceptions import IOFailure, NoTargetsResolved, UpstreamUnavailable, ValidationError
from pushrelay.schemas.notice import NoticeRequest, NoticeStatus
from pushrelay.services.crypto import CryptoEngine
from pushrelay.services.dispatcher import DispatchEngine, build_payload, encode_payload
from pushrelay.services.upstream_client import UpstreamPushClient

from conftest import IV_16, SECRET_32, make_device


@pytest.fixture
def engine(store, upstream):
    return DispatchEngine(store, upstream)


async def add_devices(store, *devices):
    for device in devices:
        await store.upsert_device(device)


class TestPayload:

    def test_optional_fields_omitted_when_empty(self):
        payload = build_payload(NoticeRequest(title="t", body="b", icon="  "))
        assert "icon" not in payload
        assert "image" not in payload
        assert payload["body"] == "b"

    def test_optional_fields_included(self):
        payload = build_payload(NoticeRequest(body="b", icon="http://i", image="http://m"))
        assert payload["icon"] == "http://i"
        assert payload["image"] == "http://m"

    def test_encoding_is_canonical(self):
        encoded = encode_payload({"title": "é", "body": "x"})
        assert encoded == '{"body":"x","title":"é"}'.encode("utf-8")


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_empty_body_has_no_side_effects(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"))
        with pytest.raises(ValidationError):
            await engine.broadcast(NoticeRequest(title="t", body="   "))
        assert fake_upstream.pushes == []
        assert await store.list_logs() == []

    @pytest.mark.asyncio
    async def test_without_upstream(self, store):
        engine = DispatchEngine(store, None)
        with pytest.raises(UpstreamUnavailable):
            await engine.broadcast(NoticeRequest(body="hi"))

    @pytest.mark.asyncio
    async def test_all_active_devices(self, engine, store, fake_upstream):
        await add_devices(
            store,
            make_device("a"),
            make_device("b"),
            make_device("c", secret="bad-secret"),
            make_device("d", status="STOPPED"),
        )

        summary, results = await engine.broadcast(NoticeRequest(title="hello", body="world", group="g1"))

        assert summary.send_num == 3
        assert summary.success_num == 2
        assert len(results) == 3
        failed = [r for r in results if r.status == NoticeStatus.FAILED]
        assert [r.device_key for r in failed] == ["key-c"]
        assert {key for key, _, _ in fake_upstream.pushes} == {"key-a", "key-b"}

        logs = await store.list_logs()
        assert len(logs) == 3
        assert {log.status for log in logs} == {"SUCCESS", "FAILED"}
        assert all(log.group == "g1" and log.title == "hello" for log in logs)
        assert {log.url for log in logs} == {
            "http://upstream.test/key-a", "http://upstream.test/key-b", "http://upstream.test/key-c",
        }

    @pytest.mark.asyncio
    async def test_ciphertext_decrypts_to_payload(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"))
        await engine.broadcast(NoticeRequest(title="t", body="b", url="http://x", icon=""))

        key, body, token = fake_upstream.pushes[0]
        assert token == "upstream-token"
        assert body["iv"] == IV_16
        plaintext = CryptoEngine().decrypt(body["ciphertext"], SECRET_32, IV_16)
        payload = json.loads(plaintext)
        assert payload == {"title": "t", "subtitle": "", "body": "b", "group": "", "url": "http://x"}

    @pytest.mark.asyncio
    async def test_explicit_keys_with_unknown(self, engine, store):
        await add_devices(store, make_device("a"), make_device("b"))

        summary, results = await engine.broadcast(NoticeRequest(body="hi", device_keys=["missing", "key-a"]))

        assert summary.send_num == 1
        assert summary.success_num == 1
        assert len(results) == 2
        assert results[0].device_key == "missing"
        assert results[0].status == NoticeStatus.FAILED
        assert results[1].device_key == "key-a"
        assert results[1].status == NoticeStatus.SUCCESS
        # Lookup failures are not logged
        assert len(await store.list_logs()) == 1

    @pytest.mark.asyncio
    async def test_explicit_keys_include_stopped_device(self, engine, store):
        await add_devices(store, make_device("a", status="STOPPED"))
        summary, _ = await engine.broadcast(NoticeRequest(body="hi", device_keys=["key-a"]))
        assert summary.success_num == 1

    @pytest.mark.asyncio
    async def test_repeated_keys_are_sent_once(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"))
        summary, results = await engine.broadcast(NoticeRequest(body="hi", device_keys=["key-a", "key-a"]))
        assert summary.send_num == 1
        assert len(results) == 1
        assert len(fake_upstream.pushes) == 1

    @pytest.mark.asyncio
    async def test_no_targets_resolved(self, engine, store):
        with pytest.raises(NoTargetsResolved) as exc_info:
            await engine.broadcast(NoticeRequest(body="hi", device_keys=["x", "y"]))
        assert [r.device_key for r in exc_info.value.results] == ["x", "y"]
        assert all(r.status == NoticeStatus.FAILED for r in exc_info.value.results)

    @pytest.mark.asyncio
    async def test_no_active_devices(self, engine, store):
        await add_devices(store, make_device("a", status="STOPPED"))
        with pytest.raises(NoTargetsResolved) as exc_info:
            await engine.broadcast(NoticeRequest(body="hi"))
        assert exc_info.value.results == []

    @pytest.mark.asyncio
    async def test_upstream_rejection_message_is_kept(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"))
        fake_upstream.push_codes["key-a"] = 400

        summary, results = await engine.broadcast(NoticeRequest(body="hi"))

        assert summary.success_num == 0
        assert results[0].status == NoticeStatus.FAILED
        assert results[0].message == "failed to push: device unregistered"
        logs = await store.list_logs()
        assert logs[0].result == "failed to push: device unregistered"

    @pytest.mark.asyncio
    async def test_http_failure_isolated(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"), make_device("b"))
        fake_upstream.http_errors.add("key-a")

        summary, results = await engine.broadcast(NoticeRequest(body="hi"))

        assert summary.send_num == 2
        assert summary.success_num == 1
        by_key = {r.device_key: r for r in results}
        assert by_key["key-a"].status == NoticeStatus.FAILED
        assert "500" in by_key["key-a"].message
        assert by_key["key-b"].status == NoticeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_device_without_key_fails(self, engine, store, fake_upstream):
        await add_devices(store, make_device("a"))
        await store.upsert_device(make_device("b").model_copy(update={"key": ""}))

        summary, results = await engine.broadcast(NoticeRequest(body="hi"))

        assert summary.send_num == 2
        assert summary.success_num == 1
        assert len(fake_upstream.pushes) == 1
        assert len(await store.list_logs()) == 2

    @pytest.mark.asyncio
    async def test_log_failure_does_not_change_outcome(self, engine, store):
        await add_devices(store, make_device("a"))
        with patch.object(store, "append_log", AsyncMock(side_effect=IOFailure("disk full"))):
            summary, results = await engine.broadcast(NoticeRequest(body="hi"))
        assert summary.success_num == 1
        assert results[0].status == NoticeStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_max_concurrency_is_respected(self, store):
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, json={"code": 200, "message": "success"})

        client = UpstreamPushClient("http://upstream.test", transport=httpx.MockTransport(handler))
        await add_devices(store, *(make_device(f"d{i}") for i in range(6)))
        engine = DispatchEngine(store, client, max_concurrency=2)

        summary, _ = await engine.broadcast(NoticeRequest(body="hi"))

        assert summary.success_num == 6
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_caller_timeout_lets_fanout_finish(self, store):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(200, json={"code": 200, "message": "success"})

        client = UpstreamPushClient("http://upstream.test", transport=httpx.MockTransport(handler))
        await add_devices(store, make_device("a"), make_device("b"))
        engine = DispatchEngine(store, client)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(engine.broadcast(NoticeRequest(body="hi")), timeout=0.05)
        # The abandoned fan-out stays referenced by the engine
        assert len(engine._inflight) == 1

        release.set()
        for _ in range(50):
            if not engine._inflight:
                break
            await asyncio.sleep(0.01)
        assert not engine._inflight
        logs = await store.list_logs()
        assert len(logs) == 2
        assert {log.status for log in logs} == {"SUCCESS"}
