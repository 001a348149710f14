"""
Unit tests for the Redis persistence engine.

The engine runs against the in-memory FakeRedis from conftest.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from errors.exceptions import (
    EngineUnavailableError,
    InvalidSessionIDError,
    SizeLimitExceededError,
)
from session.persistence import (
    SCAN_COUNT,
    RedisPersistenceEngine,
    escape_pattern,
)


class TestKeys:
    """Tests for key naming."""

    def test_key_is_prefix_and_id(self, engine):
        assert engine.get_key("ABC") == "session_ABC"

    def test_custom_prefix(self, fake_redis):
        engine = RedisPersistenceEngine(client=fake_redis, key_prefix="app:")

        assert engine.get_key("ABC") == "app:ABC"

    @pytest.mark.parametrize(
        "prefix, expected",
        [
            ("session_", "session_"),
            ("a*b", "a\\*b"),
            ("q?[x]", "q\\?\\[x\\]"),
            ("back\\slash", "back\\\\slash"),
        ],
    )
    def test_escape_pattern(self, prefix, expected):
        assert escape_pattern(prefix) == expected


class TestLoadSave:
    """Tests for load and save."""

    @pytest.mark.asyncio
    async def test_missing_key_is_not_an_error(self, engine):
        assert await engine.load("missing") == (False, b"")

    @pytest.mark.asyncio
    async def test_save_then_load(self, engine, fake_redis):
        await engine.save("ABC", b'{"k":"v"}', 3600)

        assert await engine.load("ABC") == (True, b'{"k":"v"}')
        assert fake_redis.ttls["session_ABC"] == 3600
        assert fake_redis.commands("SETEX") == [("SETEX", "session_ABC", 3600, b'{"k":"v"}')]

    @pytest.mark.asyncio
    async def test_load_decodes_str_payloads(self, engine, fake_redis):
        fake_redis.data["session_ABC"] = "text"

        assert await engine.load("ABC") == (True, b"text")

    @pytest.mark.asyncio
    async def test_empty_id_is_rejected(self, engine, fake_redis):
        with pytest.raises(InvalidSessionIDError):
            await engine.load("")
        with pytest.raises(InvalidSessionIDError):
            await engine.save("", b"{}", 60)

        assert fake_redis.calls == []

    @pytest.mark.asyncio
    async def test_size_limit_rejects_before_write(self, engine, fake_redis):
        engine.max_length = 10

        with pytest.raises(SizeLimitExceededError) as exc_info:
            await engine.save("ABC", b"x" * 11, 60)

        assert exc_info.value.size == 11
        assert exc_info.value.max_length == 10
        assert fake_redis.commands("SETEX") == []

    @pytest.mark.asyncio
    async def test_payload_at_limit_is_accepted(self, engine, fake_redis):
        engine.max_length = 10

        await engine.save("ABC", b"x" * 10, 60)

        assert fake_redis.data["session_ABC"] == b"x" * 10

    @pytest.mark.asyncio
    async def test_zero_max_length_disables_limit(self, engine):
        engine.max_length = 0
        payload = bytes(range(256)) * 35 + b"x" * 40

        await engine.save("ABC", payload, 60)

        assert len(payload) == 9000
        assert await engine.load("ABC") == (True, payload)

    @pytest.mark.asyncio
    async def test_oversized_save_leaves_record_absent(self, engine):
        engine.max_length = 100

        with pytest.raises(SizeLimitExceededError):
            await engine.save("ABC", b"x" * 200, 60)

        assert await engine.load("ABC") == (False, b"")


class TestDelete:
    """Tests for batch deletes."""

    @pytest.mark.asyncio
    async def test_delete_issues_a_single_del(self, engine, fake_redis):
        fake_redis.data.update({"session_A": b"{}", "session_B": b"{}", "session_C": b"{}"})

        await engine.delete("session_A", "session_B", "session_missing")

        assert fake_redis.commands("DEL") == [("DEL", "session_A", "session_B", "session_missing")]
        assert list(fake_redis.data) == ["session_C"]

    @pytest.mark.asyncio
    async def test_delete_without_keys_is_a_no_op(self, engine, fake_redis):
        await engine.delete()

        assert fake_redis.calls == []


class TestScanAll:
    """Tests for SCAN based enumeration."""

    @pytest.mark.asyncio
    async def test_yields_every_prefixed_key(self, engine, fake_redis):
        fake_redis.data.update({
            "session_A": b'{"n":1}',
            "session_B": b'{"n":2}',
            "other_C": b'{"n":3}',
        })

        results = [item async for item in engine.scan_all()]

        assert sorted(results) == [("session_A", b'{"n":1}'), ("session_B", b'{"n":2}')]
        assert fake_redis.commands("SCAN") == [("SCAN", "session_*", SCAN_COUNT)]

    @pytest.mark.asyncio
    async def test_empty_keyspace(self, engine):
        assert [item async for item in engine.scan_all()] == []

    @pytest.mark.asyncio
    async def test_prefix_metacharacters_are_escaped(self, fake_redis):
        engine = RedisPersistenceEngine(client=fake_redis, key_prefix="s*")

        [item async for item in engine.scan_all()]

        assert fake_redis.commands("SCAN")[0][1] == "s\\**"

    @pytest.mark.asyncio
    async def test_vanished_keys_are_skipped(self, engine, fake_redis):
        fake_redis.data.update({"session_A": b"{}", "session_B": b"{}"})
        original_get = fake_redis.get

        async def get_vanishing(key):
            if key == b"session_A":
                return None
            return await original_get(key)

        fake_redis.get = get_vanishing

        results = [item async for item in engine.scan_all()]

        assert results == [("session_B", b"{}")]

    @pytest.mark.asyncio
    async def test_scan_failure_propagates(self, engine, fake_redis):
        fake_redis.data["session_A"] = b"{}"
        fake_redis.fail_with = RedisConnectionError("connection reset")

        with pytest.raises(EngineUnavailableError):
            [item async for item in engine.scan_all()]


class TestFailures:
    """Tests for error wrapping and timeouts."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [RedisConnectionError("refused"), ResponseError("WRONGTYPE"), OSError("broken pipe")],
    )
    async def test_client_errors_are_wrapped(self, engine, fake_redis, error):
        fake_redis.fail_with = error

        with pytest.raises(EngineUnavailableError) as exc_info:
            await engine.load("ABC")

        assert exc_info.value.__cause__ is error
        assert exc_info.value.details == {"operation": "GET"}
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_save_failure_is_wrapped(self, engine, fake_redis):
        fake_redis.fail_with = RedisConnectionError("refused")

        with pytest.raises(EngineUnavailableError) as exc_info:
            await engine.save("ABC", b"{}", 60)

        assert exc_info.value.details == {"operation": "SETEX"}

    @pytest.mark.asyncio
    async def test_operation_timeout(self, fake_redis):
        engine = RedisPersistenceEngine(client=fake_redis, operation_timeout=0.01)

        async def slow_get(key):
            await asyncio.sleep(1)

        fake_redis.get = slow_get

        with pytest.raises(EngineUnavailableError, match="timed out"):
            await engine.load("ABC")

    @pytest.mark.asyncio
    async def test_requires_a_client(self):
        engine = RedisPersistenceEngine()

        with pytest.raises(RuntimeError):
            await engine.load("ABC")

    @pytest.mark.asyncio
    async def test_connect_requires_url_or_client(self):
        with pytest.raises(RuntimeError):
            await RedisPersistenceEngine().connect()

    @pytest.mark.asyncio
    async def test_connect_keeps_injected_client(self, engine, fake_redis):
        await engine.connect()

        assert engine.client is fake_redis


class TestHealth:
    """Tests for ping, TTL refresh and health checks."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply, expected", [(True, True), (b"PONG", True), ("PONG", True), (False, False), (b"NOPE", False)])
    async def test_ping_replies(self, engine, fake_redis, reply, expected):
        fake_redis.ping_result = reply

        assert await engine.ping() is expected

    @pytest.mark.asyncio
    async def test_ping_failure_raises(self, engine, fake_redis):
        fake_redis.fail_with = RedisConnectionError("refused")

        with pytest.raises(EngineUnavailableError):
            await engine.ping()

    @pytest.mark.asyncio
    async def test_health_check_never_raises(self, engine, fake_redis):
        assert await engine.health_check() is True

        fake_redis.fail_with = RedisConnectionError("refused")

        assert await engine.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_without_client(self):
        assert await RedisPersistenceEngine().health_check() is False

    @pytest.mark.asyncio
    async def test_refresh_ttl(self, engine, fake_redis):
        fake_redis.data["session_ABC"] = b"{}"

        assert await engine.refresh_ttl("ABC", 120) is True
        assert fake_redis.ttls["session_ABC"] == 120
        assert await engine.refresh_ttl("missing", 120) is False

    @pytest.mark.asyncio
    async def test_disconnect_closes_client(self, engine, fake_redis):
        await engine.disconnect()

        assert fake_redis.closed is True
        assert engine.client is None
