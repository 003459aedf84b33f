import pytest
from doubles import FakeRedisClient
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from counter_service.core.errors import ConfigError, StoreError, StoreErrorKind
from counter_service.core.config import load_settings
from counter_service.services.store import RedisCounterStore, create_redis_client, split_address


@pytest.mark.asyncio
async def test_increment_returns_new_value():
    store = RedisCounterStore(FakeRedisClient(), "localhost:6379")
    assert await store.increment("counter.next.a") == 1
    assert await store.increment("counter.next.a") == 2
    assert await store.increment("counter.next.b") == 1


@pytest.mark.asyncio
async def test_transport_failure_is_unavailable():
    store = RedisCounterStore(FakeRedisClient(RedisConnectionError("Connection refused")), "localhost:6379")
    with pytest.raises(StoreError) as exc_info:
        await store.increment("counter.next.a")
    assert exc_info.value.kind == StoreErrorKind.UNAVAILABLE
    assert "Connection refused" in exc_info.value.message


@pytest.mark.asyncio
async def test_rejected_operation_is_operation_failed():
    error = ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
    store = RedisCounterStore(FakeRedisClient(error), "localhost:6379")
    with pytest.raises(StoreError) as exc_info:
        await store.increment("counter.next.a")
    assert exc_info.value.kind == StoreErrorKind.OPERATION_FAILED


@pytest.mark.asyncio
async def test_close_releases_the_pool():
    client = FakeRedisClient()
    store = RedisCounterStore(client)
    await store.close()
    assert client.closed


@pytest.mark.parametrize("address,expected", [
    ("localhost:6379", ("localhost", 6379)),
    ("redis", ("redis", 6379)),
    ("10.0.0.5:6380", ("10.0.0.5", 6380)),
    ("[::1]:6379", ("::1", 6379)),
    ("redis://user:pw@cache:6390/1", ("cache", 6390)),
])
def test_split_address(address, expected):
    assert split_address(address) == expected


def test_split_address_rejects_bad_port():
    with pytest.raises(ConfigError):
        split_address("localhost:abc")


def test_client_uses_configured_connection():
    settings = load_settings(environ={"REDIS_URL": "cache:6390", "REDIS_DB": "3", "REDIS_PW": "pw"})
    client = create_redis_client(settings["redis"])
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache"
    assert kwargs["port"] == 6390
    assert kwargs["db"] == 3
    assert kwargs["password"] == "pw"
