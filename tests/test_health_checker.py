import asyncio

import pytest
from prometheus_client import CollectorRegistry

from counter_service.core.types import ServerStatus
from counter_service.services.health_checker import (
    HEALTHY,
    NO_RESULT_YET,
    AsyncCheck,
    HealthCheckFailed,
    HealthRegistry,
    http_status_check,
    tcp_dial_check,
)
from counter_service.services.state_tracker import StatusTracker


class _Flaky:
    def __init__(self):
        self.healthy = False
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if not self.healthy:
            raise HealthCheckFailed("store unreachable")


def _gauge(registry: CollectorRegistry, check: str):
    return registry.get_sample_value("counter_healthcheck_status", {"check": check})


@pytest.mark.asyncio
async def test_http_check_follows_server_status():
    registry = CollectorRegistry()
    tracker = StatusTracker()
    health = HealthRegistry(registry)
    health.add_readiness_check("http", http_status_check(tracker))

    healthy, report = await health.ready()
    assert not healthy
    assert report == {"http": "HTTP server is starting"}
    assert _gauge(registry, "http") == 1

    tracker.advance(ServerStatus.RUNNING)
    healthy, report = await health.ready()
    assert healthy
    assert report == {"http": HEALTHY}
    assert _gauge(registry, "http") == 0

    tracker.advance(ServerStatus.SHUTTING_DOWN)
    healthy, report = await health.ready()
    assert not healthy
    assert report["http"] == "HTTP server is shutting down"


@pytest.mark.asyncio
async def test_liveness_ignores_readiness_checks():
    health = HealthRegistry(CollectorRegistry())
    health.add_readiness_check("http", http_status_check(StatusTracker()))

    healthy, report = await health.live()

    assert healthy
    assert report == {}


@pytest.mark.asyncio
async def test_async_check_reports_cached_result():
    flaky = _Flaky()
    check = AsyncCheck(flaky, interval=60, name="redis")

    with pytest.raises(HealthCheckFailed, match=NO_RESULT_YET):
        await check()

    await check.run_once()
    with pytest.raises(HealthCheckFailed, match="store unreachable"):
        await check()

    flaky.healthy = True
    # the cached failure is reported until the next run completes
    with pytest.raises(HealthCheckFailed):
        await check()

    await check.run_once()
    await check()
    assert check.last_error is None


@pytest.mark.asyncio
async def test_async_check_background_task_reruns_periodically():
    flaky = _Flaky()
    flaky.healthy = True
    check = AsyncCheck(flaky, interval=0.01, name="redis")

    check.start()
    try:
        for _ in range(100):
            if flaky.calls >= 3:
                break
            await asyncio.sleep(0.01)
    finally:
        await check.stop()

    assert flaky.calls >= 3
    await check()


@pytest.mark.asyncio
async def test_tcp_dial_check_succeeds_against_listening_socket():
    server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        await tcp_dial_check(f"127.0.0.1:{port}", timeout=1.0)()
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_tcp_dial_check_fails_when_nothing_listens():
    server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    with pytest.raises(HealthCheckFailed, match="dial tcp"):
        await tcp_dial_check(f"127.0.0.1:{port}", timeout=1.0)()
