from counter_service.core.types import ServerStatus


def test_about_reports_version_and_hostname(admin_client):
    body = admin_client.get("/about").json()
    assert body["name"] == "counter"
    assert body["version"] == "v1.2.3-test"
    assert body["hostname"]


def test_live_is_always_healthy(admin_client):
    response = admin_client.get("/live")
    assert response.status_code == 200
    assert response.json() == {}


def test_ready_before_running(admin_client):
    response = admin_client.get("/ready?full=1")
    assert response.status_code == 503
    assert response.json() == {"http": "HTTP server is starting", "redis": "no result yet"}


def test_ready_body_is_empty_without_full(admin_client):
    assert admin_client.get("/ready").json() == {}


def test_ready_reports_http_ok_when_running(admin_client, services):
    services.status_tracker.advance(ServerStatus.RUNNING)

    report = admin_client.get("/ready?full=1").json()

    assert report["http"] == "OK"


def test_ready_when_all_checks_pass(admin_client, services):
    async def ok():
        return None

    services.status_tracker.advance(ServerStatus.RUNNING)
    services.health_registry.add_readiness_check("redis", ok)

    response = admin_client.get("/ready?full=1")

    assert response.status_code == 200
    assert response.json() == {"http": "OK", "redis": "OK"}


def test_metrics_exposes_healthcheck_status(admin_client):
    admin_client.get("/ready")

    response = admin_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'counter_healthcheck_status{check="http"} 1.0' in response.text


def test_unknown_admin_path_renders_error_body(admin_client):
    response = admin_client.get("/healthz")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
