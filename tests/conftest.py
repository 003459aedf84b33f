import pytest
from doubles import FakeStore
from fastapi.testclient import TestClient

from counter_service.app import create_admin_app, create_app
from counter_service.core.config import load_settings
from counter_service.services.lifecycle import build_services


@pytest.fixture
def settings():
    return load_settings(environ={"REDIS_URL": "127.0.0.1:1", "COUNTER_VERSION": "v1.2.3-test"})


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def services(settings, store):
    return build_services(settings, store=store)


@pytest.fixture
def client(services):
    app = create_app(services.counter_service, services.system_tracker)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(services):
    app = create_admin_app(services.health_registry, services.metrics_registry, services.about_info)
    with TestClient(app) as c:
        yield c
