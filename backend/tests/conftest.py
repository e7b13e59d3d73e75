import pytest
from fastapi.testclient import TestClient


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    from gsu_cloud.config import Settings

    return Settings(storage_dir=str(tmp_path / "captures"))


@pytest.fixture
def app(settings, clock):
    from gsu_cloud.main import create_app

    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def cloud(app):
    return app.state.cloud
