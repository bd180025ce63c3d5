"""
Pytest configuration and shared fixtures
"""
import pytest

from compose_apps_exporter.config import ExporterConfig
from tests.fixtures.runtime import FakeQuerier, write_compose_file


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring a real docker daemon and compose plugin"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running"
    )


@pytest.fixture
def compose_root(tmp_path):
    """Directory holding one sub-directory per compose app"""
    root = tmp_path / "compose-apps"
    root.mkdir()
    return root


@pytest.fixture
def make_app(compose_root):
    """Factory writing <compose_root>/<name>/docker-compose.yml"""
    def _make_app(name, services=None, content=None, filename="docker-compose.yml"):
        return write_compose_file(compose_root / name, services=services, content=content, filename=filename)
    return _make_app


@pytest.fixture
def make_config(compose_root):
    """Factory for an ExporterConfig pointed at compose_root"""
    def _make_config(**overrides):
        values = {'compose_configs_glob': [str(compose_root / "*")]}
        values.update(overrides)
        return ExporterConfig(**values)
    return _make_config


@pytest.fixture
def fake_querier():
    """Runtime querier that reports every service as not started"""
    return FakeQuerier()
