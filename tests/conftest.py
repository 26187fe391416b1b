"""Test configuration and fixtures for discovery tests."""

import pytest
import os
import tempfile
import yaml
from prometheus_client import REGISTRY

from discovery.config import DiscoveryConfig
from discovery.device_registry import DeviceRegistry


LISTING_TEMPLATE = """<ul>
{% for device in devices %}<li data-id="{{ device.id }}">{{ device.name }} {{ device.address }}</li>
{% endfor %}</ul>
"""


@pytest.fixture(autouse=True)
def clear_prometheus_registry():
    """Clear Prometheus registry before each test."""
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        try:
            REGISTRY.unregister(collector)
        except KeyError:
            pass  # Collector was already unregistered


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now=1700000000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def device_registry(clock):
    return DeviceRegistry(clock=clock)


@pytest.fixture
def static_root(tmp_path):
    """Static tree with a listing template for devices.example and one asset."""
    host_dir = tmp_path / 'devices.example'
    host_dir.mkdir()
    (host_dir / 'index.html').write_text(LISTING_TEMPLATE)

    assets_dir = tmp_path / 'assets'
    assets_dir.mkdir()
    (assets_dir / 'style.css').write_text('body { color: black; }\n')
    return tmp_path


@pytest.fixture
def discovery_config(static_root):
    return DiscoveryConfig(
        host='127.0.0.1',
        port=8080,
        trust_proxy=True,
        max_age=21600,
        cull_interval=3600,
        static_root=str(static_root)
    )


@pytest.fixture
def sample_discovery_config():
    """Sample YAML configuration for testing."""
    return {
        'discovery': {
            'server': {
                'host': '0.0.0.0',
                'port': 9090,
                'trust_proxy': False
            },
            'registry': {
                'max_age': 600,
                'cull_interval': 60
            },
            'static': {
                'root': '/srv/discovery/static'
            },
            'logging': {
                'level': 'debug'
            }
        }
    }


@pytest.fixture
def temp_config_file(sample_discovery_config):
    """Create a temporary configuration file."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        yaml.dump(sample_discovery_config, f)
        temp_path = f.name

    yield temp_path

    # Cleanup
    os.unlink(temp_path)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    env_vars = {
        'DISCOVERY_HOST': '10.0.0.1',
        'DISCOVERY_PORT': '8181',
        'DISCOVERY_TRUST_PROXY': 'no',
        'DISCOVERY_MAX_AGE': '120',
        'DISCOVERY_CULL_INTERVAL': '30',
        'DISCOVERY_STATIC_ROOT': '/tmp/discovery-static',
        'DISCOVERY_LOG_LEVEL': 'warning'
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars
