#!/usr/bin/env python3
"""
Configuration for the discovery service, from a YAML file or environment variables
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from .device_registry import DEFAULT_MAX_AGE

logger = logging.getLogger(__name__)

TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass
class DiscoveryConfig:
    host: str = '0.0.0.0'
    port: int = 8080
    trust_proxy: bool = True
    max_age: int = DEFAULT_MAX_AGE
    cull_interval: int = 60 * 60  # hourly
    static_root: str = 'static'
    log_level: str = 'INFO'

    @property
    def assets_dir(self) -> str:
        return os.path.join(self.static_root, 'assets')


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def config_from_dict(data: Optional[Dict]) -> DiscoveryConfig:
    """Build a config from the ``discovery:`` section of a parsed YAML document"""
    section = (data or {}).get('discovery') or {}
    server = section.get('server') or {}
    registry = section.get('registry') or {}
    static = section.get('static') or {}
    logging_section = section.get('logging') or {}
    defaults = DiscoveryConfig()

    return DiscoveryConfig(
        host=server.get('host', defaults.host),
        port=int(server.get('port', defaults.port)),
        trust_proxy=_parse_bool(server.get('trust_proxy', defaults.trust_proxy)),
        max_age=int(registry.get('max_age', defaults.max_age)),
        cull_interval=int(registry.get('cull_interval', defaults.cull_interval)),
        static_root=static.get('root', defaults.static_root),
        log_level=str(logging_section.get('level', defaults.log_level)).upper()
    )


def config_from_env() -> DiscoveryConfig:
    defaults = DiscoveryConfig()
    port = os.getenv('DISCOVERY_PORT') or os.getenv('PORT') or defaults.port

    return DiscoveryConfig(
        host=os.getenv('DISCOVERY_HOST', defaults.host),
        port=int(port),
        trust_proxy=_parse_bool(os.getenv('DISCOVERY_TRUST_PROXY', 'true')),
        max_age=int(os.getenv('DISCOVERY_MAX_AGE', str(defaults.max_age))),
        cull_interval=int(os.getenv('DISCOVERY_CULL_INTERVAL', str(defaults.cull_interval))),
        static_root=os.getenv('DISCOVERY_STATIC_ROOT', defaults.static_root),
        log_level=os.getenv('DISCOVERY_LOG_LEVEL', defaults.log_level).upper()
    )


def load_config(config_path: Optional[str] = None) -> DiscoveryConfig:
    """Load from ``config_path`` if it exists, otherwise from the environment"""
    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config = config_from_dict(yaml.safe_load(f))
        logger.info(f"Loaded configuration from {config_path}")
        return config

    if config_path:
        logger.warning(f"Config file {config_path} not found, using environment variables")
    return config_from_env()
