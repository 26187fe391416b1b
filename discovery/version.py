#!/usr/bin/env python3
"""
Version utilities for the discovery service
"""
import os
import logging

logger = logging.getLogger(__name__)


def get_version():
    """Read the version from the VERSION file at the project root"""
    version_file = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'VERSION')
    try:
        with open(version_file, 'r') as f:
            version = f.read().strip()
    except OSError:
        logger.warning(f"VERSION file not found at {version_file}")
        return "unknown"
    logger.debug(f"Read version {version} from {version_file}")
    return version


_cached_version = None


def get_cached_version():
    """Get cached version or read from file if not cached"""
    global _cached_version
    if _cached_version is None:
        _cached_version = get_version()
    return _cached_version
