#!/usr/bin/env python3
"""
Per-host listing templates.

Each host name served by the discovery service gets its own
``<root>/<host>/index.html``. Sources are read on first use and kept for
the life of the process.
"""
import logging
import os
import threading
from typing import Any, Dict, Optional

from jinja2 import Environment, Template, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATE_NAME = 'index.html'


class TemplateNotFoundError(LookupError):
    """No usable listing template for a host"""

    def __init__(self, host: str, path: Optional[str] = None):
        self.host = host
        self.path = path
        detail = path or 'invalid host name'
        super().__init__(f"No template for host {host!r} ({detail})")


class TemplateCache:
    def __init__(self, root: str):
        self.root = root
        self._sources: Dict[str, str] = {}
        self._compiled: Dict[str, Template] = {}
        self._lock = threading.Lock()
        self._env = Environment(
            autoescape=select_autoescape(default_for_string=True, default=True),
            keep_trailing_newline=True
        )

    def _template_path(self, host: str) -> str:
        if not host or host.startswith('.') or '/' in host or '\\' in host:
            raise TemplateNotFoundError(host)
        return os.path.join(self.root, host, TEMPLATE_NAME)

    def get_source(self, host: str) -> str:
        """Template source for ``host``, loaded lazily and cached"""
        with self._lock:
            cached = self._sources.get(host)
        if cached is not None:
            return cached

        path = self._template_path(host)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                source = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise TemplateNotFoundError(host, path) from e

        logger.debug(f"Loaded template for {host} from {path}")
        with self._lock:
            self._sources[host] = source
        return source

    def get_template(self, host: str) -> Template:
        """Compiled template for ``host``; syntax errors are raised and not cached"""
        with self._lock:
            cached = self._compiled.get(host)
        if cached is not None:
            return cached

        template = self._env.from_string(self.get_source(host))
        with self._lock:
            self._compiled[host] = template
        return template

    def render(self, host: str, context: Dict[str, Any]) -> str:
        return self.get_template(host).render(**context)

    def clear(self):
        with self._lock:
            self._sources.clear()
            self._compiled.clear()
