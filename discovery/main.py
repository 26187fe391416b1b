#!/usr/bin/env python3
import asyncio
import logging
import os
import signal
import time
from typing import Optional

from aiohttp import web
from jinja2 import TemplateError
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST

from .client_address import resolve_client_address
from .config import DiscoveryConfig, load_config
from .device_registry import DeviceRegistry
from .templates import TemplateCache, TemplateNotFoundError
from .version import get_cached_version

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CORS_METHODS = 'GET,HEAD,PUT,PATCH,POST,DELETE'


def request_hostname(request: web.Request) -> str:
    """Host header without the port"""
    host = request.host or ''
    if host.startswith('['):
        return host[1:host.find(']')] if ']' in host else host[1:]
    return host.split(':')[0]


@web.middleware
async def cors_middleware(request, handler):
    """Allow any origin, answer preflight requests directly"""
    if request.method == 'OPTIONS':
        response = web.Response(status=204)
        response.headers['Access-Control-Allow-Methods'] = CORS_METHODS
        requested_headers = request.headers.get('Access-Control-Request-Headers')
        if requested_headers:
            response.headers['Access-Control-Allow-Headers'] = requested_headers
    else:
        try:
            response = await handler(request)
        except web.HTTPException as e:
            e.headers['Access-Control-Allow-Origin'] = '*'
            raise
    response.headers['Access-Control-Allow-Origin'] = '*'
    return response


class DiscoveryServer:
    def __init__(self, config: DiscoveryConfig,
                 registry: Optional[DeviceRegistry] = None,
                 templates: Optional[TemplateCache] = None):
        self.config = config
        self.registry = registry if registry is not None else DeviceRegistry()
        self.templates = templates if templates is not None else TemplateCache(config.static_root)
        self.cull_task = None

        # Prometheus metrics
        self.registrations_total = Counter(
            'discovery_registrations_total',
            'Device registrations received'
        )

        self.requests_total = Counter(
            'discovery_requests_total',
            'Discovery requests served',
            ['format']
        )

        self.template_errors_total = Counter(
            'discovery_template_errors_total',
            'Listing templates that could not be loaded or rendered'
        )

        self.culled_devices_total = Counter(
            'discovery_culled_devices_total',
            'Devices removed for not re-registering within max_age'
        )

        self.devices_gauge = Gauge(
            'discovery_devices',
            'Devices currently held in the registry'
        )

        self.partitions_gauge = Gauge(
            'discovery_partitions',
            'Networks with at least one registered device'
        )

    def _update_gauges(self):
        stats = self.registry.stats()
        self.devices_gauge.set(stats['devices'])
        self.partitions_gauge.set(stats['partitions'])

    async def register_device(self, request):
        """Register a device under the caller's network address"""
        partition_key = resolve_client_address(request, self.config.trust_proxy)
        name = request.query.get('name', '')
        address = request.query.get('address', '')

        record = self.registry.register(partition_key, request.query.get('id'), name, address)
        self.registrations_total.inc()
        self._update_gauges()

        logger.debug(f"Registered device {record.id} ({address}) on {partition_key}")
        return web.Response(status=200)

    def _devices_for(self, request):
        partition_key = resolve_client_address(request, self.config.trust_proxy)
        return [record.to_dict() for record in self.registry.discover(partition_key)]

    async def discover_json(self, request):
        """Devices on the caller's network as JSON"""
        self.requests_total.labels(format='json').inc()
        return web.json_response({'devices': self._devices_for(request)})

    async def discover_html(self, request):
        """Devices on the caller's network rendered with the host's listing template"""
        self.requests_total.labels(format='html').inc()
        devices = self._devices_for(request)
        host = request_hostname(request)

        try:
            html = self.templates.render(host, {'devices': devices})
        except (TemplateNotFoundError, TemplateError) as e:
            self.template_errors_total.inc()
            logger.error(f"Failed to render listing for host {host!r}: {e}")
            return web.Response(status=500)

        return web.Response(text=html, content_type='text/html')

    async def health_check(self, request):
        """Health check endpoint"""
        stats = self.registry.stats()
        return web.json_response({
            'status': 'healthy',
            'version': get_cached_version(),
            'component': 'discovery',
            'devices': stats['devices'],
            'partitions': stats['partitions'],
            'timestamp': time.time()
        })

    async def metrics_endpoint(self, request):
        """Prometheus metrics endpoint"""
        response = web.Response(body=generate_latest())
        response.headers['Content-Type'] = CONTENT_TYPE_LATEST
        return response

    async def serve_asset(self, request):
        """Static files from <static_root>/assets"""
        assets_dir = os.path.realpath(self.config.assets_dir)
        full_path = os.path.realpath(os.path.join(assets_dir, request.match_info['filename']))
        if full_path.startswith(assets_dir + os.sep) and os.path.isfile(full_path):
            return web.FileResponse(full_path)
        return web.Response(status=404)

    def cull_once(self) -> int:
        removed = self.registry.cull(self.config.max_age)
        self.culled_devices_total.inc(removed)
        self._update_gauges()
        logger.info(f"Culled {removed} stale device(s)")
        return removed

    async def cull_stale_devices(self):
        """Background task removing devices that stopped re-registering"""
        while True:
            await asyncio.sleep(self.config.cull_interval)
            try:
                self.cull_once()
            except Exception as e:
                logger.error(f"Cull task failed: {e}", exc_info=True)

    async def start_background_tasks(self, app):
        self.cull_task = asyncio.create_task(self.cull_stale_devices())

    async def shutdown(self, app=None):
        """Stop the cull task; registry contents are dropped with the process"""
        if self.cull_task is None:
            return
        self.cull_task.cancel()
        try:
            await self.cull_task
        except asyncio.CancelledError:
            pass
        self.cull_task = None
        logger.info("Discovery server stopped")


async def init_app(config_path: Optional[str] = None,
                   registry: Optional[DeviceRegistry] = None,
                   templates: Optional[TemplateCache] = None,
                   config: Optional[DiscoveryConfig] = None):
    if config is None:
        config = load_config(config_path)
    server = DiscoveryServer(config, registry=registry, templates=templates)

    app = web.Application(middlewares=[cors_middleware])

    # API routes
    app.router.add_post('/', server.register_device)
    app.router.add_get('/', server.discover_html)
    app.router.add_get('/devices.json', server.discover_json)
    app.router.add_get('/health', server.health_check)
    app.router.add_get('/metrics', server.metrics_endpoint)

    # Static assets are served from the root, after every API route
    app.router.add_get('/{filename:.+}', server.serve_asset)

    app.on_startup.append(server.start_background_tasks)
    app.on_cleanup.append(server.shutdown)

    return app, server


if __name__ == '__main__':
    import sys

    config_path = sys.argv[1] if len(sys.argv) > 1 else None

    async def main():
        app, server = await init_app(config_path)
        logging.getLogger().setLevel(server.config.log_level)

        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(
            runner,
            host=server.config.host,
            port=server.config.port
        )

        await site.start()
        logger.info(f"Discovery server {get_cached_version()} listening on "
                    f"{server.config.host}:{server.config.port}")

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def signal_handler(signame):
            logger.info(f"Received {signame}, shutting down...")
            shutdown_event.set()

        # Handle SIGTERM (Docker stop) and SIGINT (Ctrl+C)
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, signal_handler, signum.name)

        try:
            await shutdown_event.wait()
        finally:
            await runner.cleanup()
            logger.info("Shutdown complete")

    asyncio.run(main())
