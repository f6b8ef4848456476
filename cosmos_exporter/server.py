import asyncio
import signal
import sys
from typing import List, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST

from cosmos_exporter.client import NodeApiClient
from cosmos_exporter.collector import Collector
from cosmos_exporter.config import Settings, load_settings, parse_listen_address
from cosmos_exporter.exceptions import ConfigError
from cosmos_exporter.metrics import MetricStore


def create_app(store: MetricStore, collector: Optional[Collector] = None) -> web.Application:
    """Build the /metrics app. With a collector, every scrape refreshes first."""

    async def metrics(request: web.Request) -> web.Response:
        if collector is not None:
            await collector.refresh_all()
        return web.Response(body=store.render(), headers={'Content-Type': CONTENT_TYPE_LATEST})

    app = web.Application()
    app.router.add_get('/metrics', metrics)
    return app


async def serve(settings: Settings, stop: Optional[asyncio.Event] = None) -> int:
    """Serve /metrics until ``stop`` is set or SIGINT/SIGTERM arrives.

    Returns the process exit status; 1 means the listen address could not be bound.
    """
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    try:
        return await _serve(settings, stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def _serve(settings: Settings, stop: asyncio.Event) -> int:
    host, port = parse_listen_address(settings.listen_address)
    store = MetricStore(
        export_addrbook_size=settings.export_addrbook_size,
        export_validator_count=settings.export_validator_count,
    )
    scrape_mode = settings.refresh_mode == 'scrape'

    async with NodeApiClient(settings.api_url, settings.request_timeout, settings.retry_attempts) as client:
        collector = Collector(settings, client, store)
        runner = web.AppRunner(create_app(store, collector if scrape_mode else None))
        await runner.setup()
        try:
            try:
                await web.TCPSite(runner, host, port).start()
            except OSError as e:
                print(f'Cannot listen on {settings.listen_address}: {e}')
                return 1

            print(f'Starting web server at {settings.listen_address} ({settings.refresh_mode} mode)')
            if scrape_mode:
                await stop.wait()
            else:
                await collector.run(stop)
        finally:
            await runner.cleanup()

    print('Stopped')
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        settings = load_settings(argv)
    except ConfigError as e:
        print(f'Invalid configuration: {e}')
        sys.exit(1)

    sys.exit(asyncio.run(serve(settings)))
