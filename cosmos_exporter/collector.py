import asyncio
import time
import traceback
from contextlib import contextmanager
from typing import Awaitable, Callable, Dict, Iterator, Set

from cosmos_exporter.chain import parse_height, time_skew
from cosmos_exporter.client import NodeApiClient
from cosmos_exporter.config import Settings
from cosmos_exporter.exceptions import ExporterError
from cosmos_exporter.metrics import (
    ADDRBOOK_SIZE,
    BLOCK_HEIGHT,
    PEERS,
    TIME_SKEW,
    VALIDATOR_COUNT,
    MetricStore,
)
from cosmos_exporter.peers import load_addrbook, observed_peers, reconcile

Refresh = Callable[[], Awaitable[None]]


class Collector:
    """Refreshes each gauge from the node.

    Every refresh handles its own failures: the gauge keeps its previous value,
    the failure is counted in the store, and the other gauges are untouched.
    """

    def __init__(
        self,
        settings: Settings,
        client: NodeApiClient,
        store: MetricStore,
        clock: Callable[[], int] = time.time_ns,
        connections: Callable[[int], Set[str]] = observed_peers,
    ):
        self.settings = settings
        self.client = client
        self.store = store
        self.clock = clock
        self.connections = connections

    @contextmanager
    def _guard(self, metric: str) -> Iterator[None]:
        try:
            yield
        except ExporterError as e:
            print(f'{metric}: {e.kind} error: {e}')
            self.store.record_error(metric, e.kind)
        except Exception:
            traceback.print_exc()
            self.store.record_error(metric, 'unexpected')

    def refreshers(self) -> Dict[str, Refresh]:
        refreshers = {
            BLOCK_HEIGHT: self.refresh_block_height,
            TIME_SKEW: self.refresh_time_skew,
            PEERS: self.refresh_peers,
        }
        if self.store.addrbook_size is not None:
            refreshers[ADDRBOOK_SIZE] = self.refresh_addrbook_size
        if self.store.validator_count is not None:
            refreshers[VALIDATOR_COUNT] = self.refresh_validator_count
        return refreshers

    async def refresh_block_height(self) -> None:
        with self._guard(BLOCK_HEIGHT):
            status = await self.client.latest_block()
            height = parse_height(status.height)
            self.store.set(BLOCK_HEIGHT, height)
            print('block height:', status.height)

    async def refresh_time_skew(self) -> None:
        with self._guard(TIME_SKEW):
            status = await self.client.latest_block()
            skew = time_skew(status.time, self.clock())
            self.store.set(TIME_SKEW, skew)
            print(f'time skew: {skew:.3f}s ({status.time})')

    async def refresh_peers(self) -> None:
        with self._guard(PEERS):
            observed = await asyncio.to_thread(self.connections, self.settings.peer_port)
            expected = await asyncio.to_thread(load_addrbook, self.settings.addrbook_path)
            count = reconcile(observed, expected)
            self.store.set(PEERS, count)
            print(f'peers: {count} of {len(expected)} connected')

    async def refresh_addrbook_size(self) -> None:
        with self._guard(ADDRBOOK_SIZE):
            expected = await asyncio.to_thread(load_addrbook, self.settings.addrbook_path)
            self.store.set(ADDRBOOK_SIZE, len(expected))
            print('address book size:', len(expected))

    async def refresh_validator_count(self) -> None:
        with self._guard(VALIDATOR_COUNT):
            validators = await self.client.validator_set()
            self.store.set(VALIDATOR_COUNT, len(validators))
            print('validators:', len(validators))

    async def refresh_all(self) -> None:
        """Refresh every gauge concurrently and wait for all of them."""
        await asyncio.gather(*(refresh() for refresh in self.refreshers().values()))

    async def run(self, stop: asyncio.Event) -> None:
        """Run one background loop per gauge until ``stop`` is set."""
        await asyncio.gather(*(
            self._loop(refresh, stop)
            for refresh in self.refreshers().values()
        ))

    async def _loop(self, refresh: Refresh, stop: asyncio.Event) -> None:
        while not stop.is_set():
            await refresh()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.interval)
            except asyncio.TimeoutError:
                pass
