from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

BLOCK_HEIGHT = 'block_height'
TIME_SKEW = 'time_skew'
PEERS = 'peers'
ADDRBOOK_SIZE = 'addrbook_size'
VALIDATOR_COUNT = 'validator_count'

METRIC_NAMES = {
    BLOCK_HEIGHT: 'cosmos_block_number',
    TIME_SKEW: 'cosmos_block_time_skew',
    PEERS: 'cosmos_node_peers',
    ADDRBOOK_SIZE: 'cosmos_addrbook_size',
    VALIDATOR_COUNT: 'cosmos_validator_count',
}


class MetricStore:
    """Last-value gauges for one exporter instance.

    Each store has its own registry, so several can coexist in one process
    (tests do this) and none of the default process collectors are exported.
    """

    def __init__(self, export_addrbook_size: bool = False, export_validator_count: bool = False):
        self.registry = CollectorRegistry(auto_describe=True)

        self.block_height = Gauge(
            METRIC_NAMES[BLOCK_HEIGHT],
            'Number of the latest block in chain',
            registry=self.registry,
        )
        self.time_skew = Gauge(
            METRIC_NAMES[TIME_SKEW],
            'Difference between current timestamp and block timestamp in seconds',
            registry=self.registry,
        )
        self.peers = Gauge(
            METRIC_NAMES[PEERS],
            'Amount of chain peers: address book entries with a live connection on the p2p port',
            registry=self.registry,
        )

        self.addrbook_size = Gauge(
            METRIC_NAMES[ADDRBOOK_SIZE],
            'Number of valid entries in the node address book',
            registry=self.registry,
        ) if export_addrbook_size else None
        self.validator_count = Gauge(
            METRIC_NAMES[VALIDATOR_COUNT],
            'Number of validators in the latest validator set',
            registry=self.registry,
        ) if export_validator_count else None

        self.refresh_errors = Counter(
            'cosmos_exporter_refresh_errors',
            'Failed metric refreshes; the affected gauge keeps its previous value',
            ['metric', 'kind'],
            registry=self.registry,
        )

    def gauge(self, metric: str) -> Gauge:
        gauge = {
            BLOCK_HEIGHT: self.block_height,
            TIME_SKEW: self.time_skew,
            PEERS: self.peers,
            ADDRBOOK_SIZE: self.addrbook_size,
            VALIDATOR_COUNT: self.validator_count,
        }.get(metric)
        if gauge is None:
            raise KeyError(f'Metric "{metric}" is not exported')
        return gauge

    def set(self, metric: str, value: float) -> None:
        self.gauge(metric).set(value)

    def value(self, metric: str) -> float:
        self.gauge(metric)
        return self.registry.get_sample_value(METRIC_NAMES[metric])

    def record_error(self, metric: str, kind: str) -> None:
        self.refresh_errors.labels(metric, kind).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def error_count(self, metric: str, kind: str) -> float:
        labels = {'metric': metric, 'kind': kind}
        return self.registry.get_sample_value('cosmos_exporter_refresh_errors_total', labels) or 0.0
