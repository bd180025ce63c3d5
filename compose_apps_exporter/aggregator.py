"""
Metric aggregation and rendering.

Turns mapped service statuses into the complete gauge sample set and
renders it in the Prometheus exposition format.
"""
from collections import Counter
from typing import Dict, Iterable, List, Sequence

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from compose_apps_exporter.errors import ParseError, RuntimeQueryError
from compose_apps_exporter.models import MetricSample, ServiceHealth, ServiceState, ServiceStatus

SERVICE_STATE_METRIC = 'compose_service_state'
SERVICE_HEALTH_METRIC = 'compose_service_health'
NBRO_CONFIGS_METRIC = 'compose_apps_nbro_configs'
SCRAPE_ERRORS_METRIC = 'compose_apps_scrape_errors'

SERVICE_LABELS = ('compose_app', 'compose_service', 'state')

METRIC_HELP = {
    SERVICE_STATE_METRIC: "Whether the docker compose service's container is in the given state",
    SERVICE_HEALTH_METRIC: "Whether the docker compose service's health is the given value",
    NBRO_CONFIGS_METRIC: "Number of docker-compose apps",
    SCRAPE_ERRORS_METRIC: "Number of compose apps skipped or degraded during this scrape",
}

ERROR_TYPES = {
    ParseError: 'parse',
    RuntimeQueryError: 'runtime_query',
}


def _one_hot(metric: str, app: str, service: str, values: Iterable, active) -> List[MetricSample]:
    return [
        MetricSample(
            name=metric,
            labels=(('compose_app', app), ('compose_service', service), ('state', value.value)),
            value=1 if value is active else 0,
        )
        for value in values
    ]


def aggregate(
    statuses: Iterable[ServiceStatus],
    config_count: int,
    errors: Sequence[Exception] = (),
) -> List[MetricSample]:
    """
    Build the full metric sample set for one scrape.

    Args:
        statuses: Mapped status of every (application, service) pair
        config_count: Number of compose files matched by discovery
        errors: Scoped errors absorbed during the scrape

    Returns:
        One state sample per (app, service, state), one health sample per
        (app, service, health value), the config count and the error counts
    """
    samples: List[MetricSample] = []

    for status in statuses:
        samples.extend(_one_hot(SERVICE_STATE_METRIC, status.app, status.service, ServiceState, status.state))
        samples.extend(_one_hot(SERVICE_HEALTH_METRIC, status.app, status.service, ServiceHealth, status.health))

    samples.append(MetricSample(name=NBRO_CONFIGS_METRIC, labels=(), value=config_count))

    counts = Counter()
    for error in errors:
        for error_class, error_type in ERROR_TYPES.items():
            if isinstance(error, error_class):
                counts[error_type] += 1
    for error_type in sorted(ERROR_TYPES.values()):
        samples.append(MetricSample(
            name=SCRAPE_ERRORS_METRIC,
            labels=(('error_type', error_type),),
            value=counts[error_type],
        ))

    return samples


class SampleCollector(Collector):
    """Exposes a fixed list of MetricSamples as gauge families."""

    def __init__(self, samples: Sequence[MetricSample]):
        self.samples = samples

    def collect(self):
        families: Dict[str, GaugeMetricFamily] = {}
        for sample in self.samples:
            family = families.get(sample.name)
            if family is None:
                family = GaugeMetricFamily(
                    sample.name,
                    METRIC_HELP.get(sample.name, sample.name),
                    labels=[key for key, _ in sample.labels],
                )
                families[sample.name] = family
            family.add_metric([value for _, value in sample.labels], sample.value)

        # Families for per-service metrics are emitted even with no services
        for name in (SERVICE_STATE_METRIC, SERVICE_HEALTH_METRIC):
            if name not in families:
                families[name] = GaugeMetricFamily(name, METRIC_HELP[name], labels=list(SERVICE_LABELS))

        yield from families.values()


def render_exposition(samples: Sequence[MetricSample]) -> bytes:
    """Render samples in the Prometheus text format using a private registry."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SampleCollector(samples))
    return generate_latest(registry)
