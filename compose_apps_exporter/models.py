"""
Data structures shared by the scrape pipeline.

Every object here is built at the start of a scrape and dropped at its end;
nothing is cached between scrapes.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple


class ServiceState(str, Enum):
    """Lifecycle phase of a service container"""
    NOT_UP = "not_up"          # No container exists for the service
    CREATED = "created"
    RESTARTING = "restarting"
    RUNNING = "running"
    REMOVING = "removing"
    PAUSED = "paused"
    EXITED = "exited"
    DEAD = "dead"


class ServiceHealth(str, Enum):
    """Health-check outcome of a service container"""
    NOT_UP = "not_up"          # No container exists for the service
    NO_CHECK = "no_check"      # Container has no healthcheck configured
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ComposeApplication:
    """
    One compose file and the services it declares.

    Attributes:
        name: Compose project name
        path: Absolute path of the compose file
        services: Declared service names in file order
        container_names: Explicit container_name per service, where declared
    """
    name: str
    path: Path
    services: Tuple[str, ...]
    container_names: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ServiceRuntimeStatus:
    """Raw state and health strings reported by the runtime for one service."""
    state: str
    health: str

    @classmethod
    def not_up(cls) -> 'ServiceRuntimeStatus':
        return cls(state=ServiceState.NOT_UP.value, health=ServiceHealth.NOT_UP.value)


@dataclass(frozen=True)
class ServiceStatus:
    """Mapped state and health of one service within one application."""
    app: str
    service: str
    state: ServiceState
    health: ServiceHealth


@dataclass(frozen=True)
class MetricSample:
    """A single gauge sample: metric name, ordered label pairs and value."""
    name: str
    labels: Tuple[Tuple[str, str], ...]
    value: float

    def label_dict(self) -> Dict[str, str]:
        return dict(self.labels)


@dataclass
class ScrapeResult:
    """
    Outcome of one scrape.

    Attributes:
        samples: Complete metric sample set
        config_count: Number of compose files matched by discovery
        errors: Scoped errors absorbed during the scrape
        duration_seconds: Wall-clock time spent in the scrape
    """
    samples: List[MetricSample]
    config_count: int
    errors: List[Exception] = field(default_factory=list)
    duration_seconds: Optional[float] = None
