"""
Mapping of raw runtime strings onto the closed state and health enums.

Both functions are total: strings outside the known vocabulary are coerced
to a fallback value instead of raising.
"""
from typing import Optional

from compose_apps_exporter.models import ServiceHealth, ServiceState, ServiceStatus, ServiceRuntimeStatus

STATE_FALLBACK = ServiceState.NOT_UP
HEALTH_FALLBACK = ServiceHealth.NO_CHECK

_STATES = {state.value: state for state in ServiceState}
_HEALTHS = {health.value: health for health in ServiceHealth}


def _normalize(raw: Optional[str]) -> str:
    if raw is None:
        return ''
    return str(raw).strip().lower()


def map_state(raw: Optional[str]) -> ServiceState:
    """Map a raw container state (e.g. 'running') to a ServiceState."""
    return _STATES.get(_normalize(raw), STATE_FALLBACK)


def map_health(raw: Optional[str]) -> ServiceHealth:
    """
    Map a raw container health string to a ServiceHealth.

    An empty string means the container has no healthcheck.
    """
    return _HEALTHS.get(_normalize(raw), HEALTH_FALLBACK)


def map_status(app: str, service: str, status: ServiceRuntimeStatus) -> ServiceStatus:
    return ServiceStatus(
        app=app,
        service=service,
        state=map_state(status.state),
        health=map_health(status.health),
    )
