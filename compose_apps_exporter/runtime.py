"""
Container runtime access.

The scrape pipeline talks to the runtime only through RuntimeStatusQuerier,
so tests can substitute a fake. DockerComposeQuerier shells out to the
`docker compose` CLI once per compose project.
"""
import json
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from compose_apps_exporter.errors import RuntimeQueryError, RuntimeUnavailableError
from compose_apps_exporter.models import ComposeApplication, ServiceRuntimeStatus

logger = logging.getLogger(__name__)

# stderr of `docker compose` when the compose plugin is not installed
_MISSING_PLUGIN_MARKERS = (
    "is not a docker command",
    "unknown command: docker compose",
)


class RuntimeStatusQuerier(ABC):
    """Retrieves per-service runtime status for one compose application."""

    def ensure_available(self) -> None:
        """
        Check the runtime can be invoked at all.

        Raises:
            RuntimeUnavailableError: If the runtime is missing
        """

    @abstractmethod
    def query(self, application: ComposeApplication) -> Dict[str, ServiceRuntimeStatus]:
        """
        Query the runtime for every service declared by an application.

        Args:
            application: Parsed compose application

        Returns:
            Exactly one status per declared service name. Services without a
            container get a not_up/not_up status.

        Raises:
            RuntimeUnavailableError: If the runtime cannot be executed
            RuntimeQueryError: If the query for this project fails
        """


class DockerComposeQuerier(RuntimeStatusQuerier):
    """Queries service status through `docker compose ps`."""

    def __init__(self, binary: str = 'docker', timeout: float = 10.0):
        """
        Args:
            binary: Docker CLI executable name or path
            timeout: Seconds to wait for one project's query
        """
        self.binary = binary
        self.timeout = timeout

    def ensure_available(self) -> None:
        if shutil.which(self.binary) is None:
            raise RuntimeUnavailableError(
                f"Container runtime '{self.binary}' not found on PATH (is docker installed?)"
            )

    def build_command(self, application: ComposeApplication) -> List[str]:
        return [
            self.binary, 'compose',
            '-f', str(application.path),
            '-p', application.name,
            'ps', '--all', '--format', 'json',
        ]

    def query(self, application: ComposeApplication) -> Dict[str, ServiceRuntimeStatus]:
        containers = self._run_ps(application)
        return match_services(application, containers)

    def _run_ps(self, application: ComposeApplication) -> List[Dict[str, Any]]:
        command = self.build_command(application)
        cmd_str = ' '.join(command)
        logger.debug(f"Running `{cmd_str}`")

        try:
            result = subprocess.run(
                command,
                cwd=str(application.path.parent),
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise RuntimeUnavailableError(
                f"Failed to execute `{cmd_str}` (is docker installed?): {e}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeQueryError(
                application.name, f"`{cmd_str}` timed out after {self.timeout}s", application.path
            ) from e
        except OSError as e:
            # PermissionError, ENOEXEC and friends
            raise RuntimeUnavailableError(f"Failed to execute `{cmd_str}`: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or b'').decode('utf-8', errors='replace').strip()
            if any(marker in stderr for marker in _MISSING_PLUGIN_MARKERS):
                raise RuntimeUnavailableError(f"docker compose plugin unavailable: {stderr}")
            raise RuntimeQueryError(
                application.name,
                f"`{cmd_str}` failed with status code {result.returncode}: {stderr}",
                application.path,
            )

        try:
            return parse_ps_output((result.stdout or b'').decode('utf-8'))
        except ValueError as e:
            # UnicodeDecodeError and json.JSONDecodeError are both ValueErrors
            raise RuntimeQueryError(
                application.name, f"Failed to parse `{cmd_str}` output: {e}", application.path
            ) from e


def parse_ps_output(output: str) -> List[Dict[str, Any]]:
    """
    Decode `docker compose ps --format json` output.

    Older compose releases print one JSON array, newer ones print one JSON
    object per line. Both are accepted.

    Raises:
        ValueError: If the output is not one of those shapes
    """
    text = (output or '').strip()
    if not text:
        return []

    if text.startswith('['):
        containers = json.loads(text)
    else:
        containers = [json.loads(line) for line in text.splitlines() if line.strip()]

    if not isinstance(containers, list) or not all(isinstance(c, dict) for c in containers):
        raise ValueError("expected a list of container objects")
    return containers


def match_services(
    application: ComposeApplication,
    containers: List[Dict[str, Any]],
) -> Dict[str, ServiceRuntimeStatus]:
    """
    Assign one runtime status to each declared service.

    Containers are matched by their `Service` field first and by the
    declared container_name second. For scaled services the container that
    sorts first by name wins. Containers of undeclared services are ignored.
    """
    by_service: Dict[str, List[Dict[str, Any]]] = {}
    by_name: Dict[str, Dict[str, Any]] = {}
    for container in containers:
        by_service.setdefault(str(container.get('Service', '')), []).append(container)
        by_name[str(container.get('Name', ''))] = container

    statuses: Dict[str, ServiceRuntimeStatus] = {}
    for service in application.services:
        candidates = by_service.get(service)
        if not candidates:
            container_name = application.container_names.get(service)
            candidates = [by_name[container_name]] if container_name in by_name else []

        if not candidates:
            statuses[service] = ServiceRuntimeStatus.not_up()
            continue

        container = sorted(candidates, key=lambda c: str(c.get('Name', '')))[0]
        statuses[service] = ServiceRuntimeStatus(
            state=str(container.get('State') or ''),
            health=str(container.get('Health') or ''),
        )

    return statuses
