"""
One scrape, end to end.

Discovery -> compose file parsing -> runtime queries (bounded thread pool)
-> state mapping -> aggregation. Each call builds all of its state from
scratch, so overlapping scrapes share nothing mutable.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from compose_apps_exporter.aggregator import aggregate
from compose_apps_exporter.compose_file import parse_compose_file
from compose_apps_exporter.config import ExporterConfig
from compose_apps_exporter.discovery import discover_config_paths
from compose_apps_exporter.errors import ParseError, RuntimeQueryError, ScrapeTimeoutError
from compose_apps_exporter.mapping import map_status
from compose_apps_exporter.models import ComposeApplication, ScrapeResult, ServiceRuntimeStatus, ServiceStatus
from compose_apps_exporter.runtime import DockerComposeQuerier, RuntimeStatusQuerier

logger = logging.getLogger(__name__)


def parse_applications(config_paths: Sequence[Path], errors: List[Exception]) -> List[ComposeApplication]:
    """Parse every discovered file, recording failures instead of raising."""
    applications: List[ComposeApplication] = []
    names = set()

    for path in config_paths:
        try:
            application = parse_compose_file(path)
        except ParseError as e:
            logger.warning(f"Skipping compose app: {e}")
            errors.append(e)
            continue

        if application.name in names:
            e = ParseError(path, f"duplicate project name '{application.name}'")
            logger.warning(f"Skipping compose app: {e}")
            errors.append(e)
            continue

        names.add(application.name)
        applications.append(application)

    return applications


def query_applications(
    querier: RuntimeStatusQuerier,
    applications: Sequence[ComposeApplication],
    max_workers: int,
    timeout: Optional[float],
    errors: List[Exception],
) -> Dict[str, Dict[str, ServiceRuntimeStatus]]:
    """
    Query the runtime for all applications concurrently.

    A RuntimeQueryError marks every service of that project not_up/not_up.
    RuntimeUnavailableError and any unexpected error propagate.

    Args:
        querier: Runtime access
        applications: Parsed applications
        max_workers: Upper bound on concurrent queries
        timeout: Seconds left before the scrape deadline
        errors: Collector for scoped errors

    Returns:
        Runtime statuses keyed by application name, then service name

    Raises:
        ScrapeTimeoutError: If the deadline passes before all queries finish
    """
    results: Dict[str, Dict[str, ServiceRuntimeStatus]] = {}
    if not applications:
        return results

    executor = ThreadPoolExecutor(
        max_workers=min(max_workers, len(applications)),
        thread_name_prefix='compose-query',
    )
    try:
        futures = {executor.submit(querier.query, app): app for app in applications}
        try:
            for future in as_completed(futures, timeout=timeout):
                application = futures[future]
                try:
                    results[application.name] = future.result()
                except RuntimeQueryError as e:
                    logger.warning(f"Reporting all services of '{application.name}' as not_up: {e}")
                    errors.append(e)
                    results[application.name] = {
                        service: ServiceRuntimeStatus.not_up() for service in application.services
                    }
        except FuturesTimeoutError:
            pending = [futures[f].name for f in futures if not f.done()]
            raise ScrapeTimeoutError(
                f"Scrape deadline exceeded waiting for projects: {', '.join(pending)}"
            ) from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return results


def collect_statuses(
    applications: Sequence[ComposeApplication],
    runtime_statuses: Dict[str, Dict[str, ServiceRuntimeStatus]],
) -> List[ServiceStatus]:
    statuses = []
    for application in applications:
        project_statuses = runtime_statuses.get(application.name, {})
        for service in application.services:
            raw = project_statuses.get(service) or ServiceRuntimeStatus.not_up()
            statuses.append(map_status(application.name, service, raw))
    return statuses


def run_scrape(config: ExporterConfig, querier: Optional[RuntimeStatusQuerier] = None) -> ScrapeResult:
    """
    Run one complete scrape.

    Args:
        config: Resolved exporter configuration
        querier: Runtime access; defaults to the docker compose CLI

    Returns:
        The metric samples, the matched file count and any scoped errors

    Raises:
        ScrapeFatalError: On discovery failure, missing runtime or deadline
    """
    start_time = time.monotonic()
    deadline = start_time + config.scrape_timeout

    if querier is None:
        querier = DockerComposeQuerier(binary=config.runtime_binary, timeout=config.query_timeout)

    errors: List[Exception] = []

    config_paths = discover_config_paths(config.compose_configs_glob)
    logger.debug(f"Discovered {len(config_paths)} compose files")

    applications = parse_applications(config_paths, errors)

    querier.ensure_available()

    runtime_statuses = query_applications(
        querier,
        applications,
        max_workers=config.max_workers,
        timeout=max(0.0, deadline - time.monotonic()),
        errors=errors,
    )

    statuses = collect_statuses(applications, runtime_statuses)
    samples = aggregate(statuses, len(config_paths), errors)

    duration = time.monotonic() - start_time
    logger.info(
        f"Scraped {len(applications)}/{len(config_paths)} compose apps, "
        f"{len(statuses)} services, {len(errors)} errors in {duration:.2f}s"
    )

    return ScrapeResult(
        samples=samples,
        config_count=len(config_paths),
        errors=errors,
        duration_seconds=duration,
    )
