"""
Exception hierarchy for the scrape pipeline.

Errors deriving from ScrapeFatalError abort the scrape; the HTTP layer maps
them to a 5xx response. ParseError and RuntimeQueryError are scoped to one
compose application and are absorbed by the pipeline.
"""
from pathlib import Path
from typing import Optional, Union


class ComposeExporterError(Exception):
    """Base class for all exporter errors."""
    pass


class ConfigError(ComposeExporterError):
    """Raised when the layered configuration cannot be loaded or validated."""
    pass


class ScrapeFatalError(ComposeExporterError):
    """Raised when a scrape cannot produce any trustworthy metrics."""
    pass


class DiscoveryError(ScrapeFatalError):
    """Raised when the root of a discovery pattern cannot be read."""
    pass


class RuntimeUnavailableError(ScrapeFatalError):
    """Raised when the container runtime binary is missing or not executable."""
    pass


class ScrapeTimeoutError(ScrapeFatalError):
    """Raised when a scrape exceeds its deadline."""
    pass


class ParseError(ComposeExporterError):
    """Raised when a single compose file cannot be parsed."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to parse compose file {self.path}: {reason}")


class RuntimeQueryError(ComposeExporterError):
    """Raised when the runtime query for a single project fails or times out."""

    def __init__(self, project: str, reason: str, path: Optional[Path] = None):
        self.project = project
        self.reason = reason
        self.path = path
        super().__init__(f"Runtime query for project '{project}' failed: {reason}")
