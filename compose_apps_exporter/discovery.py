"""
Compose file discovery.

Expands the configured glob patterns into the ordered list of compose files
that make up one scrape.
"""
import glob
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Union

from compose_apps_exporter.errors import DiscoveryError

logger = logging.getLogger(__name__)

# Names `docker compose` looks for in a project directory, in its lookup order
COMPOSE_FILE_NAMES = (
    'compose.yaml',
    'compose.yml',
    'docker-compose.yaml',
    'docker-compose.yml',
)
DEFAULT_COMPOSE_FILE_NAME = 'docker-compose.yml'

_MAGIC = re.compile(r'[*?[]')


def pattern_root(pattern: str) -> Path:
    """
    Return the longest leading part of a pattern that contains no wildcards.

    Args:
        pattern: Glob pattern, absolute or relative

    Returns:
        Directory (or file) the pattern is anchored at
    """
    parts = Path(os.path.abspath(os.path.expanduser(pattern))).parts
    literal = []
    for part in parts:
        if _MAGIC.search(part):
            break
        literal.append(part)
    return Path(*literal) if literal else Path(os.sep)


def resolve_compose_file(path: Path) -> Path:
    """Map a matched directory to the compose file inside it."""
    if not path.is_dir():
        return path
    for name in COMPOSE_FILE_NAMES:
        candidate = path / name
        if candidate.is_file():
            return candidate
    # Keep the directory counted; the parser reports the missing file
    return path / DEFAULT_COMPOSE_FILE_NAME


def _check_root(pattern: str) -> None:
    root = pattern_root(pattern)
    if not root.exists():
        logger.debug(f"Root {root} of pattern {pattern!r} does not exist")
        return
    mode = os.R_OK | os.X_OK if root.is_dir() else os.R_OK
    if not os.access(root, mode):
        raise DiscoveryError(f"Cannot read discovery root {root} for pattern {pattern!r}")


def discover_config_paths(patterns: Union[str, Iterable[str]]) -> List[Path]:
    """
    Expand glob patterns into compose file paths.

    Args:
        patterns: One glob pattern or a list of them. `**` matches recursively.

    Returns:
        Absolute compose file paths, sorted within each pattern and
        de-duplicated across patterns. Empty if nothing matches.

    Raises:
        DiscoveryError: If the non-wildcard root of a pattern exists but
            cannot be read
    """
    if isinstance(patterns, str):
        patterns = [patterns]

    seen = set()
    config_paths: List[Path] = []

    for pattern in patterns:
        _check_root(pattern)
        expanded = os.path.expanduser(pattern)
        try:
            matches = sorted(glob.glob(expanded, recursive=True))
        except OSError as e:
            raise DiscoveryError(f"Failed to expand pattern {pattern!r}: {e}") from e

        logger.debug(f"Pattern {pattern!r} matched {len(matches)} paths")

        for match in matches:
            config_path = resolve_compose_file(Path(os.path.abspath(match)))
            if config_path in seen:
                continue
            seen.add(config_path)
            config_paths.append(config_path)

    return config_paths
