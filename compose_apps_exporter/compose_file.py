"""
Compose file parsing.

Only the project name and the keys of the `services` mapping matter here;
networks, volumes, build instructions and every other directive are ignored.
"""
import logging
import re
from pathlib import Path
from typing import Dict, Union

import yaml

from compose_apps_exporter.errors import ParseError
from compose_apps_exporter.models import ComposeApplication

logger = logging.getLogger(__name__)

_INVALID_PROJECT_CHARS = re.compile(r'[^a-z0-9_-]')
_LEADING_NON_ALNUM = re.compile(r'^[^a-z0-9]+')


def default_project_name(path: Path) -> str:
    """
    Derive the project name `docker compose` uses when none is declared.

    The parent directory name is lower-cased and stripped of characters
    compose does not allow in project names.
    """
    name = path.parent.name.lower()
    name = _INVALID_PROJECT_CHARS.sub('', name)
    return _LEADING_NON_ALNUM.sub('', name)


def parse_compose_file(path: Union[str, Path]) -> ComposeApplication:
    """
    Parse one compose file into a ComposeApplication.

    Args:
        path: Path of the compose file

    Returns:
        Application with its name and declared service names

    Raises:
        ParseError: If the file is unreadable, malformed, or declares no
            services mapping
    """
    path = Path(path)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ParseError(path, f"unreadable: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ParseError(path, f"invalid YAML: {e}") from e

    if not isinstance(document, dict):
        raise ParseError(path, "top-level document is not a mapping")

    services = document.get('services')
    if services is None:
        raise ParseError(path, "missing 'services' section")
    if not isinstance(services, dict):
        raise ParseError(path, "'services' is not a mapping")

    name = document.get('name')
    if name is None:
        name = default_project_name(path)
    name = str(name).strip()
    if not name:
        raise ParseError(path, "cannot derive a project name")

    container_names: Dict[str, str] = {}
    for service_name, definition in services.items():
        if isinstance(definition, dict) and definition.get('container_name'):
            container_names[str(service_name)] = str(definition['container_name'])

    application = ComposeApplication(
        name=name,
        path=path,
        services=tuple(str(service_name) for service_name in services),
        container_names=container_names,
    )
    logger.debug(f"Parsed {path}: project={name} services={list(application.services)}")
    return application
