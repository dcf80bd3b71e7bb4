"""Module discovery from settings.gradle / settings.gradle.kts."""

import logging
import re
from pathlib import Path

from depprune.paths import find_settings_file

logger = logging.getLogger(__name__)

_QUOTED_RE = re.compile(r"""["']([^"']+)["']""")
_INCLUDE_RE = re.compile(r"^include[\s(]")


def parse_included_modules(text: str) -> list[str]:
    """Extract module names from ``include`` lines.

    ``include(":app")``, ``include ':a', ':b'`` and the like yield ``app``,
    ``a`` and ``b``. Duplicates are dropped, order is kept.
    """
    modules: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not _INCLUDE_RE.match(stripped):
            continue
        for match in _QUOTED_RE.finditer(stripped):
            name = match.group(1).strip().lstrip(":")
            if name and name not in modules:
                modules.append(name)
    return modules


def discover_modules(project_root: Path) -> list[str] | None:
    """Read the project's module list.

    Returns:
        Module names, or None when no settings file exists or it cannot be read.
    """
    settings_file = find_settings_file(project_root)
    if settings_file is None:
        logger.error(
            "No settings.gradle or settings.gradle.kts file found in %s", project_root
        )
        return None

    try:
        text = settings_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Failed to read settings file %s: %s", settings_file, e)
        return None

    return parse_included_modules(text)
