"""Dependency declaration parsing for Gradle build files.

Only lines starting with ``api``, ``implementation`` or ``testImplementation``
are considered. Nothing in the build script is evaluated.
"""

import re

from depprune.models.module import Dependency, DependencyKind

# Keyword followed by whitespace or an opening paren, e.g. "implementation(" or "api "
_DECLARATION_RE = re.compile(r"^(api|implementation|testImplementation)(?=[\s(])")
_PREFIX_RE = re.compile(r"^(?:implementation|api|testImplementation)\s*\(?\s*")

PROJECTS_ACCESSOR_PREFIX = "projects."


def _after(text: str, delimiter: str) -> str:
    """Text after the first delimiter, or the whole text if absent."""
    head, sep, tail = text.partition(delimiter)
    return tail if sep else text


def _before(text: str, delimiter: str) -> str:
    """Text before the first delimiter, or the whole text if absent."""
    return text.partition(delimiter)[0]


def _unquote(text: str) -> str:
    text = text.strip()
    if text[:1] in ("'", '"'):
        text = text[1:]
    if text[-1:] in ("'", '"'):
        text = text[:-1]
    return text


def declaration_kind(line: str) -> DependencyKind | None:
    """Return the declaration kind if the trimmed line is a dependency declaration."""
    match = _DECLARATION_RE.match(line.strip())
    if not match:
        return None
    return DependencyKind.from_keyword(match.group(1))


def is_declaration(line: str) -> bool:
    """Check whether a line declares a dependency."""
    return declaration_kind(line) is not None


def parse_declaration(line: str) -> Dependency | None:
    """Parse one build file line into a Dependency.

    Recognizes ``project(":library-core")`` (yielding ``library-core``) and
    accessor forms such as ``projects.libraryCore`` (yielding ``libraryCore``).
    External coordinates and ``libs.*`` catalog entries are returned verbatim.

    Returns:
        The parsed Dependency, or None when the line is not a declaration or
        nothing usable is left after stripping.
    """
    trimmed = line.strip()
    kind = declaration_kind(trimmed)
    if kind is None:
        return None

    target = _PREFIX_RE.sub("", trimmed, count=1).strip()

    if target.startswith("project(") or target.startswith("project "):
        name = _after(target, "project").lstrip(" (")
        name = _before(name, ")")
        if "path:" in name:
            name = _before(_after(name, "path:"), ",")
        name = name.replace('"', "").replace("'", "").strip().lstrip(":")
    else:
        name = _after(target, "(")
        name = _before(name, ")")
        name = _before(name, "{")
        name = _before(name, "//")
        name = _before(name, "because")
        name = _unquote(name)
        if name.startswith(PROJECTS_ACCESSOR_PREFIX):
            name = name[len(PROJECTS_ACCESSOR_PREFIX):]

    if not name or name == trimmed:
        return None
    return Dependency(name=name, kind=kind)


def parse_dependencies(text: str) -> list[Dependency]:
    """Extract the ordered dependency declarations from build file text."""
    dependencies: list[Dependency] = []
    for line in text.splitlines():
        dependency = parse_declaration(line)
        if dependency is not None:
            dependencies.append(dependency)
    return dependencies
