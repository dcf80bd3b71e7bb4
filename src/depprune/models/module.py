"""Data models for modules and their declared dependencies."""

from dataclasses import dataclass, field, replace
from enum import Enum


class DependencyKind(Enum):
    """Visibility kind of a dependency declaration.

    The value is the keyword used on disk.
    """

    API = "api"
    IMPLEMENTATION = "implementation"
    TEST_IMPLEMENTATION = "testImplementation"

    @classmethod
    def from_keyword(cls, keyword: str) -> "DependencyKind":
        for kind in cls:
            if kind.value == keyword:
                return kind
        raise ValueError(f"Unknown dependency keyword: {keyword!r}")


# Keywords that start a dependency declaration line
DECLARATION_KEYWORDS = tuple(kind.value for kind in DependencyKind)


@dataclass(frozen=True)
class Dependency:
    """A declared dependency edge."""

    name: str
    kind: DependencyKind

    def __str__(self) -> str:
        return f"{self.kind.value} {self.name}"

    @classmethod
    def from_string(cls, text: str) -> "Dependency":
        """Parse the ``"<keyword> <name>"`` form produced by ``str()``."""
        keyword, _, name = text.strip().partition(" ")
        name = name.strip()
        if not name:
            raise ValueError(f"Not a dependency string: {text!r}")
        return cls(name=name, kind=DependencyKind.from_keyword(keyword))

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Dependency":
        return cls(name=data["name"], kind=DependencyKind.from_keyword(data["kind"]))


@dataclass(frozen=True)
class Module:
    """A scanned module.

    Immutable; ``unused_dependencies`` is filled in once by the usage resolver
    through :meth:`with_unused`.
    """

    name: str
    dependencies: tuple[Dependency, ...] = ()
    referenced_classes: frozenset[str] = frozenset()
    exposed_classes: frozenset[str] = frozenset()
    unused_dependencies: tuple[Dependency, ...] = field(default=())

    @property
    def path(self) -> str:
        """Directory of the module relative to the project root."""
        return self.name.replace(":", "/")

    def with_unused(self, unused: list[Dependency]) -> "Module":
        """Return a copy carrying the resolved unused dependencies."""
        unknown = [dep for dep in unused if dep not in self.dependencies]
        if unknown:
            raise ValueError(
                f"{self.name}: unused dependencies not declared: "
                + ", ".join(str(dep) for dep in unknown)
            )
        return replace(self, unused_dependencies=tuple(unused))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "referenced_classes": sorted(self.referenced_classes),
            "exposed_classes": sorted(self.exposed_classes),
            "unused_dependencies": [d.to_dict() for d in self.unused_dependencies],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Module":
        """Create from dictionary."""
        return cls(
            name=data["name"],
            dependencies=tuple(Dependency.from_dict(d) for d in data.get("dependencies", [])),
            referenced_classes=frozenset(data.get("referenced_classes", [])),
            exposed_classes=frozenset(data.get("exposed_classes", [])),
            unused_dependencies=tuple(
                Dependency.from_dict(d) for d in data.get("unused_dependencies", [])
            ),
        )
