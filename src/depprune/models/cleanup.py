"""Models for validated dependency removal."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from depprune.models.build import BuildOutcome
from depprune.models.module import Dependency


class AttemptState(Enum):
    """Lifecycle of one removal attempt.

    UNTESTED -> BACKED_UP -> REMOVED -> VALIDATING -> CONFIRMED | ROLLED_BACK
    """

    UNTESTED = "untested"
    BACKED_UP = "backed_up"
    REMOVED = "removed"
    VALIDATING = "validating"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class RemovalStrategy(Enum):
    """How a removal was validated."""

    SEQUENTIAL = "sequential"
    BATCH = "batch"
    DRY_RUN = "dry_run"


@dataclass
class CleanupRecord:
    """Outcome of one removal attempt for one dependency."""

    dependency: Dependency
    module: str
    removed: bool
    reason: str
    build_confirmed: bool = False
    state: AttemptState = AttemptState.UNTESTED
    strategy: RemovalStrategy = RemovalStrategy.SEQUENTIAL

    def to_dict(self) -> dict:
        return {
            "dependency": str(self.dependency),
            "module": self.module,
            "removed": self.removed,
            "reason": self.reason,
            "build_confirmed": self.build_confirmed,
            "state": self.state.value,
            "strategy": self.strategy.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CleanupRecord":
        return cls(
            dependency=Dependency.from_string(data["dependency"]),
            module=data["module"],
            removed=data["removed"],
            reason=data.get("reason", ""),
            build_confirmed=data.get("build_confirmed", False),
            state=AttemptState(data.get("state", "untested")),
            strategy=RemovalStrategy(data.get("strategy", "sequential")),
        )


@dataclass
class CleanupReport:
    """All removal records of a run, plus the final integration build."""

    records: list[CleanupRecord] = field(default_factory=list)
    final_build: BuildOutcome | None = None
    target_module: str | None = None
    generated_at: datetime = field(default_factory=datetime.now)

    def latest(self) -> list[CleanupRecord]:
        """Records with later attempts superseding earlier ones.

        Keeps the order in which each (module, dependency) pair first appeared.
        """
        by_key: dict[tuple[str, Dependency], CleanupRecord] = {}
        for record in self.records:
            by_key[(record.module, record.dependency)] = record
        return list(by_key.values())

    @property
    def removed(self) -> list[CleanupRecord]:
        return [r for r in self.latest() if r.removed]

    @property
    def failed(self) -> list[CleanupRecord]:
        return [r for r in self.latest() if not r.removed]

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "generated_at": self.generated_at.isoformat(),
            "target_module": self.target_module,
            "summary": {
                "removed": self.removed_count,
                "failed": self.failed_count,
            },
            "records": [r.to_dict() for r in self.records],
            "final_build": self.final_build.to_dict() if self.final_build else None,
        }
