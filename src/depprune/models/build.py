"""Result of a single build tool invocation."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BuildOutcome:
    """Outcome of one oracle invocation."""

    succeeded: bool
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    tasks: tuple[str, ...] = field(default=())

    def error_preview(self, limit: int = 200) -> str:
        """First ``limit`` characters of stderr, with an ellipsis if cut."""
        text = self.stderr.strip()
        if len(text) > limit:
            return text[:limit] + "..."
        return text

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "tasks": list(self.tasks),
            "stdout": self.stdout,
            "stderr": self.stderr,
        }
