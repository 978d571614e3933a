"""Exception hierarchy for repoprobe."""


class RepoprobeError(Exception):
    """Base exception for all repoprobe errors."""


class AnalyzeError(RepoprobeError):
    """Failed to analyze repository."""


class ResourceLimitError(RepoprobeError):
    """A file or directory exceeded the configured scan limits."""


class GraphError(RepoprobeError):
    """Inter-app dependency graph is inconsistent."""


class DependencyCycleError(GraphError):
    """Apps depend on each other in a cycle, so no deploy order exists."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(
            f"Dependency cycle between apps: {' -> '.join(cycle)}. "
            "Remove one of the workspace or URL references to break it."
        )
