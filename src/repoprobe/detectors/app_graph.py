"""Inter-app dependency graph and deploy order."""

import logging
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import urlsplit

from repoprobe.exceptions import DependencyCycleError
from repoprobe.files import ScanContext, read_json_object
from repoprobe.models import AppDependency, AppType, DetectedApp, DetectedEnvVariable

logger = logging.getLogger(__name__)

INFERRED_API_KEY = "API_URL"
API_CONSUMER_TYPES = frozenset({AppType.FRONTEND, AppType.FULLSTACK})


def url_hostname(value: str | None) -> str | None:
    """Hostname of a URL-ish value (`http://api:3000`, `api:3000/v1`), lowercased."""
    if not value:
        return None
    if "://" not in value:
        value = "//" + value
    try:
        return urlsplit(value).hostname
    except ValueError:
        return None


def topological_levels(graph: dict[str, set[str]]) -> dict[str, int]:
    """Longest-path level of every node; dependencies come first.

    Args:
        graph: Node -> nodes it depends on. Every dependency must be a key.

    Returns:
        Node -> level, where level(dep) < level(node) for every edge.

    Raises:
        DependencyCycleError: If the graph has a cycle.
    """
    dependents: dict[str, list[str]] = {node: [] for node in graph}
    remaining = {node: len(deps) for node, deps in graph.items()}
    for node in sorted(graph):
        for dep in sorted(graph[node]):
            dependents[dep].append(node)

    levels: dict[str, int] = {}
    ready = sorted(node for node, count in remaining.items() if count == 0)
    while ready:
        node = ready.pop(0)
        levels[node] = max((levels[dep] + 1 for dep in graph[node]), default=0)
        for dependent in dependents[node]:
            remaining[dependent] -= 1
            if remaining[dependent] == 0:
                ready.append(dependent)
        ready.sort()

    if len(levels) < len(graph):
        raise DependencyCycleError(_find_cycle(graph, set(graph) - set(levels)))
    return levels


def _find_cycle(graph: dict[str, set[str]], candidates: set[str]) -> list[str]:
    """A concrete cycle among nodes Kahn's algorithm could not order."""
    start = min(candidates)
    path = [start]
    seen = {start: 0}
    node = start
    while True:
        # Every unordered node has at least one unordered dependency
        node = min(dep for dep in graph[node] if dep in candidates)
        if node in seen:
            return path[seen[node]:] + [node]
        seen[node] = len(path)
        path.append(node)


class AppDependencyDetector:
    """Build the app graph from workspace package references and env URL hints."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def detect(
        self,
        apps: Sequence[DetectedApp],
        env_variables: Sequence[DetectedEnvVariable] = (),
    ) -> list[AppDependency]:
        """Compute dependencies, internal URLs and deploy order for apps.

        Args:
            apps: Detected apps with unique names.
            env_variables: Env vars of all apps, owned via for_app.

        Returns:
            One AppDependency per app, ordered by deploy_order then name.

        Raises:
            DependencyCycleError: If apps depend on each other in a cycle.
        """
        by_name = {app.name: app for app in apps}
        edges: dict[str, set[str]] = {app.name: set() for app in apps}
        internal_urls: dict[str, dict[str, str]] = {app.name: {} for app in apps}

        packages = self._package_names(apps)
        for app in apps:
            edges[app.name] |= self._workspace_references(app, packages, set(by_name))

        hostnames = self._hostnames(apps)
        for var in env_variables:
            if var.for_app not in by_name:
                continue
            target = hostnames.get(url_hostname(var.default_value) or "")
            if target is None or target == var.for_app:
                continue
            edges[var.for_app].add(target)
            internal_urls[var.for_app][var.key] = target

        for app in apps:
            if app.type not in API_CONSUMER_TYPES or internal_urls[app.name]:
                continue
            backends = sorted(dep for dep in edges[app.name] if by_name[dep].type == AppType.BACKEND)
            if backends:
                internal_urls[app.name][INFERRED_API_KEY] = backends[0]
                logger.debug("Inferred %s=%s for %s", INFERRED_API_KEY, backends[0], app.name)

        levels = topological_levels(edges)
        dependencies = [
            AppDependency(
                app_name=name,
                depends_on=tuple(sorted(edges[name])),
                deploy_order=levels[name],
                internal_urls=dict(sorted(internal_urls[name].items())),
            )
            for name in edges
        ]
        return sorted(dependencies, key=lambda d: (d.deploy_order, d.app_name))

    def _package_names(self, apps: Sequence[DetectedApp]) -> dict[str, str]:
        """package.json name -> app name."""
        names = {}
        for app in apps:
            pkg = read_json_object(self.ctx, self._directory(app) / "package.json")
            if pkg is not None and isinstance(pkg.get("name"), str):
                names[pkg["name"]] = app.name
        return names

    def _workspace_references(
        self, app: DetectedApp, packages: dict[str, str], app_names: set[str]
    ) -> set[str]:
        pkg = read_json_object(self.ctx, self._directory(app) / "package.json")
        if pkg is None:
            return set()
        targets = set()
        for section in ("dependencies", "devDependencies", "peerDependencies"):
            deps = pkg.get(section)
            if not isinstance(deps, dict):
                continue
            for dep, version in deps.items():
                target = packages.get(dep)
                if target is None and isinstance(version, str) and version.startswith("workspace:"):
                    # "@acme/api": "workspace:*" without a matching manifest name
                    short = dep.rsplit("/", 1)[-1]
                    target = short if short in app_names else None
                if target is not None and target != app.name:
                    targets.add(target)
        return targets

    @staticmethod
    def _hostnames(apps: Sequence[DetectedApp]) -> dict[str, str]:
        """Hostnames that address an app: its name and its directory name."""
        hostnames: dict[str, str] = {}
        for app in sorted(apps, key=lambda a: a.path):
            hostnames.setdefault(app.name.lower(), app.name)
            if app.path != ".":
                hostnames.setdefault(Path(app.path).name.lower(), app.name)
        return hostnames

    def _directory(self, app: DetectedApp) -> Path:
        return self.ctx.repo_root / app.path
