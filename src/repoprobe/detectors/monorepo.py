"""Monorepo tooling detection."""

import logging
from collections.abc import Callable
from typing import Any

from repoprobe.files import ScanContext, read_json_object, read_yaml
from repoprobe.models import MonorepoInfo, MonorepoType

logger = logging.getLogger(__name__)

# Files whose presence marks a directory as an app in a tool-less monorepo.
# docker-compose is left out: at the root it usually describes infrastructure.
APP_MARKERS = (
    "package.json",
    "requirements.txt",
    "pyproject.toml",
    "go.mod",
    "Cargo.toml",
    "composer.json",
    "Gemfile",
    "mix.exs",
    "pom.xml",
    "build.gradle",
    "Dockerfile",
    "nixpacks.toml",
    "nixpacks.json",
    "Procfile",
)

NON_APP_DIRS = frozenset({
    "node_modules",
    "vendor",
    "__pycache__",
    "dist",
    "build",
    "out",
    "target",
    "docs",
    "documentation",
    "assets",
    "public",
    "static",
    "scripts",
    "tools",
    "config",
    "configs",
})


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v.strip()]
    return []


class MonorepoDetector:
    """Identify workspace tooling at the repository root and its workspace globs."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx
        self.root = ctx.repo_root

    def detect(self) -> MonorepoInfo:
        """Check each workspace marker in priority order.

        A marker whose config yields no workspaces does not end the search;
        the next marker is tried.
        """
        checks: list[tuple[str, Callable[[], MonorepoInfo]]] = [
            ("turbo.json", self._turborepo),
            ("pnpm-workspace.yaml", lambda: self._pnpm(MonorepoType.PNPM)),
            ("lerna.json", self._lerna),
            ("nx.json", self._nx),
            ("rush.json", self._rush),
        ]
        for marker, check in checks:
            if not (self.root / marker).is_file():
                continue
            info = check()
            if info.is_monorepo:
                logger.info("Detected %s monorepo via %s", info.type, marker)
                return info
            logger.debug("%s present but declares no workspaces", marker)

        info = self._package_json_workspaces(MonorepoType.NPM_WORKSPACES)
        if info.is_monorepo:
            return info

        return self._simple()

    def _package_json_workspaces(self, monorepo_type: MonorepoType) -> MonorepoInfo:
        pkg = read_json_object(self.ctx, self.root / "package.json")
        if pkg is None or "workspaces" not in pkg:
            return MonorepoInfo.not_monorepo()
        return self._from_workspaces(pkg["workspaces"], monorepo_type)

    def _from_workspaces(self, workspaces: Any, monorepo_type: MonorepoType) -> MonorepoInfo:
        # Yarn 2+ nests the list: {"packages": [...], "nohoist": [...]}
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages")
        return self._build(monorepo_type, _string_list(workspaces))

    def _build(self, monorepo_type: MonorepoType, paths: list[str]) -> MonorepoInfo:
        if not paths:
            return MonorepoInfo.not_monorepo()
        return MonorepoInfo(is_monorepo=True, type=monorepo_type, workspace_paths=tuple(paths))

    def _common_directories(self, *candidates: str) -> list[str]:
        return [f"{name}/*" for name in candidates if (self.root / name).is_dir()]

    def _turborepo(self) -> MonorepoInfo:
        # turbo.json only defines the task pipeline; workspaces live elsewhere
        if (self.root / "pnpm-workspace.yaml").is_file():
            return self._pnpm(MonorepoType.TURBOREPO)

        info = self._package_json_workspaces(MonorepoType.TURBOREPO)
        if info.is_monorepo:
            return info

        return self._build(MonorepoType.TURBOREPO, self._common_directories("apps", "packages"))

    def _pnpm(self, monorepo_type: MonorepoType) -> MonorepoInfo:
        config = read_yaml(self.ctx, self.root / "pnpm-workspace.yaml")
        if not isinstance(config, dict):
            return MonorepoInfo.not_monorepo()
        return self._build(monorepo_type, _string_list(config.get("packages")))

    def _lerna(self) -> MonorepoInfo:
        config = read_json_object(self.ctx, self.root / "lerna.json")
        if config is None:
            return MonorepoInfo.not_monorepo()

        if config.get("useWorkspaces"):
            info = self._package_json_workspaces(MonorepoType.LERNA)
            if info.is_monorepo:
                return info

        packages = _string_list(config.get("packages")) or ["packages/*"]
        return self._build(MonorepoType.LERNA, packages)

    def _nx(self) -> MonorepoInfo:
        config = read_json_object(self.ctx, self.root / "nx.json") or {}
        paths = self._nx_project_paths(config.get("projects"))
        if paths:
            return self._build(MonorepoType.NX, paths)

        # Nx < 15 kept projects in workspace.json
        workspace = read_json_object(self.ctx, self.root / "workspace.json") or {}
        paths = self._nx_project_paths(workspace.get("projects"))
        if paths:
            return self._build(MonorepoType.NX, paths)

        return self._build(MonorepoType.NX, self._common_directories("apps", "libs", "packages"))

    @staticmethod
    def _nx_project_paths(projects: Any) -> list[str]:
        if isinstance(projects, list):
            return _string_list(projects)
        if not isinstance(projects, dict):
            return []
        paths = []
        for name, project in projects.items():
            if isinstance(project, str):
                paths.append(project)
            elif isinstance(project, dict):
                root = project.get("root", name)
                if isinstance(root, str):
                    paths.append(root)
        return paths

    def _rush(self) -> MonorepoInfo:
        config = read_json_object(self.ctx, self.root / "rush.json")
        if config is None or not isinstance(config.get("projects"), list):
            return MonorepoInfo.not_monorepo()
        paths = [
            project["projectFolder"]
            for project in config["projects"]
            if isinstance(project, dict) and isinstance(project.get("projectFolder"), str)
        ]
        return self._build(MonorepoType.RUSH, paths)

    def _simple(self) -> MonorepoInfo:
        """Two or more top-level directories that each hold an app marker."""
        try:
            entries = sorted(self.root.iterdir())
        except OSError as e:
            logger.debug("Cannot list %s: %s", self.root, e)
            return MonorepoInfo.not_monorepo()

        app_dirs = []
        for entry in entries:
            if entry.name.startswith(".") or entry.name in NON_APP_DIRS:
                continue
            if not entry.is_dir() or not self.ctx.contains(entry):
                continue
            if any((entry / marker).is_file() for marker in APP_MARKERS):
                app_dirs.append(entry.name)

        if len(app_dirs) < 2:
            return MonorepoInfo.not_monorepo()
        logger.info("Detected simple monorepo with %d app directories", len(app_dirs))
        return self._build(MonorepoType.SIMPLE, app_dirs)
