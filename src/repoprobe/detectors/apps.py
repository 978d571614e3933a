"""App detection from manifests, with Dockerfile and compose fallbacks."""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from pathlib import Path

from repoprobe.detectors.compose import COMPOSE_FILENAMES
from repoprobe.detectors.dockerfile import DockerfileAnalyzer
from repoprobe.files import (
    ScanContext,
    expand_workspace_glob,
    read_json_object,
    read_text,
    read_toml,
)
from repoprobe.models import AppType, BuildPack, DetectedApp, Framework, Language, MonorepoInfo

logger = logging.getLogger(__name__)

DOCKERFILE_DEFAULT_PORT = 3000
COMPOSE_DEFAULT_PORT = 80


@dataclass(frozen=True, slots=True)
class FrameworkRule:
    """One row of the framework table.

    A rule matches when its manifest (or alternate manifest) exists, none of
    exclude_deps are declared, and either any or all of deps are declared.
    Rules without deps match on manifest presence alone. pattern is searched
    in the raw manifest text when structured dependencies did not match.
    """

    framework: Framework
    manifest: str
    deps: tuple[str, ...] = ()
    match_all: bool = False
    exclude_deps: tuple[str, ...] = ()
    alt_manifest: str | None = None
    pattern: str | None = None
    alt_pattern: str | None = None
    build_pack: BuildPack = BuildPack.NIXPACKS
    default_port: int = 3000
    app_type: AppType = AppType.BACKEND
    build_command: str | None = None
    publish_directory: str | None = None


def _static_vite(framework: Framework, companion: str, *exclude: str) -> FrameworkRule:
    return FrameworkRule(
        framework=framework,
        manifest="package.json",
        deps=("vite", companion),
        match_all=True,
        exclude_deps=exclude,
        build_pack=BuildPack.STATIC,
        default_port=80,
        app_type=AppType.FRONTEND,
        build_command="npm run build",
        publish_directory="dist",
    )


# Evaluated top-down; the first match wins. Meta-frameworks come before the
# generic servers they embed.
FRAMEWORK_RULES: tuple[FrameworkRule, ...] = (
    FrameworkRule(Framework.NESTJS, "package.json", deps=("@nestjs/core",)),
    FrameworkRule(Framework.NEXTJS, "package.json", deps=("next",), app_type=AppType.FULLSTACK),
    FrameworkRule(Framework.NUXT, "package.json", deps=("nuxt",), app_type=AppType.FULLSTACK),
    FrameworkRule(Framework.REMIX, "package.json", deps=("@remix-run/node",), app_type=AppType.FULLSTACK),
    FrameworkRule(
        Framework.ASTRO, "package.json", deps=("astro",), default_port=4321, app_type=AppType.FRONTEND
    ),
    FrameworkRule(Framework.SVELTEKIT, "package.json", deps=("@sveltejs/kit",), app_type=AppType.FULLSTACK),
    _static_vite(Framework.VITE_REACT, "react", "next", "@remix-run/react"),
    _static_vite(Framework.VITE_VUE, "vue", "nuxt"),
    _static_vite(Framework.VITE_SVELTE, "svelte", "@sveltejs/kit"),
    FrameworkRule(
        Framework.CREATE_REACT_APP,
        "package.json",
        deps=("react-scripts",),
        build_pack=BuildPack.STATIC,
        default_port=80,
        app_type=AppType.FRONTEND,
        build_command="npm run build",
        publish_directory="build",
    ),
    FrameworkRule(Framework.FASTIFY, "package.json", deps=("fastify",)),
    FrameworkRule(Framework.HONO, "package.json", deps=("hono",)),
    FrameworkRule(Framework.EXPRESS, "package.json", deps=("express",), exclude_deps=("@nestjs/core", "next")),
    FrameworkRule(
        Framework.DJANGO, "requirements.txt", deps=("django",), alt_manifest="pyproject.toml", default_port=8000
    ),
    FrameworkRule(
        Framework.FASTAPI, "requirements.txt", deps=("fastapi",), alt_manifest="pyproject.toml", default_port=8000
    ),
    FrameworkRule(
        Framework.FLASK, "requirements.txt", deps=("flask",), alt_manifest="pyproject.toml", default_port=5000
    ),
    FrameworkRule(Framework.GO_FIBER, "go.mod", deps=("github.com/gofiber/fiber/v2", "github.com/gofiber/fiber")),
    FrameworkRule(Framework.GO_GIN, "go.mod", deps=("github.com/gin-gonic/gin",), default_port=8080),
    FrameworkRule(
        Framework.GO_ECHO,
        "go.mod",
        deps=("github.com/labstack/echo/v4", "github.com/labstack/echo"),
        default_port=8080,
    ),
    FrameworkRule(Framework.GO, "go.mod", default_port=8080),
    FrameworkRule(Framework.RAILS, "Gemfile", deps=("rails",)),
    FrameworkRule(Framework.SINATRA, "Gemfile", deps=("sinatra",), default_port=4567),
    FrameworkRule(Framework.RUST_AXUM, "Cargo.toml", deps=("axum",)),
    FrameworkRule(Framework.RUST_ACTIX, "Cargo.toml", deps=("actix-web",), default_port=8080),
    FrameworkRule(Framework.RUST, "Cargo.toml", default_port=8080),
    FrameworkRule(Framework.LARAVEL, "composer.json", deps=("laravel/framework",), default_port=8000),
    FrameworkRule(Framework.SYMFONY, "composer.json", deps=("symfony/framework-bundle",), default_port=8000),
    FrameworkRule(Framework.PHOENIX, "mix.exs", deps=(":phoenix",), pattern=r"\{:phoenix,", default_port=4000),
    FrameworkRule(
        Framework.SPRING_BOOT,
        "pom.xml",
        deps=("spring-boot-starter",),
        alt_manifest="build.gradle",
        pattern=r"<artifactId>spring-boot-starter",
        alt_pattern=r"org\.springframework\.boot",
        default_port=8080,
    ),
)

MANIFEST_LANGUAGES: tuple[tuple[str, Language], ...] = (
    ("package.json", Language.NODE),
    ("requirements.txt", Language.PYTHON),
    ("pyproject.toml", Language.PYTHON),
    ("Pipfile", Language.PYTHON),
    ("go.mod", Language.GO),
    ("Gemfile", Language.RUBY),
    ("Cargo.toml", Language.RUST),
    ("composer.json", Language.PHP),
    ("mix.exs", Language.ELIXIR),
    ("pom.xml", Language.JAVA),
    ("build.gradle", Language.JAVA),
)

_PY_NAME_RE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")
_GO_REQUIRE_RE = re.compile(r"^\s*require\s+(\S+)\s+v", re.MULTILINE)
_GO_BLOCK_RE = re.compile(r"require\s*\((.*?)\)", re.DOTALL)
_GO_BLOCK_LINE_RE = re.compile(r"^\s*(\S+)\s+v", re.MULTILINE)
_GEM_RE = re.compile(r"""^\s*gem\s+['"]([^'"]+)['"]""", re.MULTILINE)
_MIX_RE = re.compile(r"\{:([a-z_]+),")
_MAVEN_RE = re.compile(r"<artifactId>([^<]+)</artifactId>")
_GRADLE_RE = re.compile(r"""(?:implementation|compile|api)\s*\(?\s*['"]([^:'"]+):([^:'"]+)""")
_GRADLE_PLUGIN_RE = re.compile(r"""id\s*\(?\s*['"]([^'"]+)['"]""")


def normalize_python_name(name: str) -> str:
    """PEP 503 style: lowercase, runs of `-_.` collapsed to `-`."""
    return re.sub(r"[-_.]+", "-", name).lower()


def detect_language(directory: Path) -> Language:
    """Primary language of a directory, judged by its first manifest."""
    for manifest, language in MANIFEST_LANGUAGES:
        if (directory / manifest).is_file():
            return language
    return Language.UNKNOWN


def read_node_dependencies(ctx: ScanContext, directory: Path) -> dict[str, str] | None:
    """Merged dependencies, devDependencies and peerDependencies of package.json."""
    pkg = read_json_object(ctx, directory / "package.json")
    if pkg is None:
        return None
    merged: dict[str, str] = {}
    for section in ("peerDependencies", "devDependencies", "dependencies"):
        deps = pkg.get(section)
        if isinstance(deps, dict):
            merged.update({k: str(v) for k, v in deps.items()})
    return merged


def read_python_dependencies(ctx: ScanContext, directory: Path, manifest: str) -> set[str] | None:
    """Normalized distribution names from requirements.txt or pyproject.toml."""
    path = directory / manifest
    if manifest == "pyproject.toml":
        data = read_toml(ctx, path)
        if data is None:
            return None
        names: set[str] = set()
        project = data.get("project", {})
        for spec in project.get("dependencies", []) if isinstance(project, dict) else []:
            if isinstance(spec, str) and (m := _PY_NAME_RE.match(spec.strip())):
                names.add(normalize_python_name(m.group(1)))
        tool = data.get("tool", {})
        poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
        if isinstance(poetry, dict):
            for group in ("dependencies", "dev-dependencies"):
                deps = poetry.get(group)
                if isinstance(deps, dict):
                    names.update(normalize_python_name(k) for k in deps if k != "python")
        return names

    content = read_text(ctx, path)
    if content is None:
        return None
    names = set()
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "-")):
            continue
        if m := _PY_NAME_RE.match(line):
            names.add(normalize_python_name(m.group(1)))
    return names


def read_go_modules(ctx: ScanContext, directory: Path) -> set[str] | None:
    content = read_text(ctx, directory / "go.mod")
    if content is None:
        return None
    modules = set(_GO_REQUIRE_RE.findall(content))
    for block in _GO_BLOCK_RE.findall(content):
        modules.update(_GO_BLOCK_LINE_RE.findall(block))
    return modules


def read_manifest_dependencies(ctx: ScanContext, directory: Path, manifest: str) -> set[str] | None:
    """Declared dependency names of a manifest, or None if it cannot be read."""
    path = directory / manifest
    match manifest:
        case "package.json":
            deps = read_node_dependencies(ctx, directory)
            return set(deps) if deps is not None else None
        case "requirements.txt" | "pyproject.toml":
            return read_python_dependencies(ctx, directory, manifest)
        case "go.mod":
            return read_go_modules(ctx, directory)
        case "Cargo.toml":
            data = read_toml(ctx, path)
            if data is None:
                return None
            names = set()
            for section in ("dependencies", "dev-dependencies"):
                if isinstance(data.get(section), dict):
                    names.update(data[section])
            return names
        case "composer.json":
            data = read_json_object(ctx, path)
            if data is None:
                return None
            names = set()
            for section in ("require", "require-dev"):
                if isinstance(data.get(section), dict):
                    names.update(data[section])
            return names

    content = read_text(ctx, path)
    if content is None:
        return None
    match manifest:
        case "Gemfile":
            return set(_GEM_RE.findall(content))
        case "mix.exs":
            return {f":{name}" for name in _MIX_RE.findall(content)}
        case "pom.xml":
            return set(_MAVEN_RE.findall(content))
        case "build.gradle":
            names = set()
            for group, artifact in _GRADLE_RE.findall(content):
                names.update((f"{group}:{artifact}", group))
            names.update(_GRADLE_PLUGIN_RE.findall(content))
            return names
    return None


class AppDetector:
    """Infer runnable apps from manifests in a directory or a set of workspaces."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def detect_single_app(self) -> list[DetectedApp]:
        """Detect the app at the repository root (zero or one)."""
        app = self.detect_in_directory(self.ctx.repo_root)
        return [app] if app is not None else []

    def detect_from_monorepo(self, monorepo: MonorepoInfo) -> list[DetectedApp]:
        """Detect one app per workspace directory, sorted by path."""
        apps = [self.detect_in_directory(d) for d in self.workspace_directories(monorepo)]
        return self.finalize([app for app in apps if app is not None])

    def workspace_directories(self, monorepo: MonorepoInfo) -> list[Path]:
        """Expand workspace globs to distinct directories in sorted order.

        `!pattern` entries exclude what they match.
        """
        included: dict[Path, Path] = {}
        excluded: set[Path] = set()
        for pattern in monorepo.workspace_paths:
            if pattern.startswith("!"):
                excluded.update(p.resolve() for p in expand_workspace_glob(self.ctx, pattern[1:]))
                continue
            for directory in expand_workspace_glob(self.ctx, pattern):
                included.setdefault(directory.resolve(), directory)
        return [included[key] for key in sorted(included) if key not in excluded]

    @staticmethod
    def finalize(apps: list[DetectedApp]) -> list[DetectedApp]:
        """Sort apps by path and make names unique.

        Apps sharing a directory name are renamed after their full path
        (`services/api` -> `services-api`).
        """
        apps = sorted(apps, key=lambda a: a.path)
        counts = Counter(app.name for app in apps)
        return [
            app.model_copy(update={"name": app.path.replace("/", "-")}) if counts[app.name] > 1 else app
            for app in apps
        ]

    def detect_in_directory(self, directory: Path) -> DetectedApp | None:
        """Apply the framework table to one directory, then the Docker fallbacks."""
        rel_path = self.ctx.relative(directory)
        name = directory.resolve().name

        cache: dict[str, set[str] | None] = {}
        for rule in FRAMEWORK_RULES:
            if self._matches(directory, rule, cache):
                logger.debug("%s matched %s", rel_path, rule.framework)
                return DetectedApp(
                    name=name,
                    path=rel_path,
                    framework=rule.framework,
                    build_pack=rule.build_pack,
                    default_port=rule.default_port,
                    type=rule.app_type,
                    build_command=rule.build_command,
                    publish_directory=rule.publish_directory,
                )

        dockerfile = DockerfileAnalyzer(self.ctx).analyze(directory)
        if dockerfile is not None:
            return DetectedApp(
                name=name,
                path=rel_path,
                framework=Framework.DOCKERFILE,
                build_pack=BuildPack.DOCKERFILE,
                default_port=dockerfile.get_primary_port() or DOCKERFILE_DEFAULT_PORT,
            )

        if any((directory / filename).is_file() for filename in COMPOSE_FILENAMES):
            return DetectedApp(
                name=name,
                path=rel_path,
                framework=Framework.DOCKER_COMPOSE,
                build_pack=BuildPack.DOCKERCOMPOSE,
                default_port=COMPOSE_DEFAULT_PORT,
            )

        logger.debug("No app found in %s", rel_path)
        return None

    def _matches(self, directory: Path, rule: FrameworkRule, cache: dict[str, set[str] | None]) -> bool:
        manifest, pattern = rule.manifest, rule.pattern
        if not (directory / manifest).is_file():
            if rule.alt_manifest is None or not (directory / rule.alt_manifest).is_file():
                return False
            manifest, pattern = rule.alt_manifest, rule.alt_pattern

        if not rule.deps:
            return True

        if manifest not in cache:
            cache[manifest] = read_manifest_dependencies(self.ctx, directory, manifest)
        declared = cache[manifest]
        if declared is None:
            return False

        if any(dep in declared for dep in rule.exclude_deps):
            return False
        if rule.match_all:
            return all(dep in declared for dep in rule.deps)
        if any(dep in declared for dep in rule.deps):
            return True

        if pattern is not None:
            content = read_text(self.ctx, directory / manifest)
            return content is not None and re.search(pattern, content) is not None
        return False
