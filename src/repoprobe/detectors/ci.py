"""CI pipeline and package.json script detection."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from repoprobe.files import ScanContext, read_json_object, read_yaml
from repoprobe.models import CIConfig
from repoprobe.models.docker import image_repository, image_tag

logger = logging.getLogger(__name__)

INSTALL_PREFIXES = (
    "npm ci",
    "npm install",
    "yarn install",
    "yarn --frozen-lockfile",
    "pnpm install",
    "bun install",
    "pip install",
    "poetry install",
    "uv sync",
    "composer install",
    "bundle install",
    "go mod download",
)

BUILD_PREFIXES = (
    "npm run build",
    "yarn build",
    "pnpm build",
    "pnpm run build",
    "bun run build",
    "next build",
    "nuxt build",
    "vite build",
    "tsc",
    "go build",
    "cargo build",
    "mix compile",
    "mvn package",
    "gradle build",
)

TEST_PREFIXES = (
    "npm test",
    "npm run test",
    "yarn test",
    "pnpm test",
    "bun test",
    "jest",
    "vitest",
    "pytest",
    "python -m pytest",
    "go test",
    "cargo test",
    "phpunit",
    "pest",
    "rspec",
    "bundle exec rspec",
    "mix test",
)

START_PREFIXES = (
    "npm start",
    "npm run start",
    "yarn start",
    "pnpm start",
    "node ",
    "python ",
    "uvicorn",
    "gunicorn",
    "./main",
    "go run",
)

_VERSION_RE = re.compile(r"\d+(?:\.\d+)*")


def normalize_version(value: Any) -> str | None:
    """Leading numeric version in a pin or range: `^18.0.0` -> `18.0.0`, `18.x` -> `18`."""
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None or isinstance(value, bool):
        return None
    match = _VERSION_RE.search(str(value))
    return match.group(0) if match else None


def version_from_image(image: Any, repositories: frozenset[str]) -> str | None:
    if isinstance(image, dict):
        image = image.get("name")
    if not isinstance(image, str) or image_repository(image) not in repositories:
        return None
    return normalize_version(image_tag(image))


@dataclass(slots=True)
class _Commands:
    """First-seen command of each kind."""

    install: str | None = None
    build: str | None = None
    test: str | None = None
    start: str | None = None
    versions: dict[str, str] = field(default_factory=dict)

    def feed(self, script: Any) -> None:
        if isinstance(script, list):
            lines = [line for item in script if isinstance(item, str) for line in item.splitlines()]
        elif isinstance(script, str):
            lines = script.splitlines()
        else:
            return
        for line in lines:
            command = line.strip()
            if not command or command.startswith("#"):
                continue
            if self.install is None and command.startswith(INSTALL_PREFIXES):
                self.install = command
            if self.build is None and command.startswith(BUILD_PREFIXES):
                self.build = command
            if self.test is None and command.startswith(TEST_PREFIXES):
                self.test = command
            if self.start is None and command.startswith(START_PREFIXES):
                self.start = command

    def set_version(self, runtime: str, value: Any) -> None:
        version = normalize_version(value)
        if version is not None:
            self.versions.setdefault(runtime, version)

    def found(self) -> bool:
        return any((self.install, self.build, self.test, self.start, self.versions))

    def to_config(self, detected_from: str) -> CIConfig:
        return CIConfig(
            install_command=self.install,
            build_command=self.build,
            test_command=self.test,
            start_command=self.start,
            node_version=self.versions.get("node"),
            python_version=self.versions.get("python"),
            go_version=self.versions.get("go"),
            detected_from=detected_from,
        )


class CIConfigDetector:
    """Read build, test and start commands from CI config or package.json."""

    SETUP_ACTIONS = {
        "setup-node": ("node", "node-version"),
        "setup-python": ("python", "python-version"),
        "setup-go": ("go", "go-version"),
    }

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def detect(self, app_dir: Path | None = None) -> CIConfig | None:
        """Try GitHub Actions, GitLab CI, CircleCI, then app package.json.

        CI files are read from the repository root; package.json from app_dir.

        Returns:
            CIConfig from the first source with any commands, or None.
        """
        root = self.ctx.repo_root
        for source in (self._github_actions, self._gitlab, self._circleci):
            config = source(root)
            if config is not None:
                logger.debug("CI config from %s", config.detected_from)
                return config
        return self._package_json(app_dir or root)

    def _github_actions(self, root: Path) -> CIConfig | None:
        workflows = root / ".github" / "workflows"
        if not workflows.is_dir():
            return None

        commands = _Commands()
        files = sorted(p for p in workflows.iterdir() if p.suffix in (".yml", ".yaml"))
        for path in files:
            workflow = read_yaml(self.ctx, path)
            if not isinstance(workflow, dict) or not isinstance(workflow.get("jobs"), dict):
                continue
            for job in workflow["jobs"].values():
                steps = job.get("steps") if isinstance(job, dict) else None
                if not isinstance(steps, list):
                    continue
                for step in steps:
                    if not isinstance(step, dict):
                        continue
                    uses = step.get("uses")
                    if isinstance(uses, str):
                        inputs = step.get("with") if isinstance(step.get("with"), dict) else {}
                        for action, (runtime, key) in self.SETUP_ACTIONS.items():
                            if action in uses:
                                commands.set_version(runtime, inputs.get(key))
                    commands.feed(step.get("run"))

        return commands.to_config("GitHub Actions") if commands.found() else None

    def _gitlab(self, root: Path) -> CIConfig | None:
        config = read_yaml(self.ctx, root / ".gitlab-ci.yml")
        if not isinstance(config, dict):
            return None

        commands = _Commands()
        images = [config.get("image")]
        for job in config.values():
            if not isinstance(job, dict):
                continue
            images.append(job.get("image"))
            commands.feed(job.get("before_script"))
            commands.feed(job.get("script"))

        for image in images:
            for runtime, repositories in (
                ("node", frozenset({"node"})),
                ("python", frozenset({"python"})),
                ("go", frozenset({"golang", "go"})),
            ):
                version = version_from_image(image, repositories)
                if version is not None:
                    commands.versions.setdefault(runtime, version)

        return commands.to_config("GitLab CI") if commands.found() else None

    def _circleci(self, root: Path) -> CIConfig | None:
        config = read_yaml(self.ctx, root / ".circleci" / "config.yml")
        if not isinstance(config, dict) or not isinstance(config.get("jobs"), dict):
            return None

        commands = _Commands()
        for job in config["jobs"].values():
            steps = job.get("steps") if isinstance(job, dict) else None
            if not isinstance(steps, list):
                continue
            for step in steps:
                if not isinstance(step, dict) or "run" not in step:
                    continue
                run = step["run"]
                commands.feed(run.get("command") if isinstance(run, dict) else run)

        return commands.to_config("CircleCI") if commands.found() else None

    def _package_json(self, app_dir: Path) -> CIConfig | None:
        pkg = read_json_object(self.ctx, app_dir / "package.json")
        if pkg is None:
            return None
        scripts = pkg.get("scripts") if isinstance(pkg.get("scripts"), dict) else {}
        engines = pkg.get("engines") if isinstance(pkg.get("engines"), dict) else {}

        if (app_dir / "pnpm-lock.yaml").is_file():
            install, run = "pnpm install", {"build": "pnpm run build", "test": "pnpm test", "start": "pnpm start"}
        elif (app_dir / "yarn.lock").is_file():
            install, run = "yarn install", {"build": "yarn build", "test": "yarn test", "start": "yarn start"}
        elif (app_dir / "bun.lockb").is_file():
            install, run = "bun install", {"build": "bun run build", "test": "bun test", "start": "bun start"}
        else:
            install, run = "npm ci", {"build": "npm run build", "test": "npm test", "start": "npm start"}

        return CIConfig(
            install_command=install,
            build_command=run["build"] if "build" in scripts else None,
            test_command=run["test"] if "test" in scripts else None,
            start_command=run["start"] if "start" in scripts else None,
            node_version=normalize_version(engines.get("node")),
            detected_from="package.json",
        )
