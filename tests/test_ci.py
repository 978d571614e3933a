"""Tests for CI config detection."""

import pytest

from repoprobe.detectors.ci import CIConfigDetector, normalize_version, version_from_image

GITHUB_WORKFLOW = """name: ci
on: [push]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - uses: actions/setup-node@v4
        with:
          node-version: "20.x"
      - run: npm ci
      - run: |
          npm run build
          npm test
"""


class TestGitHubActions:
    """Test workflow parsing."""

    def test_commands_and_version(self, ctx, make_repo) -> None:
        """Workflow run steps and setup-node version are read."""
        make_repo({".github/workflows/ci.yml": GITHUB_WORKFLOW})
        config = CIConfigDetector(ctx).detect()
        assert config.detected_from == "GitHub Actions"
        assert config.install_command == "npm ci"
        assert config.build_command == "npm run build"
        assert config.test_command == "npm test"
        assert config.node_version == "20"

    def test_python_version(self, ctx, make_repo) -> None:
        """setup-python version is read."""
        make_repo({
            ".github/workflows/test.yaml": (
                "jobs:\n"
                "  t:\n"
                "    steps:\n"
                "      - uses: actions/setup-python@v5\n"
                "        with:\n"
                "          python-version: '3.12'\n"
                "      - run: pip install -r requirements.txt\n"
                "      - run: pytest -q\n"
            )
        })
        config = CIConfigDetector(ctx).detect()
        assert config.python_version == "3.12"
        assert config.install_command == "pip install -r requirements.txt"
        assert config.test_command == "pytest -q"

    def test_first_workflow_wins(self, ctx, make_repo) -> None:
        """Workflows are read in file name order; the first command of each kind is kept."""
        make_repo({
            ".github/workflows/b.yml": "jobs:\n  x:\n    steps:\n      - run: yarn test\n",
            ".github/workflows/a.yml": "jobs:\n  x:\n    steps:\n      - run: npm test\n",
        })
        assert CIConfigDetector(ctx).detect().test_command == "npm test"

    def test_workflow_without_commands_falls_through(self, ctx, make_repo) -> None:
        """Workflow without commands falls through to package.json."""
        make_repo({
            ".github/workflows/lint.yml": "jobs:\n  x:\n    steps:\n      - uses: actions/checkout@v4\n",
            "package.json": {"scripts": {"build": "tsc"}},
        })
        config = CIConfigDetector(ctx).detect()
        assert config.detected_from == "package.json"


class TestGitLab:
    """Test .gitlab-ci.yml parsing."""

    def test_image_version_and_scripts(self, ctx, make_repo) -> None:
        """Default image gives the version, scripts give commands."""
        make_repo({
            ".gitlab-ci.yml": (
                "image: node:18.17-alpine\n"
                "test:\n"
                "  before_script:\n"
                "    - npm ci\n"
                "  script:\n"
                "    - npm run test\n"
            )
        })
        config = CIConfigDetector(ctx).detect()
        assert config.detected_from == "GitLab CI"
        assert config.node_version == "18.17"
        assert config.install_command == "npm ci"
        assert config.test_command == "npm run test"

    def test_job_image(self, ctx, make_repo) -> None:
        """Job-level image gives the version."""
        make_repo({".gitlab-ci.yml": "build:\n  image: golang:1.22\n  script:\n    - go build ./...\n"})
        config = CIConfigDetector(ctx).detect()
        assert config.go_version == "1.22"
        assert config.build_command == "go build ./..."


class TestCircleCI:
    """Test CircleCI config parsing."""

    def test_run_steps(self, ctx, make_repo) -> None:
        """Run steps accept string and command forms."""
        make_repo({
            ".circleci/config.yml": (
                "version: 2.1\n"
                "jobs:\n"
                "  build:\n"
                "    steps:\n"
                "      - checkout\n"
                "      - run: npm install\n"
                "      - run:\n"
                "          name: Test\n"
                "          command: npm test\n"
            )
        })
        config = CIConfigDetector(ctx).detect()
        assert config.detected_from == "CircleCI"
        assert config.install_command == "npm install"
        assert config.test_command == "npm test"


class TestPackageJson:
    """Test the package.json fallback."""

    def test_npm_default(self, ctx, make_repo) -> None:
        """Scripts map to npm commands without a lockfile."""
        make_repo({
            "package.json": {
                "scripts": {"build": "next build", "start": "next start"},
                "engines": {"node": ">=18.0.0"},
            }
        })
        config = CIConfigDetector(ctx).detect()
        assert config.install_command == "npm ci"
        assert config.build_command == "npm run build"
        assert config.start_command == "npm start"
        assert config.test_command is None
        assert config.node_version == "18.0.0"

    @pytest.mark.parametrize(
        ("lockfile", "install", "build"),
        [
            ("pnpm-lock.yaml", "pnpm install", "pnpm run build"),
            ("yarn.lock", "yarn install", "yarn build"),
            ("bun.lockb", "bun install", "bun run build"),
        ],
    )
    def test_lockfile_picks_manager(self, ctx, make_repo, lockfile, install, build) -> None:
        """Lockfile selects the package manager."""
        make_repo({"package.json": {"scripts": {"build": "vite build"}}, lockfile: ""})
        config = CIConfigDetector(ctx).detect()
        assert config.install_command == install
        assert config.build_command == build

    def test_app_directory(self, ctx, make_repo) -> None:
        """App directory scripts are used."""
        make_repo({"apps/web/package.json": {"scripts": {"test": "vitest"}}})
        config = CIConfigDetector(ctx).detect(ctx.repo_root / "apps" / "web")
        assert config.test_command == "npm test"

    def test_nothing_found(self, ctx) -> None:
        """No CI and no scripts yields None."""
        assert CIConfigDetector(ctx).detect() is None


class TestVersions:
    """Test version normalization."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("^18.0.0", "18.0.0"),
            ("18.x", "18"),
            (">=3.11", "3.11"),
            (20, "20"),
            (3.12, "3.12"),
            (["3.11", "3.12"], "3.11"),
            ("lts/*", None),
            (None, None),
        ],
    )
    def test_normalize_version(self, value, expected) -> None:
        """Versions keep their leading dotted number."""
        assert normalize_version(value) == expected

    def test_version_from_image(self) -> None:
        """Image tags give versions for known repositories."""
        assert version_from_image("python:3.12-slim", frozenset({"python"})) == "3.12"
        assert version_from_image({"name": "node:20"}, frozenset({"node"})) == "20"
        assert version_from_image("node:20", frozenset({"python"})) is None
        assert version_from_image("node", frozenset({"node"})) is None
