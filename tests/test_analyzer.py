"""Tests for the RepositoryAnalyzer orchestrator."""

import time
from unittest.mock import patch

import pytest

from repoprobe.analyzer import RepositoryAnalyzer
from repoprobe.detectors import CIConfigDetector, PortDetector
from repoprobe.exceptions import AnalyzeError, DependencyCycleError
from repoprobe.models import DatabaseType, Framework, MonorepoType
from repoprobe.settings import Settings


@pytest.fixture
def analyzer(settings) -> RepositoryAnalyzer:
    return RepositoryAnalyzer(settings)


@pytest.fixture
def cyclic_repo(make_repo):
    """Two apps whose env files point at each other."""
    return make_repo({
        "alpha/package.json": {"dependencies": {"express": "4"}},
        "alpha/.env.example": "BETA_URL=http://beta:3000\n",
        "beta/package.json": {"dependencies": {"fastify": "4"}},
        "beta/.env.example": "ALPHA_URL=http://alpha:3000\n",
    })


class TestTurborepo:
    """Test a full monorepo analysis."""

    @pytest.mark.asyncio
    async def test_apps_in_path_order(self, analyzer, turborepo) -> None:
        """Apps come back sorted by path."""
        result = await analyzer.analyze(turborepo)
        assert result.monorepo.type == MonorepoType.TURBOREPO
        assert [(p.app.name, p.app.path, p.app.framework) for p in result.apps] == [
            ("api", "apps/api", Framework.NESTJS),
            ("web", "apps/web", Framework.NEXTJS),
            ("shared", "packages/shared", Framework.EXPRESS),
        ]

    @pytest.mark.asyncio
    async def test_deploy_order(self, analyzer, turborepo) -> None:
        """Shared deploys before api, api before web."""
        result = await analyzer.analyze(turborepo)
        order = {d.app_name: d.deploy_order for d in result.app_dependencies}
        assert order["shared"] < order["api"] < order["web"]
        assert [d.app_name for d in result.app_dependencies] == ["shared", "api", "web"]

    @pytest.mark.asyncio
    async def test_databases_merged_and_enriched(self, analyzer, turborepo) -> None:
        """Compose databases carry consumers from the apps."""
        result = await analyzer.analyze(turborepo)
        assert [(d.type, d.name, d.consumers) for d in result.databases] == [
            (DatabaseType.POSTGRESQL, "db", ("api",)),
            (DatabaseType.REDIS, "cache", ("api",)),
        ]

    @pytest.mark.asyncio
    async def test_per_app_profile(self, analyzer, turborepo) -> None:
        """Each app gets its own port, CI and env profile."""
        result = await analyzer.analyze(turborepo)
        api = result.apps[0]
        assert api.port.port == 4000
        assert api.ci.start_command == "npm start"
        assert api.dockerfile is None
        assert [v.key for v in api.dependencies.env_variables] == [
            "DATABASE_URL", "REDIS_URL", "JWT_SECRET", "PORT",
        ]
        assert result.apps[1].port is None

    @pytest.mark.asyncio
    async def test_env_variables_aggregated(self, analyzer, turborepo) -> None:
        """Env variables of every app are collected."""
        result = await analyzer.analyze(turborepo)
        assert {v.for_app for v in result.env_variables} == {"api", "web"}
        assert result.diagnostics == ()


class TestDeterminism:
    """Test that output does not depend on scheduling."""

    @pytest.mark.asyncio
    async def test_two_runs_byte_identical(self, analyzer, turborepo) -> None:
        """Two runs serialize to the same JSON."""
        first = await analyzer.analyze(turborepo)
        second = await analyzer.analyze(turborepo)
        assert first.model_dump_json() == second.model_dump_json()

    @pytest.mark.asyncio
    async def test_worker_count_does_not_change_output(self, turborepo) -> None:
        """Serial and parallel runs agree."""
        serial = await RepositoryAnalyzer(Settings(_env_file=None, max_workers=1)).analyze(turborepo)
        parallel = await RepositoryAnalyzer(Settings(_env_file=None, max_workers=16)).analyze(turborepo)
        assert serial.model_dump_json() == parallel.model_dump_json()

    def test_analyze_sync(self, analyzer, turborepo) -> None:
        """analyze_sync runs the async analysis to completion."""
        assert len(analyzer.analyze_sync(turborepo).apps) == 3


class TestCycles:
    """Test dependency cycle handling."""

    @pytest.mark.asyncio
    async def test_cycle_recorded_as_diagnostic(self, analyzer, cyclic_repo) -> None:
        """A cycle becomes a diagnostic and an empty deploy order."""
        result = await analyzer.analyze(cyclic_repo)
        assert len(result.apps) == 2
        assert result.app_dependencies == ()
        (diagnostic,) = [d for d in result.diagnostics if d.stage == "app_graph"]
        assert "alpha -> beta -> alpha" in diagnostic.message

    @pytest.mark.asyncio
    async def test_strict_raises(self, settings, cyclic_repo) -> None:
        """Strict mode raises on a cycle."""
        with pytest.raises(DependencyCycleError):
            await RepositoryAnalyzer(settings, strict=True).analyze(cyclic_repo)


class TestPartialResults:
    """Test that failures never abort the run."""

    @pytest.mark.asyncio
    async def test_not_a_directory(self, analyzer, tmp_path) -> None:
        """Missing path raises AnalyzeError."""
        with pytest.raises(AnalyzeError, match="Not a directory"):
            await analyzer.analyze(tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_failing_detector_recorded(self, analyzer, make_repo) -> None:
        """A crashing detector loses only its own result."""
        root = make_repo({"package.json": {"name": "api", "dependencies": {"express": "4", "pg": "8"}}})
        with patch.object(CIConfigDetector, "detect", side_effect=RuntimeError("boom")):
            result = await analyzer.analyze(root)
        assert result.apps[0].ci is None
        assert result.apps[0].dependencies.databases[0].type == DatabaseType.POSTGRESQL
        assert any(d.stage == "ci:repo" and d.message == "failed: boom" for d in result.diagnostics)

    @pytest.mark.asyncio
    async def test_malformed_manifest_recorded(self, analyzer, make_repo) -> None:
        """Malformed package.json is recorded and the Dockerfile still wins."""
        root = make_repo({
            "package.json": "{oops",
            "Dockerfile": "FROM node:20\nEXPOSE 8080\n",
        })
        result = await analyzer.analyze(root)
        (profile,) = result.apps
        assert profile.app.framework == Framework.DOCKERFILE
        assert profile.app.default_port == 8080
        assert {(d.stage, d.path) for d in result.diagnostics} == {("files", "package.json")}

    @pytest.mark.asyncio
    async def test_time_budget_exhausted(self, make_repo) -> None:
        """A zero budget abandons every stage."""
        root = make_repo({"package.json": {"dependencies": {"express": "4"}}})
        result = await RepositoryAnalyzer(Settings(_env_file=None, time_budget=0.0)).analyze(root)
        assert result.apps == ()
        assert any(d.message.startswith("abandoned") for d in result.diagnostics)

    def test_runaway_stage_does_not_block_return(self, make_repo) -> None:
        """A stage still running past the budget does not delay analyze_sync."""
        root = make_repo({"package.json": {"dependencies": {"express": "4"}}})
        analyzer = RepositoryAnalyzer(Settings(_env_file=None, time_budget=0.5))
        with patch.object(PortDetector, "detect", side_effect=lambda *args: time.sleep(3)):
            started = time.monotonic()
            result = analyzer.analyze_sync(root)
            elapsed = time.monotonic() - started
        assert elapsed < 2
        assert result.apps[0].port is None
        assert any(
            d.stage == "port:repo" and d.message.startswith("abandoned") for d in result.diagnostics
        )

    @pytest.mark.asyncio
    async def test_empty_workspaces_fall_back_to_root(self, analyzer, make_repo) -> None:
        """Workspaces without apps fall back to the root app."""
        root = make_repo({
            "package.json": {"workspaces": ["packages/*"], "dependencies": {"express": "4"}},
            "packages/config/package.json": {"name": "config"},
        })
        result = await analyzer.analyze(root)
        assert result.monorepo.is_monorepo
        assert [p.app.path for p in result.apps] == ["."]

    @pytest.mark.asyncio
    async def test_empty_repo(self, analyzer, repo) -> None:
        """An empty checkout yields an empty analysis."""
        result = await analyzer.analyze(repo)
        assert result.apps == ()
        assert result.databases == ()
        assert not result.monorepo.is_monorepo
