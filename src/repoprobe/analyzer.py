"""Repository analysis orchestrator."""

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, TypeVar

from repoprobe.detectors import (
    AppDependencyDetector,
    AppDetector,
    CIConfigDetector,
    DependencyAnalyzer,
    DockerComposeAnalyzer,
    DockerfileAnalyzer,
    HealthCheckDetector,
    MonorepoDetector,
    PortDetector,
)
from repoprobe.detectors.apps import detect_language
from repoprobe.enrichment import enrich_database_consumers, merge_databases, merge_services
from repoprobe.exceptions import AnalyzeError, DependencyCycleError
from repoprobe.files import ScanContext
from repoprobe.models import (
    AppDependency,
    AppProfile,
    ComposeAnalysis,
    DependencyAnalysisResult,
    DetectedApp,
    DetectedEnvVariable,
    Diagnostic,
    MonorepoInfo,
    RepositoryAnalysis,
)
from repoprobe.settings import Settings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryAnalyzer:
    """Run every detector over a checkout and assemble one RepositoryAnalysis.

    Per-app detectors run concurrently in worker threads; the result is
    always assembled in sorted app-path order, so it does not depend on
    scheduling.
    """

    def __init__(self, settings: Settings | None = None, strict: bool = False) -> None:
        self.settings = settings or get_settings()
        self.strict = strict

    def analyze_sync(self, path: Path) -> RepositoryAnalysis:
        return asyncio.run(self.analyze(path))

    async def analyze(self, path: Path) -> RepositoryAnalysis:
        """Analyze the checkout at path.

        Args:
            path: Repository root.

        Returns:
            The best available profile, with non-fatal problems in diagnostics.

        Raises:
            AnalyzeError: If path is not a directory.
            DependencyCycleError: If apps form a cycle and strict is set.
        """
        if not path.is_dir():
            raise AnalyzeError(f"Not a directory: {path}")

        run = _Run(ScanContext.from_settings(path, self.settings), self.settings)
        try:
            return await self._analyze(run)
        finally:
            run.close()

    async def _analyze(self, run: "_Run") -> RepositoryAnalysis:
        ctx = run.ctx
        logger.info("Analyzing %s", ctx.repo_root)

        monorepo, compose = await asyncio.gather(
            run.stage("monorepo", MonorepoDetector(ctx).detect, default=MonorepoInfo.not_monorepo()),
            run.stage("compose", DockerComposeAnalyzer(ctx).analyze, default=ComposeAnalysis()),
        )

        apps = await self._detect_apps(run, monorepo)
        logger.info("Found %d app(s)", len(apps))

        profiles = list(await asyncio.gather(*(self._profile(run, app, compose) for app in apps)))

        env_variables = tuple(var for p in profiles for var in p.dependencies.env_variables)
        app_dependencies = await self._app_dependencies(run, apps, env_variables)

        databases = merge_databases(
            compose.databases, *(p.dependencies.databases for p in profiles)
        )
        databases = enrich_database_consumers(databases, env_variables)
        services = merge_services(
            compose.external_services, *(p.dependencies.services for p in profiles)
        )

        diagnostics = sorted(
            set(ctx.diagnostics), key=lambda d: (d.stage, d.path or "", d.message)
        )
        logger.info("Analysis complete: %d diagnostic(s)", len(diagnostics))
        return RepositoryAnalysis(
            repo_path=str(ctx.repo_root),
            monorepo=monorepo,
            apps=tuple(profiles),
            compose=compose,
            app_dependencies=tuple(app_dependencies),
            databases=databases,
            services=services,
            env_variables=env_variables,
            persistent_volumes=tuple(v for p in profiles for v in p.dependencies.persistent_volumes),
            diagnostics=tuple(diagnostics),
        )

    async def _detect_apps(self, run: "_Run", monorepo: MonorepoInfo) -> list[DetectedApp]:
        detector = AppDetector(run.ctx)
        if monorepo.is_monorepo:
            directories = await run.stage(
                "apps", detector.workspace_directories, monorepo, default=[]
            )
            found = await asyncio.gather(
                *(
                    run.stage("apps", detector.detect_in_directory, d, default=None, bounded=True)
                    for d in directories
                )
            )
            apps = detector.finalize([app for app in found if app is not None])
            if apps:
                return apps
            logger.info("No apps in workspaces, checking repository root")
        return await run.stage("apps", detector.detect_single_app, default=[])

    async def _profile(self, run: "_Run", app: DetectedApp, compose: ComposeAnalysis) -> AppProfile:
        ctx = run.ctx
        directory = ctx.repo_root / app.path
        async with run.workers:
            dockerfile, ci, port, dependencies = await asyncio.gather(
                run.stage(f"dockerfile:{app.name}", DockerfileAnalyzer(ctx).analyze, directory),
                run.stage(f"ci:{app.name}", CIConfigDetector(ctx).detect, directory),
                run.stage(
                    f"port:{app.name}", PortDetector(ctx).detect, directory, detect_language(directory)
                ),
                run.stage(
                    f"dependencies:{app.name}",
                    DependencyAnalyzer(ctx).analyze,
                    app,
                    default=DependencyAnalysisResult(),
                ),
            )
            health_check = await run.stage(
                f"healthcheck:{app.name}",
                HealthCheckDetector(ctx).detect,
                directory,
                app.name,
                dockerfile,
                compose,
            )
        return AppProfile(
            app=app,
            dockerfile=dockerfile,
            ci=ci,
            port=port,
            health_check=health_check,
            dependencies=dependencies,
        )

    async def _app_dependencies(
        self, run: "_Run", apps: list[DetectedApp], env_variables: tuple[DetectedEnvVariable, ...]
    ) -> list[AppDependency]:
        try:
            return await run.stage(
                "app_graph",
                AppDependencyDetector(run.ctx).detect,
                apps,
                env_variables,
                default=[],
                reraise=(DependencyCycleError,),
            )
        except DependencyCycleError as e:
            logger.warning("%s", e)
            run.ctx.record("app_graph", str(e))
            if self.strict:
                raise
            return []


class _Run:
    """State shared by the stages of one analysis run."""

    def __init__(self, ctx: ScanContext, settings: Settings) -> None:
        self.ctx = ctx
        self.workers = asyncio.Semaphore(settings.max_workers)
        # Not the loop default executor, so asyncio.run never joins it
        self.executor = ThreadPoolExecutor(
            max_workers=settings.max_workers, thread_name_prefix="repoprobe"
        )
        self.deadline = asyncio.get_running_loop().time() + settings.time_budget

    def remaining(self) -> float:
        return max(0.0, self.deadline - asyncio.get_running_loop().time())

    def close(self) -> None:
        """Drop queued stages and stop waiting for ones still running."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    async def _in_thread(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(self.executor, func, *args), self.remaining()
        )

    async def stage(
        self,
        name: str,
        func: Callable[..., T],
        *args: Any,
        default: T | None = None,
        bounded: bool = False,
        reraise: tuple[type[Exception], ...] = (),
    ) -> T | None:
        """Run a blocking detector in a thread within the remaining time budget.

        Failures and timeouts are logged, recorded as diagnostics, and turn
        into default. A stage that times out is abandoned: its thread runs on
        but nothing waits for it.
        """
        logger.debug("[%s] starting", name)
        try:
            if bounded:
                async with self.workers:
                    return await self._in_thread(func, *args)
            return await self._in_thread(func, *args)
        except TimeoutError:
            logger.warning("[%s] exceeded the time budget", name)
            self.ctx.diagnostics.append(
                Diagnostic(stage=name, message="abandoned: analysis time budget exceeded")
            )
        except reraise:
            raise
        except Exception as e:
            logger.exception("[%s] failed", name)
            self.ctx.diagnostics.append(Diagnostic(stage=name, message=f"failed: {e}"))
        return default
