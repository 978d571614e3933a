"""Pydantic models for repository analysis results."""

from pydantic import Field

from repoprobe.models.docker import ComposeAnalysis, DockerfileInfo
from repoprobe.models.enums import AppType, BuildPack, EnvCategory, Framework, MonorepoType
from repoprobe.models.resources import DetectedDatabase, DetectedService, FrozenModel


class MonorepoInfo(FrozenModel):
    """Workspace tooling found at the repository root."""

    is_monorepo: bool = False
    type: MonorepoType | None = None
    workspace_paths: tuple[str, ...] = ()

    @classmethod
    def not_monorepo(cls) -> "MonorepoInfo":
        return cls()


class DetectedApp(FrozenModel):
    """One runnable deployable unit."""

    name: str
    path: str = Field(description="Relative to repo root, '.' for the root itself")
    framework: Framework
    build_pack: BuildPack
    default_port: int
    type: AppType = AppType.UNKNOWN
    build_command: str | None = None
    publish_directory: str | None = None


class DetectedEnvVariable(FrozenModel):
    """An environment variable an app expects."""

    key: str
    default_value: str | None = None
    is_required: bool = True
    category: EnvCategory = EnvCategory.OTHER
    for_app: str


class DetectedPersistentVolume(FrozenModel):
    """A volume an app needs so file-based data survives redeploys."""

    name: str
    mount_path: str
    reason: str
    for_app: str
    env_var_name: str | None = None
    env_var_value: str | None = None


class DependencyAnalysisResult(FrozenModel):
    """Databases, services and env vars derived from one app's manifests."""

    databases: tuple[DetectedDatabase, ...] = ()
    services: tuple[DetectedService, ...] = ()
    env_variables: tuple[DetectedEnvVariable, ...] = ()
    persistent_volumes: tuple[DetectedPersistentVolume, ...] = ()


class CIConfig(FrozenModel):
    """Commands and runtime versions taken from CI or package scripts."""

    install_command: str | None = None
    build_command: str | None = None
    test_command: str | None = None
    start_command: str | None = None
    node_version: str | None = None
    python_version: str | None = None
    go_version: str | None = None
    detected_from: str


class DetectedPort(FrozenModel):
    """Port an app listens on."""

    port: int
    detected_via: str
    # True when the start command reads $PORT, i.e. the platform injects it
    runtime_provided: bool = False


class DetectedHealthCheck(FrozenModel):
    """Health-check endpoint and probe timings (seconds)."""

    path: str
    interval: int | None = None
    timeout: int | None = None
    detected_via: str


class AppDependency(FrozenModel):
    """Position of an app in the monorepo dependency graph."""

    app_name: str
    depends_on: tuple[str, ...] = ()
    deploy_order: int = 0
    internal_urls: dict[str, str] = Field(default_factory=dict)


class AppProfile(FrozenModel):
    """Everything detected for a single app."""

    app: DetectedApp
    dockerfile: DockerfileInfo | None = None
    ci: CIConfig | None = None
    port: DetectedPort | None = None
    health_check: DetectedHealthCheck | None = None
    dependencies: DependencyAnalysisResult = DependencyAnalysisResult()


class Diagnostic(FrozenModel):
    """Non-fatal problem recorded during analysis."""

    stage: str
    message: str
    path: str | None = None


class RepositoryAnalysis(FrozenModel):
    """Combined result of all detection stages."""

    repo_path: str
    monorepo: MonorepoInfo
    apps: tuple[AppProfile, ...] = ()
    compose: ComposeAnalysis = ComposeAnalysis()
    app_dependencies: tuple[AppDependency, ...] = ()
    databases: tuple[DetectedDatabase, ...] = ()
    services: tuple[DetectedService, ...] = ()
    env_variables: tuple[DetectedEnvVariable, ...] = ()
    persistent_volumes: tuple[DetectedPersistentVolume, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
