"""Pydantic models for repoprobe."""

from repoprobe.models.analysis import (
    AppDependency,
    AppProfile,
    CIConfig,
    DependencyAnalysisResult,
    DetectedApp,
    DetectedEnvVariable,
    DetectedHealthCheck,
    DetectedPersistentVolume,
    DetectedPort,
    Diagnostic,
    MonorepoInfo,
    RepositoryAnalysis,
)
from repoprobe.models.docker import ComposeAnalysis, ComposeService, DockerfileInfo
from repoprobe.models.enums import (
    AppType,
    BuildPack,
    DatabaseType,
    EnvCategory,
    Framework,
    Language,
    MonorepoType,
    ServiceType,
)
from repoprobe.models.resources import DetectedDatabase, DetectedService

__all__ = [
    "AppDependency",
    "AppProfile",
    "AppType",
    "BuildPack",
    "CIConfig",
    "ComposeAnalysis",
    "ComposeService",
    "DatabaseType",
    "DependencyAnalysisResult",
    "DetectedApp",
    "DetectedDatabase",
    "DetectedEnvVariable",
    "DetectedHealthCheck",
    "DetectedPersistentVolume",
    "DetectedPort",
    "DetectedService",
    "Diagnostic",
    "DockerfileInfo",
    "EnvCategory",
    "Framework",
    "Language",
    "MonorepoInfo",
    "MonorepoType",
    "RepositoryAnalysis",
    "ServiceType",
]
