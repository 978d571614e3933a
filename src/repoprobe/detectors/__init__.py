"""Detectors that each read one kind of evidence from a checkout."""

from repoprobe.detectors.app_graph import AppDependencyDetector
from repoprobe.detectors.apps import AppDetector
from repoprobe.detectors.ci import CIConfigDetector
from repoprobe.detectors.compose import DockerComposeAnalyzer
from repoprobe.detectors.dependencies import DependencyAnalyzer
from repoprobe.detectors.dockerfile import DockerfileAnalyzer
from repoprobe.detectors.healthcheck import HealthCheckDetector
from repoprobe.detectors.monorepo import MonorepoDetector
from repoprobe.detectors.ports import PortDetector

__all__ = [
    "AppDependencyDetector",
    "AppDetector",
    "CIConfigDetector",
    "DependencyAnalyzer",
    "DockerComposeAnalyzer",
    "DockerfileAnalyzer",
    "HealthCheckDetector",
    "MonorepoDetector",
    "PortDetector",
]
