"""Health-check endpoint inference."""

import logging
import math
import re
from pathlib import Path

from repoprobe.files import ScanContext, iter_files, read_text
from repoprobe.models import ComposeAnalysis, ComposeService, DetectedHealthCheck, DockerfileInfo

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = frozenset({".js", ".ts", ".mjs", ".cjs", ".py", ".go", ".rb", ".php"})

_URL_PATH_RE = re.compile(r"https?://[^/\s'\"]+(/[^\s'\"|;&)]*)")
_INTERVAL_RE = re.compile(r"--interval=(\S+)")
_TIMEOUT_RE = re.compile(r"--timeout=(\S+)")
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1, "m": 60, "h": 3600}

_HEALTH_SEGMENT = r"(?:health|healthz|healthcheck|health-check|livez|readyz|ready|ping|up)"
ROUTE_PATTERNS = (
    # app.get('/health'), router.get("/healthz"), @app.get("/health"), @app.route("/health")
    re.compile(
        r"""(?:\.|::)(?:get|head|route|all|api_route)\(\s*['"](/(?:api/)?(?:v\d+/)?"""
        + _HEALTH_SEGMENT
        + r""")['"]"""
    ),
    # http.HandleFunc("/health", ...), r.GET("/health", ...)
    re.compile(r"""(?:HandleFunc|Handle|GET|Get)\(\s*"(/(?:api/)?""" + _HEALTH_SEGMENT + r""")\""""),
    # path("health/", ...) in Django urls
    re.compile(r"""\bpath\(\s*['"]((?:api/)?""" + _HEALTH_SEGMENT + r""")/?['"]"""),
)


def parse_duration(value: str | None) -> int | None:
    """Parse `30`, `30s`, `1m30s`, `500ms`, `2h` into whole seconds, rounding up."""
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    parts = _DURATION_PART_RE.findall(value)
    if not parts or "".join(n + u for n, u in parts) != value:
        return None
    total = sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)
    return math.ceil(total)


def extract_url_path(command: str | None) -> str | None:
    """Path of the first http(s) URL in a probe command."""
    if not command:
        return None
    match = _URL_PATH_RE.search(command)
    return match.group(1) if match else None


class HealthCheckDetector:
    """Infer a health-check path from Docker config or route declarations."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def detect(
        self,
        directory: Path,
        app_name: str,
        dockerfile: DockerfileInfo | None = None,
        compose: ComposeAnalysis | None = None,
    ) -> DetectedHealthCheck | None:
        """Infer the health-check endpoint of the app in directory.

        Args:
            directory: App directory.
            app_name: App name, used to find its compose service.
            dockerfile: Parsed Dockerfile of the app, if any.
            compose: Parsed root compose file, if any.

        Returns:
            DetectedHealthCheck from the first source with a URL path, or None.
        """
        if dockerfile is not None and dockerfile.healthcheck:
            path = extract_url_path(dockerfile.healthcheck)
            if path is not None:
                interval = _INTERVAL_RE.search(dockerfile.healthcheck)
                timeout = _TIMEOUT_RE.search(dockerfile.healthcheck)
                return DetectedHealthCheck(
                    path=path,
                    interval=parse_duration(interval.group(1)) if interval else None,
                    timeout=parse_duration(timeout.group(1)) if timeout else None,
                    detected_via=f"{dockerfile.path} HEALTHCHECK",
                )
            logger.debug("HEALTHCHECK in %s has no URL", dockerfile.path)

        service = self._compose_service(directory, app_name, compose)
        if service is not None:
            path = extract_url_path(service.healthcheck_test)
            if path is not None:
                return DetectedHealthCheck(
                    path=path,
                    interval=parse_duration(service.healthcheck_interval),
                    timeout=parse_duration(service.healthcheck_timeout),
                    detected_via=f"{compose.detected_from} service {service.name} healthcheck",
                )

        return self._from_routes(directory)

    def _compose_service(
        self, directory: Path, app_name: str, compose: ComposeAnalysis | None
    ) -> ComposeService | None:
        if compose is None or not compose.services or compose.detected_from is None:
            return None
        compose_dir = (self.ctx.repo_root / compose.detected_from).parent
        target = directory.resolve()
        for service in compose.services:
            if service.build is not None and (compose_dir / service.build).resolve() == target:
                return service
        for service in compose.services:
            if service.name == app_name:
                return service
        return None

    def _from_routes(self, directory: Path) -> DetectedHealthCheck | None:
        for path in iter_files(self.ctx, directory, SOURCE_SUFFIXES):
            content = read_text(self.ctx, path)
            if content is None:
                continue
            for pattern in ROUTE_PATTERNS:
                match = pattern.search(content)
                if match:
                    route = match.group(1)
                    if not route.startswith("/"):
                        route = "/" + route
                    return DetectedHealthCheck(
                        path=route, detected_via=f"route in {self.ctx.relative(path)}"
                    )
        return None
