"""docker-compose parsing."""

import logging
from pathlib import Path
from typing import Any

from repoprobe.files import ScanContext, read_yaml
from repoprobe.models import ComposeAnalysis, ComposeService, DetectedDatabase, DetectedService
from repoprobe.models.docker import service_type_for_image

logger = logging.getLogger(__name__)

COMPOSE_FILENAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)


def _scalar(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_ports(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    ports = []
    for entry in raw:
        if isinstance(entry, (str, int)) and not isinstance(entry, bool):
            ports.append(str(entry))
        elif isinstance(entry, dict) and entry.get("target") is not None:
            target = str(entry["target"])
            published = entry.get("published")
            ports.append(f"{published}:{target}" if published is not None else target)
    return tuple(ports)


def _parse_environment(raw: Any) -> dict[str, str | None]:
    if isinstance(raw, dict):
        return {str(k): _scalar(v) for k, v in raw.items()}
    env: dict[str, str | None] = {}
    if isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, str):
                continue
            key, sep, value = entry.partition("=")
            env[key.strip()] = value if sep else None
    return env


def _parse_depends_on(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, dict):
        return tuple(str(k) for k in raw)
    if isinstance(raw, list):
        return tuple(str(v) for v in raw if isinstance(v, str))
    return ()


def _parse_build(raw: Any) -> str | None:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        context = raw.get("context", ".")
        return context if isinstance(context, str) else "."
    return None


def _parse_healthcheck_test(raw: Any) -> str | None:
    # ["CMD", "curl", "-f", "http://localhost/health"] or ["CMD-SHELL", "curl ..."]
    if isinstance(raw, list):
        parts = [str(p) for p in raw]
        if parts and parts[0] in ("CMD", "CMD-SHELL", "NONE"):
            if parts[0] == "NONE":
                return None
            parts = parts[1:]
        return " ".join(parts) or None
    return raw if isinstance(raw, str) and raw else None


def parse_service(name: str, raw: dict[str, Any]) -> ComposeService:
    healthcheck = raw.get("healthcheck")
    if not isinstance(healthcheck, dict) or healthcheck.get("disable"):
        healthcheck = {}
    image = raw.get("image")
    return ComposeService(
        name=name,
        image=image if isinstance(image, str) else None,
        build=_parse_build(raw.get("build")),
        ports=_parse_ports(raw.get("ports")),
        environment=_parse_environment(raw.get("environment")),
        depends_on=_parse_depends_on(raw.get("depends_on")),
        healthcheck_test=_parse_healthcheck_test(healthcheck.get("test")),
        healthcheck_interval=_scalar(healthcheck.get("interval")),
        healthcheck_timeout=_scalar(healthcheck.get("timeout")),
    )


class DockerComposeAnalyzer:
    """Split a compose file into services, databases and external infrastructure."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def find(self, directory: Path) -> Path | None:
        for filename in COMPOSE_FILENAMES:
            candidate = directory / filename
            if candidate.is_file():
                return candidate
        return None

    def analyze(self, directory: Path | None = None) -> ComposeAnalysis:
        """Parse the compose file in directory (default: repo root).

        Returns an empty ComposeAnalysis when no usable file exists.
        """
        directory = directory or self.ctx.repo_root
        path = self.find(directory)
        if path is None:
            return ComposeAnalysis()

        data = read_yaml(self.ctx, path)
        rel_path = self.ctx.relative(path)
        if not isinstance(data, dict) or not isinstance(data.get("services"), dict):
            logger.debug("%s has no services mapping", rel_path)
            return ComposeAnalysis(detected_from=rel_path)

        services: list[ComposeService] = []
        databases: list[DetectedDatabase] = []
        external: list[DetectedService] = []
        for name, raw in data["services"].items():
            if not isinstance(raw, dict):
                continue
            service = parse_service(str(name), raw)
            services.append(service)

            db_type = service.get_database_type()
            if db_type is not None:
                databases.append(
                    DetectedDatabase(
                        type=db_type,
                        name=service.name,
                        env_var_name=db_type.env_var_name,
                        detected_via=f"{rel_path}:{service.name}",
                        port=db_type.default_port,
                    )
                )
                continue

            if service.image and not service.is_app():
                service_type = service_type_for_image(service.image)
                if service_type is not None:
                    external.append(
                        DetectedService(
                            type=service_type,
                            description=service_type.description,
                            required_env_vars=service_type.env_vars,
                            detected_via=f"{rel_path}:{service.name}",
                        )
                    )

        logger.info(
            "Parsed %s: %d services, %d databases", rel_path, len(services), len(databases)
        )
        return ComposeAnalysis(
            detected_from=rel_path,
            services=tuple(services),
            databases=tuple(databases),
            external_services=tuple(external),
        )
