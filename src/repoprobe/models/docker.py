"""Pydantic models for Dockerfile and docker-compose analysis."""

import re

from pydantic import Field

from repoprobe.models.enums import DatabaseType, ServiceType
from repoprobe.models.resources import DetectedDatabase, DetectedService, FrozenModel

# Image name prefix -> database type, matched against the last path component
# of the image reference with tag and digest removed.
IMAGE_DATABASE_TYPES: tuple[tuple[str, DatabaseType], ...] = (
    ("postgres", DatabaseType.POSTGRESQL),
    ("postgis", DatabaseType.POSTGRESQL),
    ("timescaledb", DatabaseType.POSTGRESQL),
    ("pgvector", DatabaseType.POSTGRESQL),
    ("mysql", DatabaseType.MYSQL),
    ("mariadb", DatabaseType.MARIADB),
    ("mongo", DatabaseType.MONGODB),
    ("redis", DatabaseType.REDIS),
    ("valkey", DatabaseType.REDIS),
    ("keydb", DatabaseType.KEYDB),
    ("dragonfly", DatabaseType.DRAGONFLY),
    ("clickhouse", DatabaseType.CLICKHOUSE),
)

# Admin UIs and exporters share a prefix with the database they front
NON_DATABASE_MARKERS = ("express", "exporter", "commander", "insight", "admin")

IMAGE_SERVICE_TYPES: tuple[tuple[str, ServiceType], ...] = (
    ("minio", ServiceType.S3),
    ("localstack", ServiceType.S3),
    ("elasticsearch", ServiceType.ELASTICSEARCH),
    ("opensearch", ServiceType.ELASTICSEARCH),
    ("rabbitmq", ServiceType.RABBITMQ),
    ("kafka", ServiceType.KAFKA),
    ("cp-kafka", ServiceType.KAFKA),
    ("mailhog", ServiceType.EMAIL),
    ("mailpit", ServiceType.EMAIL),
)

_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)")


def image_repository(image: str) -> str:
    """Return the bare repository name of an image reference.

    `docker.io/bitnami/postgresql:16-debian@sha256:…` -> `postgresql`
    """
    ref = image.split("@", 1)[0]
    last = ref.rsplit("/", 1)[-1]
    return last.split(":", 1)[0].lower()


def image_tag(image: str) -> str | None:
    """Return the tag of an image reference, or None when untagged."""
    ref = image.split("@", 1)[0]
    last = ref.rsplit("/", 1)[-1]
    if ":" not in last:
        return None
    return last.split(":", 1)[1]


def database_type_for_image(image: str) -> DatabaseType | None:
    """Classify an image as a database by its repository prefix."""
    repo = image_repository(image)
    if any(marker in repo for marker in NON_DATABASE_MARKERS):
        return None
    for prefix, db_type in IMAGE_DATABASE_TYPES:
        if repo.startswith(prefix):
            return db_type
    return None


def service_type_for_image(image: str) -> ServiceType | None:
    repo = image_repository(image)
    for prefix, service_type in IMAGE_SERVICE_TYPES:
        if repo.startswith(prefix):
            return service_type
    return None


class DockerfileInfo(FrozenModel):
    """Facts parsed from a Dockerfile."""

    path: str
    base_image: str | None = None
    env_variables: dict[str, str] = Field(default_factory=dict)
    exposed_ports: tuple[int, ...] = ()
    build_args: dict[str, str | None] = Field(default_factory=dict)
    workdir: str | None = None
    healthcheck: str | None = None
    entrypoint: str | None = None
    cmd: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    def get_primary_port(self) -> int | None:
        return self.exposed_ports[0] if self.exposed_ports else None

    def _version_for(self, repositories: frozenset[str]) -> str | None:
        if not self.base_image or image_repository(self.base_image) not in repositories:
            return None
        tag = image_tag(self.base_image)
        if tag is None:
            return None
        match = _VERSION_RE.match(tag)
        return match.group(1) if match else None

    def get_node_version(self) -> str | None:
        return self._version_for(frozenset({"node"}))

    def get_python_version(self) -> str | None:
        return self._version_for(frozenset({"python"}))

    def get_go_version(self) -> str | None:
        return self._version_for(frozenset({"golang", "go"}))


class ComposeService(FrozenModel):
    """A single service from a docker-compose file."""

    name: str
    image: str | None = None
    build: str | None = Field(default=None, description="Build context, relative to the compose file")
    ports: tuple[str, ...] = ()
    environment: dict[str, str | None] = Field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    healthcheck_test: str | None = None
    healthcheck_interval: str | None = None
    healthcheck_timeout: str | None = None

    def is_app(self) -> bool:
        return self.build is not None

    def get_database_type(self) -> DatabaseType | None:
        if self.image is None or self.is_app():
            return None
        return database_type_for_image(self.image)

    def is_database(self) -> bool:
        return self.get_database_type() is not None

    def container_ports(self) -> list[int]:
        """Container-side ports from `host:container` mappings, in declared order."""
        ports = []
        for mapping in self.ports:
            container = mapping.split("/", 1)[0].rsplit(":", 1)[-1]
            container = container.split("-", 1)[0]
            if container.isdigit():
                ports.append(int(container))
        return ports

    def get_default_port(self) -> int | None:
        db_type = self.get_database_type()
        if db_type is not None:
            return db_type.default_port
        ports = self.container_ports()
        return ports[0] if ports else None


class ComposeAnalysis(FrozenModel):
    """Services from a compose file, split into databases and other infrastructure."""

    detected_from: str | None = None
    services: tuple[ComposeService, ...] = ()
    databases: tuple[DetectedDatabase, ...] = ()
    external_services: tuple[DetectedService, ...] = ()
