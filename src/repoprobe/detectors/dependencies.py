"""Per-app databases, services and environment variables."""

import logging
import re
from pathlib import Path

from repoprobe.detectors.apps import (
    normalize_python_name,
    read_manifest_dependencies,
    read_node_dependencies,
    read_python_dependencies,
)
from repoprobe.detectors.dockerfile import DockerfileAnalyzer
from repoprobe.files import ScanContext, iter_files, read_text
from repoprobe.models import (
    DatabaseType,
    DependencyAnalysisResult,
    DetectedApp,
    DetectedDatabase,
    DetectedEnvVariable,
    DetectedPersistentVolume,
    DetectedService,
    EnvCategory,
    Framework,
    ServiceType,
)

logger = logging.getLogger(__name__)

Rules = dict[str, tuple[str, ...]]

# Order matters: ORMs that support several engines resolve to the first listed.
DATABASE_RULES: tuple[tuple[DatabaseType, Rules], ...] = (
    (
        DatabaseType.POSTGRESQL,
        {
            "npm": ("pg", "postgres", "@prisma/client", "sequelize", "typeorm", "drizzle-orm", "knex"),
            "pip": ("psycopg2", "psycopg2-binary", "psycopg", "asyncpg"),
            "composer": ("doctrine/dbal", "illuminate/database"),
            "gem": ("pg", "activerecord-postgresql-adapter"),
            "go": ("github.com/lib/pq", "github.com/jackc/pgx", "gorm.io/driver/postgres"),
            "cargo": ("tokio-postgres", "diesel"),
        },
    ),
    (
        DatabaseType.MYSQL,
        {
            "npm": ("mysql", "mysql2"),
            "pip": ("mysqlclient", "pymysql", "aiomysql"),
            "gem": ("mysql2",),
            "go": ("github.com/go-sql-driver/mysql", "gorm.io/driver/mysql"),
            "cargo": ("mysql",),
        },
    ),
    (
        DatabaseType.MONGODB,
        {
            "npm": ("mongodb", "mongoose", "@typegoose/typegoose"),
            "pip": ("pymongo", "motor", "mongoengine"),
            "composer": ("mongodb/mongodb", "jenssegers/mongodb"),
            "gem": ("mongoid", "mongo"),
            "go": ("go.mongodb.org/mongo-driver",),
            "cargo": ("mongodb",),
        },
    ),
    (
        DatabaseType.REDIS,
        {
            "npm": ("redis", "ioredis", "@upstash/redis", "bullmq", "bull"),
            "pip": ("redis", "aioredis", "celery"),
            "composer": ("predis/predis",),
            "gem": ("redis", "sidekiq", "resque"),
            "go": ("github.com/go-redis/redis", "github.com/redis/go-redis"),
            "cargo": ("redis", "deadpool-redis"),
        },
    ),
    (
        DatabaseType.CLICKHOUSE,
        {
            "npm": ("@clickhouse/client", "clickhouse"),
            "pip": ("clickhouse-driver", "clickhouse-connect", "asynch"),
            "go": ("github.com/ClickHouse/clickhouse-go",),
        },
    ),
)

SERVICE_RULES: tuple[tuple[ServiceType, Rules], ...] = (
    (
        ServiceType.S3,
        {
            "npm": ("@aws-sdk/client-s3", "aws-sdk", "minio"),
            "pip": ("boto3", "minio"),
            "go": ("github.com/aws/aws-sdk-go", "github.com/minio/minio-go"),
        },
    ),
    (
        ServiceType.ELASTICSEARCH,
        {
            "npm": ("@elastic/elasticsearch",),
            "pip": ("elasticsearch", "elasticsearch-dsl"),
            "go": ("github.com/elastic/go-elasticsearch",),
        },
    ),
    (
        ServiceType.RABBITMQ,
        {
            "npm": ("amqplib", "amqp-connection-manager"),
            "pip": ("pika", "aio-pika"),
            "go": ("github.com/streadway/amqp", "github.com/rabbitmq/amqp091-go"),
        },
    ),
    (
        ServiceType.KAFKA,
        {
            "npm": ("kafkajs", "node-rdkafka"),
            "pip": ("kafka-python", "aiokafka", "confluent-kafka"),
            "go": ("github.com/segmentio/kafka-go", "github.com/confluentinc/confluent-kafka-go"),
        },
    ),
    (
        ServiceType.EMAIL,
        {
            "npm": ("nodemailer", "@sendgrid/mail", "resend"),
            "pip": ("sendgrid", "resend"),
        },
    ),
)

SQLITE_RULES: Rules = {
    "npm": ("better-sqlite3", "sql.js", "sqlite3"),
    "pip": ("aiosqlite",),
    "composer": ("ext-sqlite3",),
    "gem": ("sqlite3",),
    "go": ("github.com/mattn/go-sqlite3", "modernc.org/sqlite", "gorm.io/driver/sqlite"),
    "cargo": ("rusqlite",),
}

# mount path, env var, env value
SQLITE_FRAMEWORK_DEFAULTS: dict[Framework, tuple[str, str, str]] = {
    Framework.LARAVEL: ("/var/www/html/database", "DB_DATABASE", "/var/www/html/database/database.sqlite"),
    Framework.DJANGO: ("/app/data", "DATABASE_PATH", "/app/data/db.sqlite3"),
}
SQLITE_DEFAULT = ("/data", "DATABASE_PATH", "/data/db.sqlite")

# First matching category wins; substrings of the upper-cased key.
ENV_CATEGORIES: tuple[tuple[EnvCategory, tuple[str, ...]], ...] = (
    (EnvCategory.DATABASE, ("DATABASE", "DB_", "POSTGRES", "MYSQL", "MONGODB", "MONGO_")),
    (EnvCategory.CACHE, ("REDIS", "CACHE_", "MEMCACHE")),
    (EnvCategory.STORAGE, ("AWS", "S3_", "MINIO", "STORAGE_")),
    (EnvCategory.EMAIL, ("SMTP", "MAIL", "SENDGRID", "RESEND")),
    (EnvCategory.SECRETS, ("SECRET", "_KEY", "_TOKEN", "PASSWORD", "PRIVATE")),
    (EnvCategory.NETWORK, ("PORT", "HOST", "_URL", "DOMAIN")),
)

ENV_FILES = (".env.example", ".env.sample", ".env.template", "env.example")

SOURCE_IGNORED_KEYS = frozenset({
    "PATH", "HOME", "USER", "SHELL", "PWD", "TERM", "LANG", "LC_ALL", "NODE_ENV", "PYTHONPATH",
})
DOCKERFILE_IGNORED_KEYS = frozenset({
    "PATH", "HOME", "PYTHONUNBUFFERED", "PYTHONDONTWRITEBYTECODE", "DEBIAN_FRONTEND",
    "TZ", "LANG", "LC_ALL", "NODE_ENV",
})

_ENV_LINE_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")
_PLACEHOLDER_RE = re.compile(
    r"^(?:<.*>|\.{3}|\*{3,}|x{3,}|changeme|change[_-]me|replace[_-]?me|todo|placeholder)$|your[_-]",
    re.IGNORECASE,
)
_SOURCE_ENV_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    ".py": (
        re.compile(r"""os\.(?:getenv|environ\.get)\s*\(\s*["']([A-Z_][A-Z0-9_]*)["']"""),
        re.compile(r"""os\.environ\s*\[\s*["']([A-Z_][A-Z0-9_]*)["']"""),
    ),
    ".js": (re.compile(r"process\.env\.([A-Z_][A-Z0-9_]*)"),),
    ".go": (re.compile(r"""os\.Getenv\s*\(\s*"([A-Z_][A-Z0-9_]*)\""""),),
}
for _suffix in (".ts", ".mjs", ".mts", ".cjs"):
    _SOURCE_ENV_PATTERNS[_suffix] = _SOURCE_ENV_PATTERNS[".js"]
_PRISMA_SQLITE_RE = re.compile(r"""provider\s*=\s*"sqlite\"""", re.IGNORECASE)

# Source fallback only looks near the app root.
SOURCE_SCAN_DEPTH = 2


def categorize_env_var(key: str) -> EnvCategory:
    upper = key.upper()
    for category, patterns in ENV_CATEGORIES:
        if any(pattern in upper for pattern in patterns):
            return category
    return EnvCategory.OTHER


def is_placeholder(value: str) -> bool:
    """True for empty values and obvious placeholders like `your_api_key` or `<token>`."""
    return not value or _PLACEHOLDER_RE.search(value) is not None


def parse_env_file(content: str) -> list[tuple[str, str]]:
    """Parse .env text into (key, value) pairs, last assignment per key winning."""
    entries: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _ENV_LINE_RE.match(line)
        if not match:
            continue
        key, value = match.group(1), match.group(2).strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        entries[key] = value
    return list(entries.items())


def _find_match(declared: set[str], candidates: tuple[str, ...], manager: str) -> str | None:
    for candidate in candidates:
        if manager == "go":
            # Major-version suffixes: github.com/jackc/pgx/v5
            if any(dep == candidate or dep.startswith(candidate + "/") for dep in declared):
                return candidate
        elif manager == "pip":
            if normalize_python_name(candidate) in declared:
                return candidate
        elif candidate in declared:
            return candidate
    return None


class DependencyAnalyzer:
    """Scan one app's manifests and env files."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def analyze(self, app: DetectedApp) -> DependencyAnalysisResult:
        """Detect databases, services, env vars and volumes for app.

        Args:
            app: The app to analyze; its path is relative to the repo root.

        Returns:
            DependencyAnalysisResult with every database and service
            attributed to app.
        """
        directory = self.ctx.repo_root / app.path
        manifests = self.manifest_dependencies(directory)
        return DependencyAnalysisResult(
            databases=tuple(self._databases(app, manifests)),
            services=tuple(self._services(app, manifests)),
            env_variables=tuple(self.env_variables(app, directory)),
            persistent_volumes=tuple(self._sqlite_volumes(app, directory, manifests)),
        )

    def manifest_dependencies(self, directory: Path) -> dict[str, set[str]]:
        """Declared dependency names per package manager."""
        found: dict[str, set[str]] = {}
        node = read_node_dependencies(self.ctx, directory)
        if node is not None:
            found["npm"] = set(node)

        python: set[str] = set()
        for manifest in ("requirements.txt", "pyproject.toml"):
            deps = read_python_dependencies(self.ctx, directory, manifest)
            if deps is not None:
                python |= deps
        if python:
            found["pip"] = python

        for manager, manifest in (
            ("composer", "composer.json"),
            ("gem", "Gemfile"),
            ("go", "go.mod"),
            ("cargo", "Cargo.toml"),
        ):
            if (directory / manifest).is_file():
                deps = read_manifest_dependencies(self.ctx, directory, manifest)
                if deps is not None:
                    found[manager] = deps
        return found

    def _databases(self, app: DetectedApp, manifests: dict[str, set[str]]) -> list[DetectedDatabase]:
        databases = []
        for db_type, rules in DATABASE_RULES:
            for manager, declared in manifests.items():
                match = _find_match(declared, rules.get(manager, ()), manager)
                if match is not None:
                    databases.append(
                        DetectedDatabase(
                            type=db_type,
                            name=db_type.value,
                            env_var_name=db_type.env_var_name,
                            consumers=(app.name,),
                            detected_via=f"{manager}:{match}",
                            port=db_type.default_port,
                        )
                    )
                    break
        return databases

    def _services(self, app: DetectedApp, manifests: dict[str, set[str]]) -> list[DetectedService]:
        services = []
        for service_type, rules in SERVICE_RULES:
            for manager, declared in manifests.items():
                match = _find_match(declared, rules.get(manager, ()), manager)
                if match is not None:
                    services.append(
                        DetectedService(
                            type=service_type,
                            description=service_type.description,
                            required_env_vars=service_type.env_vars,
                            consumers=(app.name,),
                            detected_via=f"{manager}:{match}",
                        )
                    )
                    break
        return services

    def env_variables(self, app: DetectedApp, directory: Path) -> list[DetectedEnvVariable]:
        """Env vars from the first env example file, else source, else Dockerfile."""
        for filename in ENV_FILES:
            content = read_text(self.ctx, directory / filename)
            if content is None:
                continue
            logger.debug("Reading env vars for %s from %s", app.name, filename)
            return [
                DetectedEnvVariable(
                    key=key,
                    default_value=value or None,
                    is_required=is_placeholder(value),
                    category=categorize_env_var(key),
                    for_app=app.name,
                )
                for key, value in parse_env_file(content)
            ]

        keys = self._keys_from_source(directory) or self._keys_from_dockerfile(directory)
        return [
            DetectedEnvVariable(key=key, category=categorize_env_var(key), for_app=app.name)
            for key in keys
        ]

    def _keys_from_source(self, directory: Path) -> list[str]:
        keys: dict[str, None] = {}
        suffixes = frozenset(_SOURCE_ENV_PATTERNS)
        for path in iter_files(self.ctx, directory, suffixes, max_depth=SOURCE_SCAN_DEPTH):
            content = read_text(self.ctx, path)
            if content is None:
                continue
            for pattern in _SOURCE_ENV_PATTERNS[path.suffix.lower()]:
                keys.update(dict.fromkeys(pattern.findall(content)))
        return [key for key in keys if key not in SOURCE_IGNORED_KEYS]

    def _keys_from_dockerfile(self, directory: Path) -> list[str]:
        info = DockerfileAnalyzer(self.ctx).analyze(directory)
        if info is None:
            return []
        keys = dict.fromkeys([*info.env_variables, *info.build_args])
        return [key for key in keys if key not in DOCKERFILE_IGNORED_KEYS and key.isupper()]

    def _sqlite_volumes(
        self, app: DetectedApp, directory: Path, manifests: dict[str, set[str]]
    ) -> list[DetectedPersistentVolume]:
        reason = None
        for manager, declared in manifests.items():
            match = _find_match(declared, SQLITE_RULES.get(manager, ()), manager)
            if match is not None:
                reason = f"SQLite database detected ({match})"
                defaults = SQLITE_FRAMEWORK_DEFAULTS.get(app.framework, SQLITE_DEFAULT)
                break
        else:
            for schema in ("prisma/schema.prisma", "schema.prisma"):
                content = read_text(self.ctx, directory / schema)
                if content is not None and _PRISMA_SQLITE_RE.search(content):
                    reason = "SQLite database detected (prisma:sqlite)"
                    defaults = SQLITE_DEFAULT
                    break

        if reason is None:
            return []
        mount_path, env_var_name, env_var_value = defaults
        return [
            DetectedPersistentVolume(
                name="sqlite-data",
                mount_path=mount_path,
                reason=reason,
                for_app=app.name,
                env_var_name=env_var_name,
                env_var_value=env_var_value,
            )
        ]
