"""Closed value sets used across detection results."""

from enum import StrEnum


class MonorepoType(StrEnum):
    """Workspace tooling that declares a monorepo."""

    TURBOREPO = "turborepo"
    PNPM = "pnpm"
    LERNA = "lerna"
    NX = "nx"
    RUSH = "rush"
    NPM_WORKSPACES = "npm-workspaces"
    SIMPLE = "simple"  # several app directories, no workspace tool


class Framework(StrEnum):
    """Frameworks the app detector can recognise."""

    NESTJS = "nestjs"
    NEXTJS = "nextjs"
    NUXT = "nuxt"
    REMIX = "remix"
    ASTRO = "astro"
    SVELTEKIT = "sveltekit"
    VITE_REACT = "vite-react"
    VITE_VUE = "vite-vue"
    VITE_SVELTE = "vite-svelte"
    CREATE_REACT_APP = "create-react-app"
    FASTIFY = "fastify"
    HONO = "hono"
    EXPRESS = "express"
    DJANGO = "django"
    FASTAPI = "fastapi"
    FLASK = "flask"
    GO_FIBER = "go-fiber"
    GO_GIN = "go-gin"
    GO_ECHO = "go-echo"
    GO = "go"
    RAILS = "rails"
    SINATRA = "sinatra"
    RUST_AXUM = "rust-axum"
    RUST_ACTIX = "rust-actix"
    RUST = "rust"
    LARAVEL = "laravel"
    SYMFONY = "symfony"
    PHOENIX = "phoenix"
    SPRING_BOOT = "spring-boot"
    DOCKERFILE = "dockerfile"
    DOCKER_COMPOSE = "docker-compose"
    UNKNOWN = "unknown"


class BuildPack(StrEnum):
    """Strategy used to turn an app's source into a runnable container."""

    NIXPACKS = "nixpacks"
    DOCKERFILE = "dockerfile"
    DOCKERCOMPOSE = "dockercompose"
    STATIC = "static"


class AppType(StrEnum):
    """Role an app plays in the deployment."""

    FRONTEND = "frontend"
    BACKEND = "backend"
    FULLSTACK = "fullstack"
    UNKNOWN = "unknown"


class EnvCategory(StrEnum):
    """Category of an environment variable, derived from its key."""

    DATABASE = "database"
    CACHE = "cache"
    STORAGE = "storage"
    EMAIL = "email"
    SECRETS = "secrets"
    NETWORK = "network"
    OTHER = "other"


class DatabaseType(StrEnum):
    """Databases that can be provisioned alongside an app."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    MONGODB = "mongodb"
    REDIS = "redis"
    KEYDB = "keydb"
    DRAGONFLY = "dragonfly"
    CLICKHOUSE = "clickhouse"

    @property
    def default_port(self) -> int:
        return DATABASE_DEFAULT_PORTS[self]

    @property
    def env_var_name(self) -> str:
        """Conventional variable an app reads the connection string from."""
        return DATABASE_ENV_VARS[self]


class ServiceType(StrEnum):
    """External non-database services."""

    S3 = "s3"
    ELASTICSEARCH = "elasticsearch"
    RABBITMQ = "rabbitmq"
    KAFKA = "kafka"
    EMAIL = "email"

    @property
    def description(self) -> str:
        return SERVICE_DESCRIPTIONS[self]

    @property
    def env_vars(self) -> tuple[str, ...]:
        """Variables an app needs to reach the service."""
        return SERVICE_ENV_VARS[self]


class Language(StrEnum):
    """Primary language of an app directory."""

    NODE = "node"
    PYTHON = "python"
    GO = "go"
    RUBY = "ruby"
    RUST = "rust"
    PHP = "php"
    ELIXIR = "elixir"
    JAVA = "java"
    UNKNOWN = "unknown"


DATABASE_DEFAULT_PORTS: dict[DatabaseType, int] = {
    DatabaseType.POSTGRESQL: 5432,
    DatabaseType.MYSQL: 3306,
    DatabaseType.MARIADB: 3306,
    DatabaseType.MONGODB: 27017,
    DatabaseType.REDIS: 6379,
    DatabaseType.KEYDB: 6379,
    DatabaseType.DRAGONFLY: 6379,
    DatabaseType.CLICKHOUSE: 8123,
}

DATABASE_ENV_VARS: dict[DatabaseType, str] = {
    DatabaseType.POSTGRESQL: "DATABASE_URL",
    DatabaseType.MYSQL: "DATABASE_URL",
    DatabaseType.MARIADB: "DATABASE_URL",
    DatabaseType.MONGODB: "MONGODB_URL",
    DatabaseType.REDIS: "REDIS_URL",
    DatabaseType.KEYDB: "REDIS_URL",
    DatabaseType.DRAGONFLY: "REDIS_URL",
    DatabaseType.CLICKHOUSE: "CLICKHOUSE_URL",
}

SERVICE_DESCRIPTIONS: dict[ServiceType, str] = {
    ServiceType.S3: "S3-compatible object storage (AWS S3, MinIO, etc.)",
    ServiceType.ELASTICSEARCH: "Elasticsearch for full-text search",
    ServiceType.RABBITMQ: "RabbitMQ message broker",
    ServiceType.KAFKA: "Apache Kafka for event streaming",
    ServiceType.EMAIL: "Email service (SMTP, SendGrid, Resend)",
}

SERVICE_ENV_VARS: dict[ServiceType, tuple[str, ...]] = {
    ServiceType.S3: ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "S3_BUCKET", "S3_ENDPOINT"),
    ServiceType.ELASTICSEARCH: ("ELASTICSEARCH_URL", "ELASTIC_URL"),
    ServiceType.RABBITMQ: ("RABBITMQ_URL", "AMQP_URL"),
    ServiceType.KAFKA: ("KAFKA_BROKERS", "KAFKA_URL"),
    ServiceType.EMAIL: ("SMTP_HOST", "SMTP_PORT", "SENDGRID_API_KEY", "RESEND_API_KEY"),
}
