"""Shared fixtures that build checkouts under tmp_path."""

import json
from pathlib import Path
from typing import Any

import pytest

from repoprobe.files import ScanContext
from repoprobe.settings import Settings, get_settings


def write_files(root: Path, files: dict[str, Any]) -> Path:
    """Write files relative to root. dict/list values are dumped as JSON."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, (dict, list)):
            content = json.dumps(content, indent=2)
        path.write_text(content)
    return root


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Never let a cached Settings leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, ignoring any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def repo(tmp_path) -> Path:
    """Empty checkout root."""
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def ctx(repo) -> ScanContext:
    """Scan context over the empty checkout."""
    return ScanContext(repo_root=repo)


@pytest.fixture
def make_repo(repo):
    """Return a function that writes files into the checkout and returns its root."""

    def _make(files: dict[str, Any]) -> Path:
        return write_files(repo, files)

    return _make


@pytest.fixture
def nestjs_package() -> dict:
    return {"name": "api", "dependencies": {"@nestjs/core": "^10.0.0"}}


@pytest.fixture
def turborepo(make_repo) -> Path:
    """pnpm + turbo monorepo: web -> api -> shared, with redis and postgres."""
    return make_repo({
        "turbo.json": {"pipeline": {}},
        "package.json": {"name": "acme", "private": True},
        "pnpm-workspace.yaml": "packages:\n  - apps/*\n  - packages/*\n",
        "packages/shared/package.json": {
            "name": "@acme/shared",
            "dependencies": {"express": "^4.18.0"},
        },
        "apps/api/package.json": {
            "name": "@acme/api",
            "scripts": {"start": "node dist/main.js --port 4000"},
            "dependencies": {
                "@nestjs/core": "^10.0.0",
                "@acme/shared": "workspace:*",
                "pg": "^8.11.0",
                "ioredis": "^5.3.0",
            },
        },
        "apps/api/.env.example": (
            "DATABASE_URL=\n"
            "REDIS_URL=redis://localhost:6379\n"
            "JWT_SECRET=\n"
            "PORT=4000\n"
        ),
        "apps/web/package.json": {
            "name": "@acme/web",
            "dependencies": {
                "next": "^14.0.0",
                "react": "^18.2.0",
                "@acme/api": "workspace:*",
            },
        },
        "apps/web/.env.example": "NEXT_PUBLIC_SITE_NAME=Acme\n",
        "docker-compose.yml": (
            "services:\n"
            "  db:\n"
            "    image: postgres:16\n"
            "  cache:\n"
            "    image: redis:7-alpine\n"
        ),
    })


@pytest.fixture
def valid_dockerfile() -> str:
    """Return a valid minimal Dockerfile."""
    return """FROM node:20-slim
WORKDIR /app
COPY package*.json ./
RUN npm ci
COPY . .
EXPOSE 3000
CMD ["npm", "start"]
"""


@pytest.fixture
def invalid_dockerfile() -> str:
    """Return a Dockerfile with no FROM."""
    return """WORKDIR /app
COPY . .
CMD ["npm", "start"]
"""


@pytest.fixture
def valid_compose() -> str:
    """Return a compose file with an app, two databases and object storage."""
    return """services:
  app:
    build: ./app
    ports:
      - "3000:3000"
    environment:
      DATABASE_URL: postgres://db:5432/app
    depends_on:
      - db
      - cache
    healthcheck:
      test: ["CMD", "curl", "-f", "http://localhost:3000/healthz"]
      interval: 30s
      timeout: 5s
  db:
    image: postgres:16
    environment:
      - POSTGRES_PASSWORD=secret
  cache:
    image: redis:7-alpine
  storage:
    image: minio/minio
  proxy:
    image: nginx:alpine
"""
