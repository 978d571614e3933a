"""Tests for Dockerfile parsing."""

import pytest

from repoprobe.detectors.dockerfile import DockerfileAnalyzer, logical_lines, substitute


@pytest.fixture
def analyzer(ctx) -> DockerfileAnalyzer:
    return DockerfileAnalyzer(ctx)


class TestParse:
    """Test instruction handling."""

    def test_expose_order_and_primary_port(self, analyzer) -> None:
        """Ports keep EXPOSE order, the first is primary."""
        info = analyzer.parse("FROM node:20\nEXPOSE 3000\nEXPOSE 8080\n")
        assert info.exposed_ports == (3000, 8080)
        assert info.get_primary_port() == 3000

    def test_last_workdir_wins(self, analyzer) -> None:
        """Last WORKDIR is reported."""
        info = analyzer.parse("FROM node:20\nWORKDIR /build\nWORKDIR /app\n")
        assert info.workdir == "/app"

    def test_valid_dockerfile(self, analyzer, valid_dockerfile) -> None:
        """Typical Dockerfile parses completely."""
        info = analyzer.parse(valid_dockerfile)
        assert info.base_image == "node:20-slim"
        assert info.workdir == "/app"
        assert info.exposed_ports == (3000,)
        assert info.cmd == "npm start"
        assert info.get_node_version() == "20"

    def test_first_from_is_base_image(self, analyzer) -> None:
        """Multi-stage build reports the first base image."""
        content = "FROM node:20 AS build\nRUN npm run build\nFROM nginx:alpine\nCOPY --from=build /app/dist /usr/share/nginx/html\n"
        assert analyzer.parse(content).base_image == "node:20"

    def test_from_with_platform_flag(self, analyzer) -> None:
        """--platform flag is skipped."""
        assert analyzer.parse("FROM --platform=linux/amd64 python:3.12\n").base_image == "python:3.12"

    def test_arg_before_from_substituted(self, analyzer) -> None:
        """ARG defaults are substituted into FROM."""
        info = analyzer.parse("ARG NODE_VERSION=18\nFROM node:${NODE_VERSION}-alpine\n")
        assert info.base_image == "node:18-alpine"
        assert info.build_args == {"NODE_VERSION": "18"}

    def test_arg_without_default(self, analyzer) -> None:
        """ARG without a default maps to None."""
        assert analyzer.parse("FROM alpine\nARG TOKEN\n").build_args == {"TOKEN": None}

    def test_env_forms(self, analyzer) -> None:
        """ENV accepts key=value and legacy forms."""
        content = 'FROM alpine\nENV A=1 B="two words"\nENV LEGACY some value\n'
        assert analyzer.parse(content).env_variables == {"A": "1", "B": "two words", "LEGACY": "some value"}

    def test_expose_resolves_variables(self, analyzer) -> None:
        """EXPOSE resolves ARG and ENV references."""
        content = "FROM alpine\nARG PORT=4000\nENV METRICS=9090\nEXPOSE $PORT ${METRICS}/tcp 53/udp\n"
        assert analyzer.parse(content).exposed_ports == (4000, 9090, 53)

    def test_expose_deduplicates(self, analyzer) -> None:
        """Repeated ports are listed once."""
        assert analyzer.parse("FROM alpine\nEXPOSE 80 80\nEXPOSE 80\n").exposed_ports == (80,)

    def test_exec_form_cmd_and_entrypoint(self, analyzer) -> None:
        """JSON-array CMD and ENTRYPOINT become shell strings."""
        content = 'FROM python\nENTRYPOINT ["uvicorn"]\nCMD ["main:app", "--port", "8000"]\n'
        info = analyzer.parse(content)
        assert info.entrypoint == "uvicorn"
        assert info.cmd == "main:app --port 8000"

    def test_shell_form_cmd(self, analyzer) -> None:
        """Shell-form CMD is kept as written."""
        assert analyzer.parse("FROM node\nCMD node server.js\n").cmd == "node server.js"

    def test_healthcheck(self, analyzer) -> None:
        """HEALTHCHECK command and options are parsed."""
        content = "FROM node\nHEALTHCHECK --interval=30s CMD curl -f http://localhost:3000/health || exit 1\n"
        assert "http://localhost:3000/health" in analyzer.parse(content).healthcheck

    def test_healthcheck_none(self, analyzer) -> None:
        """HEALTHCHECK NONE disables the check."""
        assert analyzer.parse("FROM node\nHEALTHCHECK NONE\n").healthcheck is None

    def test_labels(self, analyzer) -> None:
        """LABEL pairs are parsed."""
        info = analyzer.parse('FROM node\nLABEL org.opencontainers.image.title="api" team=core\n')
        assert info.labels == {"org.opencontainers.image.title": "api", "team": "core"}

    def test_lowercase_instructions(self, analyzer) -> None:
        """Instructions are case-insensitive."""
        assert analyzer.parse("from node:20\nexpose 3000\n").exposed_ports == (3000,)

    def test_missing_from(self, analyzer, invalid_dockerfile) -> None:
        """Dockerfile without FROM has no base image."""
        info = analyzer.parse(invalid_dockerfile)
        assert info.base_image is None
        assert info.workdir == "/app"

    def test_parse_is_deterministic(self, analyzer, valid_dockerfile) -> None:
        """Parsing the same content twice is equal."""
        assert analyzer.parse(valid_dockerfile) == analyzer.parse(valid_dockerfile)


class TestAnalyze:
    """Test reading from disk."""

    def test_analyze_directory(self, ctx, make_repo) -> None:
        """Dockerfile in an app directory is analyzed."""
        make_repo({"apps/api/Dockerfile": "FROM node\nEXPOSE 4000\n"})
        info = DockerfileAnalyzer(ctx).analyze(ctx.repo_root / "apps" / "api")
        assert info.path == "apps/api/Dockerfile"
        assert info.exposed_ports == (4000,)

    def test_lowercase_filename(self, ctx, make_repo) -> None:
        """Lowercase dockerfile is found."""
        make_repo({"dockerfile": "FROM node\n"})
        assert DockerfileAnalyzer(ctx).analyze(ctx.repo_root).base_image == "node"

    def test_missing(self, ctx) -> None:
        """No Dockerfile yields None."""
        assert DockerfileAnalyzer(ctx).analyze(ctx.repo_root) is None


class TestHelpers:
    """Test line joining and substitution."""

    def test_logical_lines_join_continuations(self) -> None:
        """Continuations are joined and comments dropped."""
        content = "# comment\nRUN apt-get update \\\n    && apt-get install -y curl\n\nEXPOSE 80\n"
        assert logical_lines(content) == ["RUN apt-get update && apt-get install -y curl", "EXPOSE 80"]

    def test_comment_inside_continuation_dropped(self) -> None:
        """Comments inside a continuation are dropped."""
        content = "RUN a \\\n# note\n  b\n"
        assert logical_lines(content) == ["RUN a b"]

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("$PORT", "3000"),
            ("${PORT}", "3000"),
            ("${MISSING:-8080}", "8080"),
            ("${MISSING}", "${MISSING}"),
            ("node:${PORT}", "node:3000"),
        ],
    )
    def test_substitute(self, text, expected) -> None:
        """$VAR and ${VAR} are substituted when known."""
        assert substitute(text, {"PORT": "3000"}) == expected
