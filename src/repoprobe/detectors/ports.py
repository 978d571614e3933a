"""Listening port inference."""

import logging
import re
from pathlib import Path

from repoprobe.detectors.apps import detect_language
from repoprobe.files import ScanContext, read_json_object, read_text
from repoprobe.models import DetectedPort, Language

logger = logging.getLogger(__name__)

# Only applied when a start command defers to $PORT. Node has no convention.
LANGUAGE_DEFAULT_PORTS: dict[Language, int] = {
    Language.PYTHON: 8000,
}

ENTRY_FILES = (
    "main.py",
    "app.py",
    "server.py",
    "run.py",
    "asgi.py",
    "wsgi.py",
    "src/main.py",
    "src/app.py",
    "app/main.py",
    "index.js",
    "server.js",
    "app.js",
    "main.js",
    "index.ts",
    "server.ts",
    "main.ts",
    "src/index.js",
    "src/index.ts",
    "src/server.js",
    "src/server.ts",
    "src/main.js",
    "src/main.ts",
    "src/app.ts",
    "main.go",
    "server.go",
    "cmd/server/main.go",
    "cmd/api/main.go",
)

_PORT_VALUE = r"(\$\{?PORT(?::-\d+)?\}?|\d{2,5})"
COMMAND_PATTERNS = (
    re.compile(r"(?:--port|-p)(?:\s+|=)" + _PORT_VALUE),
    re.compile(r"(?:--bind|-b)(?:\s+|=)\S*:" + _PORT_VALUE),
    re.compile(r"\bPORT=" + _PORT_VALUE),
    re.compile(r"\brunserver\s+(?:\S*:)?" + _PORT_VALUE),
)

SOURCE_PATTERNS = (
    re.compile(r"process\.env\.PORT\s*(?:\|\||\?\?)\s*['\"]?(\d{2,5})"),
    re.compile(r"""(?:getenv|environ\.get)\(\s*['"]PORT['"]\s*,\s*['"]?(\d{2,5})"""),
    re.compile(r"uvicorn\.run\([^)]*\bport\s*=\s*(\d{2,5})"),
    re.compile(r"\.run\([^)]*\bport\s*=\s*(\d{2,5})"),
    re.compile(r"\.listen\(\s*(\d{2,5})\s*[,)]"),
    re.compile(r"""(?:ListenAndServe|Run|Listen|Start)\(\s*["'][^"']*:(\d{2,5})["']"""),
)

SOURCE_PLACEHOLDERS = (
    re.compile(r"process\.env\.PORT\b"),
    re.compile(r"""(?:getenv|Getenv|environ\.get)\(\s*['"]PORT['"]"""),
    re.compile(r"""environ\[\s*['"]PORT['"]\s*\]"""),
)

_DEFAULT_RE = re.compile(r":-(\d+)")


def _valid(port: int) -> bool:
    return 0 < port <= 65535


class PortDetector:
    """Find the port an app listens on, or None when there is no evidence."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def detect(self, directory: Path, language: Language | None = None) -> DetectedPort | None:
        """Infer the listening port of the app in directory.

        Precedence: start-command flags (Procfile, package.json scripts),
        then source idioms in entry files, then the language default when
        a $PORT placeholder was seen.
        """
        placeholder_seen = False

        for source, command in self._start_commands(directory):
            result = self._from_command(command, source)
            if isinstance(result, DetectedPort):
                return result
            placeholder_seen = placeholder_seen or result

        for entry in ENTRY_FILES:
            path = directory / entry
            content = read_text(self.ctx, path)
            if content is None:
                continue
            for pattern in SOURCE_PATTERNS:
                match = pattern.search(content)
                if match and _valid(int(match.group(1))):
                    return DetectedPort(port=int(match.group(1)), detected_via=entry)
            if any(p.search(content) for p in SOURCE_PLACEHOLDERS):
                placeholder_seen = True

        if placeholder_seen:
            language = language or detect_language(directory)
            default = LANGUAGE_DEFAULT_PORTS.get(language)
            if default is None:
                logger.debug("Port for %s is runtime-provided with no %s default", directory, language)
                return None
            return DetectedPort(
                port=default,
                detected_via=f"$PORT placeholder ({language} default)",
                runtime_provided=True,
            )
        return None

    def _start_commands(self, directory: Path) -> list[tuple[str, str]]:
        commands = []
        procfile = read_text(self.ctx, directory / "Procfile")
        if procfile is not None:
            for line in procfile.splitlines():
                process, sep, command = line.partition(":")
                if sep and process.strip() == "web":
                    commands.append(("Procfile", command.strip()))

        pkg = read_json_object(self.ctx, directory / "package.json")
        scripts = pkg.get("scripts") if pkg else None
        if isinstance(scripts, dict):
            for name in ("start", "serve"):
                if isinstance(scripts.get(name), str):
                    commands.append((f"package.json scripts.{name}", scripts[name]))
        return commands

    @staticmethod
    def _from_command(command: str, source: str) -> DetectedPort | bool:
        """A port from command flags, or whether a $PORT placeholder was seen."""
        placeholder = False
        for pattern in COMMAND_PATTERNS:
            for match in pattern.finditer(command):
                value = match.group(1)
                if value.isdigit():
                    if _valid(int(value)):
                        return DetectedPort(port=int(value), detected_via=source)
                    continue
                # ${PORT:-3000}: injected at runtime, literal fallback known
                default = _DEFAULT_RE.search(value)
                if default and _valid(int(default.group(1))):
                    return DetectedPort(
                        port=int(default.group(1)), detected_via=source, runtime_provided=True
                    )
                placeholder = True
        return placeholder
