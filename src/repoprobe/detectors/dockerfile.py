"""Dockerfile parsing."""

import json
import logging
import re
import shlex
from pathlib import Path

from repoprobe.files import ScanContext, find_file, read_text
from repoprobe.models import DockerfileInfo

logger = logging.getLogger(__name__)

DOCKERFILE_NAMES = ("Dockerfile", "dockerfile")

_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::?[-+]([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _strip_quotes(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _split_words(text: str) -> list[str]:
    """Shell-style split; unbalanced quotes fall back to whitespace split."""
    try:
        return shlex.split(text)
    except ValueError:
        return text.split()


def substitute(text: str, variables: dict[str, str]) -> str:
    """Expand `$VAR`, `${VAR}` and `${VAR:-default}` from known values."""

    def replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(3)
        if name in variables:
            return variables[name]
        if match.group(2) is not None:
            return match.group(2)
        return match.group(0)

    return _VAR_RE.sub(replace, text)


def logical_lines(content: str) -> list[str]:
    """Join backslash continuations and drop comment and blank lines."""
    lines: list[str] = []
    pending = ""
    for raw in content.splitlines():
        stripped = raw.strip()
        if stripped.startswith("#"):
            continue
        if stripped.endswith("\\"):
            pending += stripped[:-1].rstrip() + " "
            continue
        joined = (pending + stripped).strip()
        pending = ""
        if joined:
            lines.append(joined)
    if pending.strip():
        lines.append(pending.strip())
    return lines


def _exec_form(value: str) -> str:
    """Normalize a JSON-array CMD/ENTRYPOINT to a single shell string."""
    if value.startswith("["):
        try:
            parts = json.loads(value)
        except json.JSONDecodeError:
            return value
        if isinstance(parts, list) and all(isinstance(p, str) for p in parts):
            return shlex.join(parts)
    return value


def _key_values(text: str) -> dict[str, str]:
    pairs = {}
    for word in _split_words(text):
        if "=" in word:
            key, _, value = word.partition("=")
            pairs[key] = value
    return pairs


class DockerfileAnalyzer:
    """Parse a directory's Dockerfile into a DockerfileInfo."""

    def __init__(self, ctx: ScanContext) -> None:
        self.ctx = ctx

    def find(self, directory: Path) -> Path | None:
        return find_file(directory, *DOCKERFILE_NAMES)

    def analyze(self, directory: Path) -> DockerfileInfo | None:
        """Parse the Dockerfile in directory.

        Args:
            directory: App directory to look in.

        Returns:
            Parsed DockerfileInfo, or None if there is no readable Dockerfile.
        """
        path = self.find(directory)
        if path is None:
            return None
        content = read_text(self.ctx, path)
        if content is None:
            return None
        return self.parse(content, self.ctx.relative(path))

    def parse(self, content: str, path: str = "Dockerfile") -> DockerfileInfo:
        """Parse Dockerfile text.

        The first FROM gives the base image; WORKDIR, CMD and ENTRYPOINT keep
        the last value seen so the final stage wins.
        """
        base_image: str | None = None
        seen_from = False
        env: dict[str, str] = {}
        build_args: dict[str, str | None] = {}
        global_args: dict[str, str] = {}
        ports: list[int] = []
        workdir = healthcheck = entrypoint = cmd = None
        labels: dict[str, str] = {}

        for line in logical_lines(content):
            instruction, _, rest = line.partition(" ")
            instruction = instruction.upper()
            rest = rest.strip()

            match instruction:
                case "FROM":
                    words = [w for w in rest.split() if not w.startswith("--")]
                    if words and not seen_from:
                        base_image = substitute(words[0], global_args)
                    seen_from = True
                case "ARG":
                    for word in _split_words(rest):
                        name, sep, value = word.partition("=")
                        build_args[name] = value if sep else None
                        if sep and not seen_from:
                            global_args[name] = value
                case "ENV":
                    words = _split_words(rest)
                    if words and "=" in words[0]:
                        env.update(_key_values(rest))
                    elif words:
                        key, _, value = rest.partition(" ")
                        env[key] = _strip_quotes(value)
                case "EXPOSE":
                    known = {**{k: v for k, v in build_args.items() if v is not None}, **env}
                    for word in substitute(rest, known).split():
                        port = word.split("/", 1)[0]
                        if port.isdigit() and 0 < int(port) <= 65535 and int(port) not in ports:
                            ports.append(int(port))
                case "WORKDIR":
                    workdir = _strip_quotes(rest)
                case "HEALTHCHECK":
                    healthcheck = None if rest.upper() == "NONE" else rest
                case "CMD":
                    cmd = _exec_form(rest)
                case "ENTRYPOINT":
                    entrypoint = _exec_form(rest)
                case "LABEL":
                    labels.update(_key_values(rest))

        logger.debug("Parsed %s: base=%s ports=%s", path, base_image, ports)
        return DockerfileInfo(
            path=path,
            base_image=base_image,
            env_variables=env,
            exposed_ports=tuple(ports),
            build_args=build_args,
            workdir=workdir,
            healthcheck=healthcheck,
            entrypoint=entrypoint,
            cmd=cmd,
            labels=labels,
        )
