"""Build context resolution for detected apps."""


def resolve_base_directory(app_path: str, override: str | None = None) -> str:
    """Resolve the build context directory for an app.

    An explicit override always wins, with "/" meaning the repository root.
    Otherwise the app's own path is used: "" for the root app, "/<path>" for
    nested apps. The result does not depend on the build pack.

    Args:
        app_path: DetectedApp.path, relative to the repo root ("." for root).
        override: User-supplied base directory, if any.

    Returns:
        Base directory, "" meaning repository root.
    """
    if override is not None:
        return "" if override == "/" else override

    path = app_path.strip()
    if path in ("", ".", "./", "/"):
        return ""
    if path.startswith("./"):
        path = path[2:]
    return "/" + path.strip("/")
