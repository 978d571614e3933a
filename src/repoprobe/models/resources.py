"""Backing resources (databases, services) an app depends on."""

from pydantic import BaseModel, ConfigDict

from repoprobe.models.enums import DatabaseType, ServiceType


class FrozenModel(BaseModel):
    """Immutable value object."""

    model_config = ConfigDict(frozen=True)


class DetectedDatabase(FrozenModel):
    """A database an app (or the compose stack) needs."""

    type: DatabaseType
    name: str
    env_var_name: str
    consumers: tuple[str, ...] = ()
    detected_via: str
    port: int | None = None

    def with_consumers(self, *app_names: str) -> "DetectedDatabase":
        """Return a copy with app_names appended, skipping ones already present."""
        consumers = list(self.consumers)
        for name in app_names:
            if name not in consumers:
                consumers.append(name)
        return self.model_copy(update={"consumers": tuple(consumers)})


class DetectedService(FrozenModel):
    """An external non-database dependency, e.g. object storage."""

    type: ServiceType
    description: str = ""
    required_env_vars: tuple[str, ...] = ()
    consumers: tuple[str, ...] = ()
    detected_via: str | None = None

    def with_consumers(self, *app_names: str) -> "DetectedService":
        consumers = list(self.consumers)
        for name in app_names:
            if name not in consumers:
                consumers.append(name)
        return self.model_copy(update={"consumers": tuple(consumers)})
