"""Service catalog models.

Loaded from ``resources/service_catalog.json``. The catalog is read-only after
load; nothing in the engine mutates these objects.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

SettingType = Literal["password", "port", "path", "enum", "boolean", "string", "integer"]
ServiceKind = Literal["infrastructure", "application"]
ServiceInterface = Literal["env", "cli"]


class ResourceRange(BaseModel):
    """Minimum / recommended / optimal amounts for one resource dimension."""

    minimum: float = 0.0
    recommended: float = 0.0
    optimal: float = 0.0


class ResourceRequirement(BaseModel):
    """Resource footprint of a single service."""

    ram_gb: ResourceRange = Field(default_factory=ResourceRange)
    cpu_cores: ResourceRange = Field(default_factory=ResourceRange)
    disk_gb: ResourceRange = Field(default_factory=ResourceRange)


class SettingSpec(BaseModel):
    """Declaration of a configuration key owned by a service (or global scope)."""

    key: str
    type: SettingType = "string"
    default: Any = None
    required: bool = False
    choices: list[str] = []  # enum only
    min_length: int | None = None  # password only
    generated: bool = False  # password generated when left empty
    container_port: int | None = None  # port published as host:container
    mount: str | None = None  # path mounted into the container
    description: str = ""


class SettingBinding(BaseModel):
    """How a setting reaches the container.

    ``env`` bindings become environment entries, ``arg``/``arg_map`` bindings
    become command-line arguments. ``arg`` is a template where ``{value}`` is
    this setting and ``{OTHER_KEY}`` is any other configured key.
    """

    key: str
    env: str | None = None
    arg: str | None = None
    arg_map: dict[str, str] = {}


class HealthCheckSpec(BaseModel):
    """Container healthcheck emitted into the manifest."""

    test: list[str]
    interval: str = "30s"
    timeout: str = "10s"
    retries: int = 3
    start_period: str | None = None


class Service(BaseModel):
    """A single deployable unit with a fixed configuration interface."""

    id: str
    name: str
    description: str = ""
    image: str
    kind: ServiceKind
    interface: ServiceInterface
    command: list[str] = []
    dependencies: list[str] = []
    requirements: ResourceRequirement = Field(default_factory=ResourceRequirement)
    settings: list[SettingSpec] = []
    bindings: list[SettingBinding] = []
    healthcheck: HealthCheckSpec | None = None
    shared: bool = False
    excludes: list[str] = []
    external_alternative: str | None = None
    restart: str = "unless-stopped"

    @property
    def setting_keys(self) -> list[str]:
        return [setting.key for setting in self.settings]


class Profile(BaseModel):
    """Named group of services with a declared resource footprint."""

    id: str
    name: str
    description: str = ""
    category: str = "optional"
    services: list[str]
    resources: ResourceRequirement = Field(default_factory=ResourceRequirement)
    conflicts: list[str] = []


class Template(BaseModel):
    """User-facing bundle activating an ordered list of profiles."""

    id: str
    name: str
    description: str = ""
    category: str = "beginner"
    profiles: list[str]
    defaults: dict[str, Any] = {}


class Catalog(BaseModel):
    """Root structure of service_catalog.json."""

    version: str
    globals: list[SettingSpec] = []
    services: list[Service]
    profiles: list[Profile]
    templates: list[Template] = []

    @model_validator(mode="after")
    def check_unique_ids(self) -> "Catalog":
        for label, items in (("service", self.services), ("profile", self.profiles), ("template", self.templates)):
            ids = [item.id for item in items]
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            if duplicates:
                raise ValueError(f"Duplicate {label} ids: {', '.join(duplicates)}")
        return self


class ResolvedSelection(BaseModel):
    """Result of resolving a set of profiles against the catalog."""

    profiles: list[str]
    services: list[Service]  # topologically ordered
    conflicts: list[tuple[str, str]] = []

    @property
    def service_ids(self) -> list[str]:
        return [service.id for service in self.services]
