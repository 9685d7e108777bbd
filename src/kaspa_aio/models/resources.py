"""Resource calculation models."""

from typing import Literal

from pydantic import BaseModel

from kaspa_aio.exceptions import ResourceInsufficientError

Dimension = Literal["ram_gb", "cpu_cores", "disk_gb"]
DIMENSIONS: tuple[Dimension, ...] = ("ram_gb", "cpu_cores", "disk_gb")


class ResourceTotals(BaseModel):
    """Summed requirement per dimension for one tier (minimum / recommended / optimal)."""

    ram_gb: float = 0.0
    cpu_cores: float = 0.0
    disk_gb: float = 0.0

    def value(self, dimension: Dimension) -> float:
        return float(getattr(self, dimension))


class CombinedTotals(BaseModel):
    minimum: ResourceTotals = ResourceTotals()
    recommended: ResourceTotals = ResourceTotals()
    optimal: ResourceTotals = ResourceTotals()


class ServiceAttribution(BaseModel):
    """Cost attributed to a service, counted once however many profiles use it."""

    service: str
    counted_for: str  # first profile that referenced the service
    used_by: list[str]
    minimum: ResourceTotals
    recommended: ResourceTotals
    optimal: ResourceTotals

    @property
    def shared(self) -> bool:
        return len(self.used_by) > 1


class ProfileBreakdown(BaseModel):
    """Which services a profile added to the totals and which it reused."""

    profile: str
    counted: list[str] = []
    reused: list[str] = []
    minimum: ResourceTotals = ResourceTotals()


class SharedService(BaseModel):
    service: str
    used_by: list[str]
    saved: ResourceTotals  # minimum cost avoided by not duplicating the service


class HostResources(BaseModel):
    """Detected (or supplied) host capacity."""

    ram_gb: float
    cpu_cores: float
    disk_gb: float

    def value(self, dimension: Dimension) -> float:
        return float(getattr(self, dimension))


class DimensionCheck(BaseModel):
    dimension: Dimension
    available: float
    minimum: float
    recommended: float
    status: Literal["pass", "below_recommended", "insufficient"]
    shortfall: float = 0.0  # below minimum when insufficient, below recommended otherwise


class Suggestion(BaseModel):
    """Ranked remediation hint."""

    severity: Literal["critical", "warning", "info"]
    message: str
    dimension: Dimension | None = None
    service: str | None = None
    saves: float | None = None


class ResourceReport(BaseModel):
    """Derived, ephemeral result of combining profile requirements."""

    profiles: list[str]
    totals: CombinedTotals
    attributions: list[ServiceAttribution]
    shared: list[SharedService] = []
    breakdown: list[ProfileBreakdown] = []
    host: HostResources | None = None
    checks: list[DimensionCheck] = []
    suggestions: list[Suggestion] = []

    @property
    def insufficient(self) -> list[str]:
        return [check.dimension for check in self.checks if check.status == "insufficient"]

    @property
    def below_recommended(self) -> list[str]:
        return [check.dimension for check in self.checks if check.status == "below_recommended"]

    def enforce(self) -> None:
        """Raise when the host fails a minimum requirement.

        Raises:
            ResourceInsufficientError: at least one dimension is insufficient
        """
        if self.insufficient:
            raise ResourceInsufficientError(self.insufficient)
