"""Combined resource requirements across selected profiles."""

import warnings
from collections.abc import Iterable

from kaspa_aio.exceptions import ResourceBelowRecommendedWarning
from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import ResourceRequirement
from kaspa_aio.models.resources import (
    DIMENSIONS,
    CombinedTotals,
    Dimension,
    DimensionCheck,
    HostResources,
    ProfileBreakdown,
    ResourceReport,
    ResourceTotals,
    ServiceAttribution,
    SharedService,
    Suggestion,
)
from kaspa_aio.services.catalog import ServiceCatalog

logger = get_logger(__name__)

UNITS: dict[Dimension, str] = {
    "ram_gb": "GB RAM",
    "cpu_cores": "CPU cores",
    "disk_gb": "GB disk",
}

SEVERITY_RANK = {"critical": 0, "warning": 1, "info": 2}


def _tier(requirement: ResourceRequirement, tier: str) -> ResourceTotals:
    return ResourceTotals(**{dim: getattr(getattr(requirement, dim), tier) for dim in DIMENSIONS})


def _add(left: ResourceTotals, right: ResourceTotals) -> ResourceTotals:
    return ResourceTotals(**{dim: left.value(dim) + right.value(dim) for dim in DIMENSIONS})


def _fmt(amount: float) -> str:
    return f"{amount:g}"


class ResourceCalculator:
    """Adds up service requirements without counting shared services twice."""

    def __init__(self, catalog: ServiceCatalog) -> None:
        self.catalog = catalog

    def combine(self, profile_ids: Iterable[str], host: HostResources | None = None) -> ResourceReport:
        """
        Combine the requirements of the selected profiles.

        Each service is counted once, by the first profile that references it;
        later profiles only join its ``used_by`` list.

        Args:
            profile_ids: Selected profiles, in selection order
            host: Detected host capacity to compare against (optional)

        Returns:
            ResourceReport. Low resources are reported, never raised.
        """
        selection = self.catalog.resolve_profiles(profile_ids)

        totals = CombinedTotals()
        attributions: dict[str, ServiceAttribution] = {}
        breakdown: list[ProfileBreakdown] = []

        for profile_id in selection.profiles:
            entry = ProfileBreakdown(profile=profile_id)
            for service_id in self.catalog.profile_service_ids(profile_id):
                seen = attributions.get(service_id)
                if seen is not None:
                    seen.used_by.append(profile_id)
                    entry.reused.append(service_id)
                    continue

                requirement = self.catalog.get_service(service_id).requirements
                attribution = ServiceAttribution(
                    service=service_id,
                    counted_for=profile_id,
                    used_by=[profile_id],
                    minimum=_tier(requirement, "minimum"),
                    recommended=_tier(requirement, "recommended"),
                    optimal=_tier(requirement, "optimal"),
                )
                attributions[service_id] = attribution
                totals.minimum = _add(totals.minimum, attribution.minimum)
                totals.recommended = _add(totals.recommended, attribution.recommended)
                totals.optimal = _add(totals.optimal, attribution.optimal)
                entry.counted.append(service_id)
                entry.minimum = _add(entry.minimum, attribution.minimum)
            breakdown.append(entry)

        shared = [
            SharedService(service=a.service, used_by=list(a.used_by), saved=a.minimum)
            for a in attributions.values()
            if a.shared
        ]

        report = ResourceReport(
            profiles=selection.profiles,
            totals=totals,
            attributions=list(attributions.values()),
            shared=shared,
            breakdown=breakdown,
            host=host,
        )

        if host is not None:
            report.checks = self._compare(totals, host)
        report.suggestions = self._suggest(report)

        logger.info(
            f"Combined {len(report.attributions)} services for {selection.profiles}: "
            f"min RAM {_fmt(totals.minimum.ram_gb)}GB, disk {_fmt(totals.minimum.disk_gb)}GB, "
            f"CPU {_fmt(totals.minimum.cpu_cores)}"
        )

        if report.below_recommended:
            warnings.warn(
                f"Host is below recommended resources for: {', '.join(report.below_recommended)}",
                ResourceBelowRecommendedWarning,
                stacklevel=2,
            )
        return report

    @staticmethod
    def _compare(totals: CombinedTotals, host: HostResources) -> list[DimensionCheck]:
        checks: list[DimensionCheck] = []
        for dim in DIMENSIONS:
            available = host.value(dim)
            minimum = totals.minimum.value(dim)
            recommended = totals.recommended.value(dim)
            if available < minimum:
                check = DimensionCheck(
                    dimension=dim,
                    available=available,
                    minimum=minimum,
                    recommended=recommended,
                    status="insufficient",
                    shortfall=minimum - available,
                )
            elif available < recommended:
                check = DimensionCheck(
                    dimension=dim,
                    available=available,
                    minimum=minimum,
                    recommended=recommended,
                    status="below_recommended",
                    shortfall=recommended - available,
                )
            else:
                check = DimensionCheck(
                    dimension=dim, available=available, minimum=minimum, recommended=recommended, status="pass"
                )
            checks.append(check)
        return checks

    def _suggest(self, report: ResourceReport) -> list[Suggestion]:
        suggestions: list[Suggestion] = []

        for check in report.checks:
            unit = UNITS[check.dimension]
            if check.status == "insufficient":
                suggestions.append(
                    Suggestion(
                        severity="critical",
                        dimension=check.dimension,
                        message=(
                            f"Insufficient {unit}: {_fmt(check.available)} available, "
                            f"{_fmt(check.minimum)} required (short by {_fmt(check.shortfall)})"
                        ),
                    )
                )
                # Largest savings first
                candidates = sorted(
                    (a for a in report.attributions if a.minimum.value(check.dimension) > 0),
                    key=lambda a: -a.minimum.value(check.dimension),
                )
                for attribution in candidates:
                    service = self.catalog.get_service(attribution.service)
                    if not service.external_alternative:
                        continue
                    saves = attribution.minimum.value(check.dimension)
                    suggestions.append(
                        Suggestion(
                            severity="critical",
                            dimension=check.dimension,
                            service=service.id,
                            saves=saves,
                            message=(
                                f"Switch {service.name} to {service.external_alternative} "
                                f"to save {_fmt(saves)} {unit}"
                            ),
                        )
                    )
            elif check.status == "below_recommended":
                suggestions.append(
                    Suggestion(
                        severity="warning",
                        dimension=check.dimension,
                        message=(
                            f"{unit} below recommended: {_fmt(check.available)} available, "
                            f"{_fmt(check.recommended)} recommended; expect degraded performance under load"
                        ),
                    )
                )

        for shared in report.shared:
            duplicates = len(shared.used_by) - 1
            suggestions.append(
                Suggestion(
                    severity="info",
                    service=shared.service,
                    saves=shared.saved.ram_gb * duplicates,
                    message=(
                        f"{shared.service} is shared by {', '.join(shared.used_by)}; "
                        f"running it once saves {_fmt(shared.saved.ram_gb * duplicates)} GB RAM"
                    ),
                )
            )

        return sorted(suggestions, key=lambda s: SEVERITY_RANK[s.severity])
