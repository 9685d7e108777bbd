"""Service catalog registry.

Wraps the static catalog data (``service_catalog.json``) and answers every
question the rest of the engine asks about services, profiles and templates:
profile resolution, dependency ordering, key ownership and the catalog lint.
"""

import heapq
import json
from collections.abc import Iterable
from itertools import combinations
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from kaspa_aio.exceptions import CatalogError, DependencyConflictError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Catalog, Profile, ResolvedSelection, Service, SettingSpec, Template

logger = get_logger(__name__)


class ServiceCatalog:
    """Read-only registry over a loaded :class:`Catalog`."""

    def __init__(self, catalog: Catalog) -> None:
        """
        Index the catalog and check its dependency graph.

        Args:
            catalog: Parsed catalog data

        Raises:
            CatalogError: unknown references, dependency cycles, or an
                infrastructure service depending on an application
        """
        self.catalog = catalog
        self._services = {service.id: service for service in catalog.services}
        self._order = {service.id: index for index, service in enumerate(catalog.services)}
        self._profiles = {profile.id: profile for profile in catalog.profiles}
        self._templates = {template.id: template for template in catalog.templates}
        self._globals = {spec.key: spec for spec in catalog.globals}
        self._owners: dict[str, str | None] = {key: None for key in self._globals}
        self._specs: dict[str, SettingSpec] = dict(self._globals)

        for service in catalog.services:
            for spec in service.settings:
                if spec.key in self._owners:
                    owner = self._owners[spec.key] or "global scope"
                    raise CatalogError(
                        "catalog.load.failed",
                        path="<catalog>",
                        reason=f"key '{spec.key}' declared by '{service.id}' is already owned by {owner}",
                    )
                self._owners[spec.key] = service.id
                self._specs[spec.key] = spec

        self._check_references()
        # Full-graph sort detects cycles once at load time.
        self._topological_sort(self._services.keys())

    @classmethod
    def load(cls, path: Path) -> "ServiceCatalog":
        """Load and check a catalog file.

        Args:
            path: Path to service_catalog.json

        Returns:
            Ready-to-use catalog registry
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            catalog = Catalog(**data)
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(f"Failed to load service catalog from {path}: {e}")
            raise CatalogError("catalog.load.failed", path=str(path), reason=str(e)) from e

        logger.info(
            f"Loaded service catalog v{catalog.version}: "
            f"{len(catalog.services)} services, {len(catalog.profiles)} profiles, {len(catalog.templates)} templates"
        )
        return cls(catalog)

    @property
    def version(self) -> str:
        return self.catalog.version

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_service(self, service_id: str) -> Service:
        service = self._services.get(service_id)
        if service is None:
            raise CatalogError("catalog.service.unknown", service=service_id)
        return service

    def get_profile(self, profile_id: str) -> Profile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise CatalogError("catalog.profile.unknown", profile=profile_id)
        return profile

    def get_template(self, template_id: str) -> Template:
        template = self.find_template(template_id)
        if template is None:
            raise CatalogError("catalog.template.unknown", template=template_id)
        return template

    def find_template(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def is_lifecycle_service(self, service_id: str) -> bool:
        """Whether lifecycle calls (start/stop/health/logs) may target this id.

        Every catalog service is a valid lifecycle target; nothing else is.
        """
        return service_id in self._services

    def setting_spec(self, key: str) -> SettingSpec | None:
        return self._specs.get(key)

    def owner_of(self, key: str) -> str | None:
        """Return the owning service id, or None for global keys and unknown keys."""
        return self._owners.get(key)

    def is_global(self, key: str) -> bool:
        return key in self._globals

    @property
    def global_settings(self) -> list[SettingSpec]:
        return list(self.catalog.globals)

    def allowed_keys(self, services: Iterable[Service]) -> set[str]:
        """Keys a configuration may carry for the given service selection."""
        keys = set(self._globals)
        for service in services:
            keys.update(service.setting_keys)
        return keys

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_profiles(self, profile_ids: Iterable[str]) -> ResolvedSelection:
        """Expand profiles to a deduplicated, dependency-ordered service list.

        Args:
            profile_ids: Requested profiles (duplicates are ignored)

        Returns:
            ResolvedSelection with services in topological order

        Raises:
            CatalogError: unknown profile id
            DependencyConflictError: two requested profiles are incompatible
        """
        requested = list(dict.fromkeys(profile_ids))
        profiles = [self.get_profile(profile_id) for profile_id in requested]

        for first, second in combinations(profiles, 2):
            if second.id in first.conflicts or first.id in second.conflicts:
                logger.warning(f"Profile conflict: {first.id} <-> {second.id}")
                raise DependencyConflictError(first.id, second.id)

        service_ids = self._expand(service_id for profile in profiles for service_id in profile.services)
        ordered = self._topological_sort(service_ids)
        logger.debug(f"Resolved profiles {requested} -> {ordered}")
        return ResolvedSelection(profiles=requested, services=[self._services[sid] for sid in ordered])

    def resolve_template(self, template_id: str) -> ResolvedSelection:
        return self.resolve_profiles(self.get_template(template_id).profiles)

    def profile_service_ids(self, profile_id: str) -> list[str]:
        """Services a single profile brings in, dependencies included, in start order."""
        profile = self.get_profile(profile_id)
        return self._topological_sort(self._expand(profile.services))

    def dependency_levels(self, services: Iterable[Service]) -> list[list[Service]]:
        """Group services into waves; every dependency sits in an earlier wave.

        Dependencies outside the given selection are ignored.
        """
        selected = {service.id: service for service in services}
        level: dict[str, int] = {}
        for service_id in self._topological_sort(selected.keys()):
            deps = [dep for dep in self._services[service_id].dependencies if dep in selected]
            level[service_id] = max((level[dep] + 1 for dep in deps), default=0)

        waves: list[list[Service]] = [[] for _ in range(max(level.values(), default=-1) + 1)]
        for service_id in sorted(level, key=self._order.__getitem__):
            waves[level[service_id]].append(selected[service_id])
        return waves

    def _expand(self, service_ids: Iterable[str]) -> set[str]:
        """Close a set of service ids over declared dependencies."""
        result: set[str] = set()
        stack = list(service_ids)
        while stack:
            service_id = stack.pop()
            if service_id in result:
                continue
            service = self.get_service(service_id)
            result.add(service_id)
            stack.extend(service.dependencies)
        return result

    def _topological_sort(self, service_ids: Iterable[str]) -> list[str]:
        """Kahn's algorithm; ties broken by catalog declaration order."""
        selected = set(service_ids)
        indegree = {sid: 0 for sid in selected}
        dependents: dict[str, list[str]] = {sid: [] for sid in selected}
        for sid in selected:
            for dep in self._services[sid].dependencies:
                if dep in selected:
                    indegree[sid] += 1
                    dependents[dep].append(sid)

        ready = [(self._order[sid], sid) for sid, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        ordered: list[str] = []
        while ready:
            _, sid = heapq.heappop(ready)
            ordered.append(sid)
            for dependent in dependents[sid]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, (self._order[dependent], dependent))

        if len(ordered) != len(selected):
            cycle = sorted(selected - set(ordered), key=self._order.__getitem__)
            raise CatalogError("catalog.dependency.cycle", services=", ".join(cycle))
        return ordered

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def _check_references(self) -> None:
        for service in self.catalog.services:
            for dep in service.dependencies:
                dependency = self._services.get(dep)
                if dependency is None:
                    raise CatalogError("catalog.dependency.unknown", service=service.id, dependency=dep)
                if service.kind == "infrastructure" and dependency.kind == "application":
                    raise CatalogError("catalog.dependency.kind", service=service.id, dependency=dep)
            for excluded in service.excludes:
                if excluded not in self._services:
                    raise CatalogError("catalog.service.unknown", service=excluded)
            for binding in service.bindings:
                if binding.key not in self._owners:
                    raise CatalogError(
                        "catalog.load.failed",
                        path="<catalog>",
                        reason=f"binding '{binding.key}' of '{service.id}' references an undeclared key",
                    )

        for profile in self.catalog.profiles:
            for service_id in profile.services:
                if service_id not in self._services:
                    raise CatalogError("catalog.service.unknown", service=service_id)
            for other in profile.conflicts:
                if other not in self._profiles:
                    raise CatalogError("catalog.profile.unknown", profile=other)

        for template in self.catalog.templates:
            for profile_id in template.profiles:
                if profile_id not in self._profiles:
                    raise CatalogError("catalog.profile.unknown", profile=profile_id)

    def find_unguarded_exclusions(self) -> list[tuple[str, str]]:
        """Profile pairs that bring in mutually exclusive services without a declared conflict.

        Returns:
            Sorted list of (profile, profile) pairs; empty for a consistent catalog
        """
        expanded = {profile.id: self._expand(profile.services) for profile in self.catalog.profiles}
        unguarded: list[tuple[str, str]] = []
        for first, second in combinations(self.catalog.profiles, 2):
            if second.id in first.conflicts or first.id in second.conflicts:
                continue
            left, right = expanded[first.id], expanded[second.id]
            clash = any(
                excluded in right for sid in left for excluded in self._services[sid].excludes
            ) or any(excluded in left for sid in right for excluded in self._services[sid].excludes)
            if clash:
                unguarded.append((first.id, second.id))
        return sorted(unguarded)
