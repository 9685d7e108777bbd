# ruff: noqa: ANN201, ANN001
import json

import pytest

from kaspa_aio.exceptions import CatalogError, DependencyConflictError
from kaspa_aio.models.catalog import Catalog, Profile, Service
from kaspa_aio.services.catalog import ServiceCatalog


def _service(service_id: str, kind: str = "application", dependencies=None, **extra) -> Service:
    return Service(
        id=service_id,
        name=service_id,
        image=f"example/{service_id}:latest",
        kind=kind,
        interface="env",
        dependencies=dependencies or [],
        **extra,
    )


def test_core_profile_resolves_in_dependency_order(catalog):
    selection = catalog.resolve_profiles(["core"])
    assert selection.service_ids == ["kaspa-node", "dashboard", "nginx"]


def test_dependencies_always_precede_dependents(catalog):
    selection = catalog.resolve_profiles(["core", "kaspa-user-applications", "indexer-services", "mining"])
    ids = selection.service_ids
    for service in selection.services:
        for dep in service.dependencies:
            assert ids.index(dep) < ids.index(service.id)


def test_shared_service_appears_once(catalog):
    selection = catalog.resolve_profiles(["core", "kaspa-user-applications"])
    assert selection.service_ids.count("nginx") == 1


def test_duplicate_profile_ids_are_ignored(catalog):
    once = catalog.resolve_profiles(["core"])
    twice = catalog.resolve_profiles(["core", "core"])
    assert once.service_ids == twice.service_ids
    assert twice.profiles == ["core"]


def test_mining_pulls_in_node_dependency(catalog):
    selection = catalog.resolve_profiles(["mining"])
    assert selection.service_ids == ["kaspa-node", "kaspa-stratum"]
    assert catalog.profile_service_ids("mining") == ["kaspa-node", "kaspa-stratum"]
    assert catalog.get_profile("mining").services == ["kaspa-stratum"]


def test_conflicting_profiles_are_rejected(catalog):
    with pytest.raises(DependencyConflictError) as exc_info:
        catalog.resolve_profiles(["core", "archive-node"])
    assert set(exc_info.value.profiles) == {"core", "archive-node"}
    assert exc_info.value.status_code == 409


def test_conflict_is_symmetric(catalog):
    with pytest.raises(DependencyConflictError):
        catalog.resolve_profiles(["mining", "archive-node"])


def test_unknown_profile_is_catalog_error(catalog):
    with pytest.raises(CatalogError) as exc_info:
        catalog.resolve_profiles(["does-not-exist"])
    assert exc_info.value.message_key == "catalog.profile.unknown"


def test_unknown_template_is_catalog_error(catalog):
    with pytest.raises(CatalogError):
        catalog.get_template("nope")
    assert catalog.find_template("nope") is None


def test_every_template_resolves(catalog):
    for template in catalog.catalog.templates:
        selection = catalog.resolve_template(template.id)
        assert selection.services


def test_catalog_conflict_table_covers_exclusive_services(catalog):
    """Profiles that bring in mutually exclusive services must declare a conflict."""
    assert catalog.find_unguarded_exclusions() == []


def test_lint_reports_missing_conflict():
    data = Catalog(
        version="test",
        services=[
            _service("node-a", kind="infrastructure", excludes=["node-b"]),
            _service("node-b", kind="infrastructure"),
        ],
        profiles=[
            Profile(id="a", name="A", services=["node-a"]),
            Profile(id="b", name="B", services=["node-b"]),
        ],
    )
    assert ServiceCatalog(data).find_unguarded_exclusions() == [("a", "b")]


def test_dependency_cycle_is_rejected_at_load():
    data = Catalog(
        version="test",
        services=[_service("x", dependencies=["y"]), _service("y", dependencies=["x"])],
        profiles=[Profile(id="p", name="P", services=["x"])],
    )
    with pytest.raises(CatalogError) as exc_info:
        ServiceCatalog(data)
    assert exc_info.value.message_key == "catalog.dependency.cycle"


def test_infrastructure_cannot_depend_on_application():
    data = Catalog(
        version="test",
        services=[_service("app"), _service("db", kind="infrastructure", dependencies=["app"])],
        profiles=[Profile(id="p", name="P", services=["db"])],
    )
    with pytest.raises(CatalogError) as exc_info:
        ServiceCatalog(data)
    assert exc_info.value.message_key == "catalog.dependency.kind"


def test_unknown_dependency_is_rejected():
    data = Catalog(
        version="test",
        services=[_service("app", dependencies=["ghost"])],
        profiles=[Profile(id="p", name="P", services=["app"])],
    )
    with pytest.raises(CatalogError):
        ServiceCatalog(data)


def test_dependency_levels_group_services_into_waves(catalog):
    selection = catalog.resolve_profiles(["core", "indexer-services"])
    waves = [[s.id for s in wave] for wave in catalog.dependency_levels(selection.services)]
    assert waves[0] == ["timescaledb", "kaspa-node", "kasia-indexer", "dashboard"]
    assert waves[1] == ["k-indexer", "simply-kaspa-indexer", "nginx"]


def test_lifecycle_targets_are_catalog_services(catalog):
    assert catalog.is_lifecycle_service("kaspa-node")
    assert not catalog.is_lifecycle_service("kaspa-node; rm -rf /")


def test_key_ownership(catalog):
    assert catalog.owner_of("POSTGRES_PASSWORD") == "timescaledb"
    assert catalog.owner_of("KASPA_NETWORK") is None
    assert catalog.is_global("KASPA_NETWORK")
    assert catalog.setting_spec("POSTGRES_PASSWORD").type == "password"
    assert catalog.setting_spec("UNKNOWN_KEY") is None


def test_load_invalid_file_raises_catalog_error(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"version": "1", "services": "oops"}), encoding="utf-8")
    with pytest.raises(CatalogError) as exc_info:
        ServiceCatalog.load(path)
    assert exc_info.value.message_key == "catalog.load.failed"
