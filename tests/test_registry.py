"""Tests for the container registry and prefix-or-exact identity."""

from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot, identifier_matches, is_opted_in
from discord_logger.docker_monitoring.registry import ContainerRegistry, Match

WEB_ID = "web1234full"
APP_ID = "a1b2c3d4e5f6a7b8c9d0"
WORKER_ID = "f0e1d2c3b4a5f6e7d8c9"


def test_identifier_matches_name_or_id_prefix():
    assert identifier_matches("web", "web", "abc")
    assert identifier_matches("a1b2", "app", APP_ID)
    assert identifier_matches(APP_ID, "app", APP_ID)
    assert not identifier_matches("app", "app-worker", WORKER_ID)
    assert not identifier_matches("", "app", APP_ID)


def test_contains_exact_member(registry):
    registry.add("web")
    assert registry.contains("web")
    assert not registry.contains("we")


def test_name_then_discovered_id_is_one_member(registry):
    registry.add_all(["web"])
    discovered = ContainerSnapshot(name="web-1", id=WEB_ID)
    assert registry.contains(discovered)
    assert registry.add_all([discovered]) == ["web"]
    assert registry.members() == ["web"]


def test_known_snapshot_matches_later_id_lookup(registry):
    registry.add("app", ContainerSnapshot(name="app", id=APP_ID))
    assert registry.contains("a1b2c3")
    assert registry.find(APP_ID) == "app"


def test_names_are_never_prefix_matched(registry):
    assert registry.add_all(["app", "app-worker"]) == ["app", "app-worker"]
    assert len(registry) == 2

    other = ContainerRegistry()
    other.add("app")
    assert other.resolve(ContainerSnapshot(name="app-worker", id=WORKER_ID)) is None
    assert not other.contains("app-worker")


def test_resolve_by_name(registry):
    registry.add("web")
    assert registry.resolve(ContainerSnapshot(name="web", id=WEB_ID)) == Match("web")


def test_resolve_by_id_prefix(registry):
    registry.add("a1b2c3")
    assert registry.resolve(ContainerSnapshot(name="app", id=APP_ID)) == Match("a1b2c3")


def test_resolve_opt_in_label(registry):
    snapshot = ContainerSnapshot(name="cache", id=WORKER_ID, labels={"discord-logger.enabled": "true"})
    assert registry.resolve(snapshot) == Match("cache", discovered=True)
    assert not registry.contains("cache")


def test_resolve_prefers_member_over_label(registry):
    registry.add("cache")
    snapshot = ContainerSnapshot(name="cache", id=WORKER_ID, labels={"discord-logger.enabled": "true"})
    assert registry.resolve(snapshot) == Match("cache")


def test_resolve_label_must_be_true(registry):
    snapshot = ContainerSnapshot(name="cache", id=WORKER_ID, labels={"discord-logger.enabled": "false"})
    assert registry.resolve(snapshot) is None


def test_claim_is_check_and_mark(registry):
    registry.add("web")
    assert registry.claim("web")
    assert not registry.claim("web")
    assert registry.is_active("web")
    assert registry.active() == ["web"]
    registry.release("web")
    assert not registry.is_active("web")
    assert registry.claim("web")


def test_registry_never_shrinks_on_release(registry):
    registry.add("web")
    registry.claim("web")
    registry.release("web")
    assert registry.members() == ["web"]


def test_add_fills_in_unknown_snapshot(registry):
    registry.add("web")
    assert registry.add("web", ContainerSnapshot(name="web", id=WEB_ID)) == "web"
    assert registry.contains("web123")


def test_opt_in_label_value_must_be_exactly_true(registry):
    assert is_opted_in({"discord-logger.enabled": "true"})
    assert not is_opted_in({"discord-logger.enabled": "TRUE"})
    assert not is_opted_in({"discord-logger.enabled": " true "})
    assert not is_opted_in({"discord-logger.enabled": "1"})
    assert not is_opted_in(None)
    shouting = ContainerSnapshot(name="cache", id="cafe0001", labels={"discord-logger.enabled": "TRUE"})
    assert registry.resolve(shouting) is None
