"""Tests for SessionBindingRegistry."""

from newsrag.src.api.bindings import SessionBindingRegistry


def test_bind_and_lookup():
    registry = SessionBindingRegistry()
    assert registry.bind("s1", "c1") is None
    assert registry.current_binding("s1") == "c1"
    assert registry.session_of("c1") == "s1"
    assert len(registry) == 1


def test_new_connection_evicts_previous_binding():
    registry = SessionBindingRegistry()
    registry.bind("s1", "c1")

    assert registry.bind("s1", "c2") == "c1"
    assert registry.current_binding("s1") == "c2"
    assert registry.session_of("c1") is None


def test_rebinding_same_connection_is_a_noop():
    registry = SessionBindingRegistry()
    registry.bind("s1", "c1")
    assert registry.bind("s1", "c1") is None
    assert registry.current_binding("s1") == "c1"


def test_joining_another_session_releases_the_old_one():
    registry = SessionBindingRegistry()
    registry.bind("s1", "c1")
    registry.bind("s2", "c1")

    assert registry.current_binding("s1") is None
    assert registry.current_binding("s2") == "c1"
    assert len(registry) == 1


def test_unbind_only_by_current_owner():
    registry = SessionBindingRegistry()
    registry.bind("s1", "c2")

    assert registry.unbind("s1", "c1") is False
    assert registry.current_binding("s1") == "c2"
    assert registry.unbind("s1", "c2") is True
    assert registry.current_binding("s1") is None
    assert registry.unbind("s1") is False


def test_unbind_connection_after_eviction_keeps_new_binding():
    registry = SessionBindingRegistry()
    registry.bind("s1", "c1")
    registry.bind("s1", "c2")

    assert registry.unbind_connection("c1") is None
    assert registry.current_binding("s1") == "c2"
    assert registry.unbind_connection("c2") == "s1"
    assert len(registry) == 0
