"""
Tests for the per-file timeout registry.
"""

import threading

import pytest

from conftest import FakeTimerFactory
from filestatus.watchfolders.timers import TimeoutRegistry


class TestTimeoutRegistry:

    def test_schedule_issues_fresh_tokens(self):
        factory = FakeTimerFactory()
        registry = TimeoutRegistry(timer_factory=factory)

        first = registry.schedule("a", 10, lambda name, token: None)
        second = registry.schedule("a", 10, lambda name, token: None)

        assert second != first
        assert registry.is_current("a", second)
        assert not registry.is_current("a", first)
        assert factory.timers[0].cancelled
        assert len(registry) == 1

    def test_callback_receives_name_and_token(self):
        factory = FakeTimerFactory()
        registry = TimeoutRegistry(timer_factory=factory)
        fired = []

        token = registry.schedule("clip.mov", 5, lambda name, token: fired.append((name, token)))
        factory.timers[0].fire()

        assert fired == [("clip.mov", token)]

    def test_release_only_current_token(self):
        registry = TimeoutRegistry(timer_factory=FakeTimerFactory())
        old = registry.schedule("a", 10, lambda n, t: None)
        new = registry.schedule("a", 10, lambda n, t: None)

        assert not registry.release("a", old)
        assert "a" in registry
        assert registry.release("a", new)
        assert "a" not in registry

    def test_cancel(self):
        factory = FakeTimerFactory()
        registry = TimeoutRegistry(timer_factory=factory)
        registry.schedule("a", 10, lambda n, t: None)

        assert registry.cancel("a")
        assert not registry.cancel("a")
        assert factory.timers[0].cancelled

    def test_cancel_all(self):
        factory = FakeTimerFactory()
        registry = TimeoutRegistry(timer_factory=factory)
        registry.schedule("a", 10, lambda n, t: None)
        registry.schedule("b", 10, lambda n, t: None)

        registry.cancel_all()

        assert registry.pending() == {}
        assert all(t.cancelled for t in factory.timers)

    @pytest.mark.slow
    def test_real_timer_fires(self):
        registry = TimeoutRegistry()
        done = threading.Event()

        registry.schedule("a", 0.01, lambda n, t: done.set())

        assert done.wait(timeout=5)
