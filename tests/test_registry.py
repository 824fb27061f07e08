from __future__ import annotations

from autotune.outcomes import Outcome
from autotune.registry import Registry


class StubExperiment:
    def __init__(self, name, best_option, epsilon):
        self.name = name
        self.best_option = best_option
        self.epsilon = epsilon


def _registry():
    created: list[str] = []

    def factory(name, best_option, epsilon):
        created.append(name)
        return StubExperiment(name, best_option, epsilon)

    return Registry(factory), created


def test_resolve_creates_once_with_no_prior_knowledge():
    registry, created = _registry()
    first = registry.resolve("exp")
    assert registry.resolve("exp") is first
    assert created == ["exp"]
    assert first.best_option is None
    assert first.epsilon == 1.0


def test_touch_adds_to_default_completions_only():
    registry, _ = _registry()
    registry.resolve("quiet")
    touched = registry.touch("loud")
    assert registry.default_completions() == {"loud": touched}
    assert "quiet" in registry


def test_seed_does_not_replace_existing_experiments():
    registry, _ = _registry()
    existing = registry.resolve("running")
    created = registry.seed(
        {
            "running": Outcome(best_option="B", epsilon=0.0),
            "fresh": Outcome(best_option="A", epsilon=0.2),
        }
    )
    assert created == 1
    assert registry.get("running") is existing
    assert existing.best_option is None
    fresh = registry.get("fresh")
    assert (fresh.best_option, fresh.epsilon) == ("A", 0.2)
    assert len(registry) == 2
    assert sorted(registry) == ["fresh", "running"]
