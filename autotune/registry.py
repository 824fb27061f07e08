"""Process-wide table of experiments keyed by name."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, Mapping, Optional

from autotune.experiment import Experiment
from autotune.outcomes import Outcome

logger = logging.getLogger(__name__)

ExperimentFactory = Callable[[str, Optional[str], float], Experiment]


class Registry:
    def __init__(self, factory: ExperimentFactory) -> None:
        self._factory = factory
        self._experiments: Dict[str, Experiment] = {}
        self._default_completions: Dict[str, Experiment] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._experiments

    def __iter__(self) -> Iterator[str]:
        return iter(self._experiments)

    def __len__(self) -> int:
        return len(self._experiments)

    def get(self, name: str) -> Optional[Experiment]:
        return self._experiments.get(name)

    def resolve(self, name: str) -> Experiment:
        experiment = self._experiments.get(name)
        if experiment is None:
            experiment = self._experiments[name] = self._factory(name, None, 1.0)
        return experiment

    def touch(self, name: str) -> Experiment:
        """Resolve ``name`` and make it part of the default completion set."""

        experiment = self.resolve(name)
        self._default_completions[name] = experiment
        return experiment

    def default_completions(self) -> Dict[str, Experiment]:
        return dict(self._default_completions)

    def seed(self, outcomes: Mapping[str, Outcome]) -> int:
        """Create experiments primed with server outcomes; returns how many."""

        created = 0
        for name, outcome in outcomes.items():
            # an experiment that already exists may have a pick in progress
            if name in self._experiments:
                continue
            self._experiments[name] = self._factory(name, outcome.best_option, outcome.epsilon)
            created += 1
        logger.debug("seeded %d experiment(s) from %d outcome(s)", created, len(outcomes))
        return created


__all__ = ["ExperimentFactory", "Registry"]
