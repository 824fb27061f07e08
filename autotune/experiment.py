"""Epsilon-greedy experiment with sticky picks."""

from __future__ import annotations

import logging
import random
import uuid
from typing import Callable, Optional, Protocol, Sequence

from autotune.picks import PickStore

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[], None]

_COIN = ("true", "false")


class ExperimentReporter(Protocol):
    def start_experiment(self, experiment: "Experiment") -> None: ...

    def complete_experiment(self, experiment: "Experiment", then: Optional[CompletionCallback]) -> None: ...


class Experiment:
    """A single named decision and its eventual payoff.

    ``pick`` is assigned at most once per instance; later ``select`` calls
    return the same value and do not report another start.
    """

    def __init__(
        self,
        name: str,
        *,
        picks: PickStore,
        reporter: ExperimentReporter,
        best_option: Optional[str] = None,
        epsilon: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.key = str(uuid.uuid4())
        self.best_option = best_option
        self.epsilon = epsilon
        self.options: list[str] = []
        self.pick: Optional[str] = None
        self.picked_best: Optional[bool] = None
        self.payoff: float = 1.0
        self._picks = picks
        self._reporter = reporter
        self._rng = rng or random.Random()

    def __repr__(self) -> str:
        return (
            f"Experiment(name={self.name!r}, pick={self.pick!r}, "
            f"best_option={self.best_option!r}, epsilon={self.epsilon!r})"
        )

    def select(self, options: Sequence[str]) -> Optional[str]:
        """Choose among ``options`` and return the instance's pick.

        The first successful call fixes ``pick`` and reports the start. Later
        calls still work out a candidate and save it as the sticky pick, but
        the instance keeps its original ``pick`` even when ``options`` no
        longer contains it. Callers mapping labels to values (``one_of`` with
        a mapping) then get ``None`` for the stale label.
        """

        if not options:
            logger.error("experiment %s: no options to choose from", self.name)
            return self.pick
        self.options = list(options)

        saved = self._picks.get(self.name)
        if saved is not None and saved in self.options:
            candidate = saved
            picked_best = saved == self.best_option
        else:
            exploring = self.best_option is None or self._rng.random() < self.epsilon
            if exploring:
                candidate = self._rng.choice(self.options)
            else:
                candidate = self.best_option
            picked_best = not exploring

        self._picks.set(self.name, candidate)

        if self.pick is None:
            self.pick = candidate
            self.picked_best = picked_best
            self._reporter.start_experiment(self)
        return self.pick

    def flip_coin(self) -> bool:
        return self.select(_COIN) == "true"

    def complete(self, payoff: float = 1.0, then: Optional[CompletionCallback] = None) -> None:
        """Record the payoff and queue it for reporting.

        Completions are coalesced: when several land in one flush window only
        the ``then`` passed last is invoked, once, after the batch is sent.
        """

        self.payoff = float(payoff)
        self._reporter.complete_experiment(self, then)

    def start_payload(self) -> dict:
        return {
            "instanceKey": self.key,
            "options": list(self.options),
            "pick": self.pick,
            "pickedBest": self.picked_best,
        }

    def completion_payload(self) -> dict:
        return {"pick": self.pick, "payoff": self.payoff}


__all__ = ["CompletionCallback", "Experiment", "ExperimentReporter"]
