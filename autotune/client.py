"""Experiment client: decision entry points, batching and reporting."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, Mapping, Optional, Sequence, TypeVar, Union

import httpx

from autotune.batch import BatchQueue, Scheduler
from autotune.config import Settings, settings as default_settings
from autotune.context import client_context
from autotune.experiment import CompletionCallback, Experiment
from autotune.gateway import HttpGateway
from autotune.http_client import CircuitBreakerOpenError
from autotune.logging_config import setup_logging
from autotune.outcomes import Outcome, OutcomesFormatError, load_outcomes_file, parse_outcomes
from autotune.picks import PickStore
from autotune.registry import Registry
from autotune.storage import FileStorage, KeyValueStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

START_VERSION = 2
COMPLETE_VERSION = 1

_TRANSPORT_ERRORS = (httpx.HTTPError, CircuitBreakerOpenError)


@dataclass(frozen=True)
class OptionSet:
    """Labels to choose from, plus the values they map to (if any)."""

    labels: tuple[str, ...]
    values: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_arg(cls, options: Union[Sequence[str], Mapping[str, Any]]) -> "OptionSet":
        if isinstance(options, Mapping):
            labels = tuple(options)
            if not all(isinstance(label, str) for label in labels):
                logger.error("option labels must be strings, got %r", labels)
                return cls(labels=())
            return cls(labels=labels, values=options)
        if isinstance(options, (str, bytes)):
            logger.error("options must be a list of labels, not a single %s", type(options).__name__)
            return cls(labels=())
        return cls(labels=tuple(options))

    def value_for(self, label: Optional[str]) -> Any:
        if self.values is None or label is None:
            return label
        return self.values.get(label)


class AutotuneClient:
    """Owns the registry, pick store and batching queues for one app key."""

    def __init__(
        self,
        settings_obj: Settings | None = None,
        *,
        gateway: Any = None,
        storage: KeyValueStorage | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        context_provider: Callable[[], Dict[str, Any]] = client_context,
    ) -> None:
        self._settings = settings_obj or default_settings
        cfg = self._settings
        self.app_key = ""
        self._initialized = False
        self._gateway = gateway or HttpGateway(cfg)
        self._rng = rng or random.Random()
        self._context_provider = context_provider
        self._tasks: set[asyncio.Task[Any]] = set()
        self._backlog: list[tuple[Callable[..., Coroutine[Any, Any, None]], tuple[Any, ...]]] = []
        self.picks = PickStore(
            storage or FileStorage(cfg.STORAGE_DIR),
            namespace=cfg.STORAGE_NAMESPACE,
            write_delay=cfg.PICKS_WRITE_DELAY,
            scheduler=scheduler,
        )
        self.registry = Registry(self._create_experiment)
        self._started: BatchQueue[str, Experiment] = BatchQueue(
            self._flush_started,
            delay=cfg.START_BATCH_DELAY,
            name="start",
            scheduler=scheduler,
        )
        self._completed: BatchQueue[str, Experiment] = BatchQueue(
            self._flush_completed,
            delay=cfg.COMPLETE_BATCH_DELAY,
            name="complete",
            scheduler=scheduler,
        )

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------
    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(
        self,
        app_key: str,
        then: Optional[Callable[[], None]] = None,
        outcomes: Optional[Mapping[str, Any]] = None,
    ) -> Optional[asyncio.Task[None]]:
        """Bind the client to ``app_key`` and seed it with outcome data.

        With ``outcomes`` the registry is seeded synchronously. Otherwise the
        outcomes are fetched in a task (which is returned); ``then`` runs once
        seeding is done, whether or not the fetch succeeded.
        """

        if self._initialized:
            logger.info("initialized more than once, ignoring app_key=%s", app_key)
            return None
        self._initialized = True
        self.app_key = app_key
        self.picks.app_key = app_key
        logger.info("initialize app_key=%s", app_key)

        if outcomes is not None:
            self._finish_init(parse_outcomes(outcomes))
            _invoke(then, "ready callback")
            return None
        return self._spawn(self._fetch_outcomes, then)

    def configure_from_settings(self, setup_logs: bool = False) -> Optional[asyncio.Task[None]]:
        """Initialise from ``AUTOTUNE_APP_KEY`` / ``AUTOTUNE_OUTCOMES_FILE``.

        With ``setup_logs`` the host process logging is configured first from
        ``LOG_DIR`` / ``LOG_LEVEL``.
        """

        cfg = self._settings
        if setup_logs:
            setup_logging(log_dir=cfg.LOG_DIR, level=cfg.LOG_LEVEL)
        if not cfg.AUTOTUNE_APP_KEY:
            logger.debug("AUTOTUNE_APP_KEY is not set, skipping auto-initialisation")
            return None
        outcomes: Optional[Dict[str, Outcome]] = None
        if cfg.AUTOTUNE_OUTCOMES_FILE:
            try:
                outcomes = load_outcomes_file(cfg.AUTOTUNE_OUTCOMES_FILE)
            except (OSError, OutcomesFormatError, ValueError) as exc:
                logger.error("could not read outcomes file %s: %s", cfg.AUTOTUNE_OUTCOMES_FILE, exc)
        return self.initialize(cfg.AUTOTUNE_APP_KEY, outcomes=outcomes)

    async def _fetch_outcomes(self, then: Optional[Callable[[], None]]) -> None:
        try:
            raw = await self._gateway.fetch_outcomes(self.app_key)
        except (*_TRANSPORT_ERRORS, ValueError) as exc:
            logger.warning("could not get outcomes app_key=%s: %s", self.app_key, exc)
            raw = {}
        except Exception:  # noqa: BLE001 - readiness must not depend on the gateway
            logger.exception("unexpected error while fetching outcomes")
            raw = {}
        else:
            logger.info("got outcomes for %d experiment(s)", len(raw) if isinstance(raw, Mapping) else 0)
        self._finish_init(parse_outcomes(raw))
        _invoke(then, "ready callback")

    def _finish_init(self, outcomes: Mapping[str, Outcome]) -> None:
        self.registry.seed(outcomes)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def experiment(self, name: str) -> Experiment:
        return self.registry.resolve(name)

    def flip_coin(self, name: str) -> bool:
        return self.registry.touch(name).flip_coin()

    def one_of(self, name: str, options: Union[Sequence[str], Mapping[str, T]]) -> Any:
        """Pick one of ``options``: a label list, or a mapping of label to value.

        Returns the chosen label for a list and the mapped value for a mapping.
        """

        option_set = OptionSet.from_arg(options)
        choice = self.registry.touch(name).select(option_set.labels)
        return option_set.value_for(choice)

    def complete(
        self,
        score: Union[float, CompletionCallback, None] = None,
        then: Optional[CompletionCallback] = None,
    ) -> None:
        """Complete every experiment decided through the entry points.

        Accepts ``complete(then)`` as well as ``complete(score, then)``.
        """

        if callable(score):
            score, then = None, score
        payoff = 1.0 if score is None else float(score)
        for experiment in self.registry.default_completions().values():
            experiment.complete(payoff, then)

    # ------------------------------------------------------------------
    # Reporting (called by experiments)
    # ------------------------------------------------------------------
    def start_experiment(self, experiment: Experiment) -> None:
        self._started.enqueue(experiment.name, experiment)

    def complete_experiment(self, experiment: Experiment, then: Optional[CompletionCallback]) -> None:
        self._completed.enqueue(experiment.key, experiment, then)

    def _flush_started(self, batch: Dict[str, Experiment], _callback_arg: Any) -> None:
        experiments = {name: experiment.start_payload() for name, experiment in batch.items()}
        logger.info("starting experiments %s", sorted(experiments))
        payload = {
            "version": START_VERSION,
            "appKey": self.app_key,
            "experiments": experiments,
            "ctx": self._context_provider(),
        }
        self._spawn(self._send_started, payload)

    def _flush_completed(self, batch: Dict[str, Experiment], then: Optional[CompletionCallback]) -> None:
        experiments = {experiment.key: experiment.completion_payload() for experiment in batch.values()}
        logger.info("completing experiments %s", sorted(e.name for e in batch.values()))
        payload = {
            "version": COMPLETE_VERSION,
            "appKey": self.app_key,
            "experiments": experiments,
        }
        self._spawn(self._send_completed, payload, then)

    async def _send_started(self, payload: Dict[str, Any]) -> None:
        try:
            await self._gateway.start_experiments(payload)
        except _TRANSPORT_ERRORS as exc:
            logger.warning("failed to start experiments: %s", exc)
        except Exception:  # noqa: BLE001 - telemetry is best effort
            logger.exception("unexpected error while starting experiments")

    async def _send_completed(self, payload: Dict[str, Any], then: Optional[CompletionCallback]) -> None:
        try:
            await self._gateway.complete_experiments(payload)
        except _TRANSPORT_ERRORS as exc:
            logger.warning("failed to complete experiments: %s", exc)
        except Exception:  # noqa: BLE001 - telemetry is best effort
            logger.exception("unexpected error while completing experiments")
        _invoke(then, "completion callback")

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------
    def flush(self) -> None:
        """Send queued starts/completions and write picks without waiting."""

        self._started.flush()
        self._completed.flush()
        self.picks.flush()

    async def drain(self) -> None:
        """Wait for every in-flight gateway call to finish."""

        self._send_backlog()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self.flush()
        await self.drain()

    def _spawn(
        self,
        func: Callable[..., Coroutine[Any, Any, None]],
        *args: Any,
    ) -> Optional[asyncio.Task[None]]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # sent by the next call made inside a loop, or by drain()
            logger.warning("no running event loop, deferring %s", func.__name__)
            self._backlog.append((func, args))
            return None
        self._send_backlog()
        task = loop.create_task(func(*args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _send_backlog(self) -> None:
        backlog, self._backlog = self._backlog, []
        for func, args in backlog:
            self._spawn(func, *args)

    def _create_experiment(self, name: str, best_option: Optional[str], epsilon: float) -> Experiment:
        return Experiment(
            name,
            picks=self.picks,
            reporter=self,
            best_option=best_option,
            epsilon=epsilon,
            rng=self._rng,
        )


def _invoke(callback: Optional[Callable[[], None]], label: str) -> None:
    if callback is None:
        return
    try:
        callback()
    except Exception:  # noqa: BLE001 - user code must not break the queue
        logger.exception("%s raised", label)


__all__ = ["AutotuneClient", "OptionSet"]
