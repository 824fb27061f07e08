"""Client-side experimentation: epsilon-greedy picks reported in batches.

Typical use inside an asyncio application::

    import autotune

    autotune.initialize("my-app-key", then=on_ready)
    if autotune.flip_coin("big_button"):
        ...
    headline = autotune.one_of("headline", ["Save time", "Save money"])
    ...
    autotune.complete()  # user converted
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .batch import BatchQueue
from .client import AutotuneClient, OptionSet
from .experiment import CompletionCallback, Experiment
from .gateway import HttpGateway
from .logging_config import setup_logging
from .outcomes import Outcome, OutcomesFormatError, load_outcomes_file, parse_outcomes
from .picks import PickStore
from .registry import Registry
from .storage import FileStorage, MemoryStorage

default_client = AutotuneClient()


def initialize(
    app_key: str,
    then: Optional[Callable[[], None]] = None,
    outcomes: Optional[Mapping[str, Any]] = None,
) -> Optional[asyncio.Task[None]]:
    return default_client.initialize(app_key, then, outcomes)


def configure_from_settings(setup_logs: bool = False) -> Optional[asyncio.Task[None]]:
    return default_client.configure_from_settings(setup_logs)


def flip_coin(name: str) -> bool:
    return default_client.flip_coin(name)


def one_of(name: str, options: Union[Sequence[str], Mapping[str, Any]]) -> Any:
    return default_client.one_of(name, options)


def complete(
    score: Union[float, CompletionCallback, None] = None,
    then: Optional[CompletionCallback] = None,
) -> None:
    default_client.complete(score, then)


def experiment(name: str) -> Experiment:
    return default_client.experiment(name)


__all__ = [
    "AutotuneClient",
    "BatchQueue",
    "CompletionCallback",
    "Experiment",
    "FileStorage",
    "HttpGateway",
    "MemoryStorage",
    "OptionSet",
    "Outcome",
    "OutcomesFormatError",
    "PickStore",
    "Registry",
    "complete",
    "configure_from_settings",
    "default_client",
    "experiment",
    "flip_coin",
    "initialize",
    "load_outcomes_file",
    "one_of",
    "parse_outcomes",
    "setup_logging",
]
