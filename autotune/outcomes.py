"""Outcome distributions: the server's current belief about each experiment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


class OutcomesFormatError(RuntimeError):
    """Raised when an outcomes file does not contain a mapping."""


@dataclass(frozen=True)
class Outcome:
    best_option: Optional[str] = None
    epsilon: float = 1.0


def parse_outcomes(raw: Any) -> Dict[str, Outcome]:
    """Normalise ``{name: {"bestOption": ..., "epsilon": ...}}`` payloads.

    Malformed entries are skipped rather than failing the whole payload.
    """

    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("ignoring outcomes payload of type %s", type(raw).__name__)
        return {}

    outcomes: Dict[str, Outcome] = {}
    for name, data in raw.items():
        if isinstance(data, Outcome):
            outcomes[str(name)] = data
            continue
        if not isinstance(name, str) or not isinstance(data, Mapping):
            logger.warning("skipping malformed outcome entry %r", name)
            continue
        best = data.get("bestOption", data.get("best_option"))
        if best is not None and not isinstance(best, str):
            best = str(best)
        raw_epsilon = data.get("epsilon")
        try:
            epsilon = 1.0 if raw_epsilon is None else float(raw_epsilon)
        except (TypeError, ValueError):
            logger.warning("outcome %s has invalid epsilon %r, using 1.0", name, raw_epsilon)
            epsilon = 1.0
        outcomes[name] = Outcome(best_option=best, epsilon=epsilon)
    return outcomes


def load_outcomes_file(path: str | Path) -> Dict[str, Outcome]:
    """Read outcomes from a YAML (or JSON, a YAML subset) file."""

    file_path = Path(path)
    if not file_path.exists():
        logger.info("outcomes file %s not found", file_path)
        return {}
    with file_path.open("r", encoding="utf-8") as fh:
        payload = yaml.safe_load(fh) or {}
    if not isinstance(payload, Mapping):
        raise OutcomesFormatError(f"{file_path} must contain a mapping")
    return parse_outcomes(payload.get("outcomes", payload))


__all__ = ["Outcome", "OutcomesFormatError", "load_outcomes_file", "parse_outcomes"]
