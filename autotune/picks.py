"""Sticky experiment picks, cached in memory and persisted per app key."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional

from autotune.batch import BatchQueue, Scheduler
from autotune.storage import KeyValueStorage

logger = logging.getLogger(__name__)


class PickStore:
    """Mapping of experiment name to the option previously chosen for it.

    The in-memory cache answers every read once it is loaded; durable storage
    is consulted once per app key, on the first lookup that misses. Writes
    update the cache immediately and reach storage after a quiet period of
    ``write_delay`` seconds.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        app_key: str = "",
        namespace: str = "autotune.v1",
        write_delay: float = 0.1,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._storage = storage
        self._namespace = namespace
        self.app_key = app_key
        self._caches: Dict[str, Dict[str, str]] = {}
        self._loaded: set[str] = set()
        self._writer: BatchQueue[str, None] = BatchQueue(
            self._persist,
            delay=write_delay,
            name="picks",
            scheduler=scheduler,
            flush_without_loop=True,
        )

    def storage_key(self, app_key: str | None = None) -> str:
        key = self.app_key if app_key is None else app_key
        return f"{self._namespace}.{key}.picks"

    def get(self, name: str) -> Optional[str]:
        cache = self._caches.get(self.app_key)
        if cache is not None and name in cache:
            return cache[name]
        return self._ensure_loaded(self.app_key).get(name)

    def set(self, name: str, pick: str) -> None:
        # load first so the next write does not drop picks saved earlier
        cache = self._ensure_loaded(self.app_key)
        cache[name] = pick
        self._writer.enqueue(self.app_key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._caches.get(self.app_key, {}))

    def flush(self) -> None:
        """Write pending changes to storage immediately."""

        self._writer.flush()

    def _ensure_loaded(self, app_key: str) -> Dict[str, str]:
        cache = self._caches.setdefault(app_key, {})
        if app_key in self._loaded:
            return cache
        self._loaded.add(app_key)
        try:
            saved = _decode(self._storage.read(self.storage_key(app_key)))
        except (OSError, ValueError) as exc:
            logger.error("could not load saved experiment picks app_key=%s: %s", app_key, exc)
            return cache
        for name, pick in saved.items():
            cache.setdefault(name, pick)
        return cache

    def _persist(self, batch: Dict[str, None], _callback_arg: Any) -> None:
        for app_key in batch:
            picks = self._caches.get(app_key, {})
            logger.debug("writing saved experiment picks app_key=%s count=%d", app_key, len(picks))
            try:
                payload = json.dumps(picks, ensure_ascii=False, sort_keys=True)
                self._storage.write(self.storage_key(app_key), payload)
            except (OSError, TypeError, ValueError) as exc:
                logger.error("could not save experiment picks app_key=%s: %s", app_key, exc)


def _decode(raw: Optional[str]) -> Dict[str, str]:
    if raw is None:
        return {}
    payload = json.loads(raw)
    if not isinstance(payload, Mapping):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return {str(name): pick for name, pick in payload.items() if isinstance(pick, str)}


__all__ = ["PickStore"]
