"""
Durable geocode cache.

The whole address -> GeocodeResult map is stored as one JSON blob under a
single key, loaded once at start-up and overwritten in full after every new
entry. Failed lookups are cached too; they are permanent until cleared.
"""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ..config.config_module import get_config
from ..config.logger_module import log_debug, log_info, log_warning, log_error
from .geocoding_errors import CacheError
from .geocoding_models import GeocodeResult


class JsonBlobStore:
    """
    Key -> JSON blob storage backed by one file per key in a directory.

    Writes go to a temporary file that atomically replaces the previous
    blob, so a crash mid-write never leaves a truncated cache behind.
    """

    def __init__(self, store_dir: str = None):
        """
        Initialize the store.

        Args:
            store_dir: Directory holding the blobs (GEOCODE_CACHE_DIR or ./.cache_geocode)

        Raises:
            CacheError: If the directory cannot be created
        """
        self.store_dir = Path(
            store_dir or get_config("GEOCODE_CACHE_DIR", "./.cache_geocode")
        )

        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"Failed to create cache directory: {e}")

    def _blob_path(self, key: str) -> Path:
        safe_key = re.sub(r'[^a-zA-Z0-9\-_.]', '_', key)
        return self.store_dir / f"{safe_key}.json"

    def read(self, key: str) -> Optional[Any]:
        """
        Read and decode a blob.

        Returns:
            Decoded JSON value, or None if the key has never been written

        Raises:
            CacheError: If the blob exists but cannot be read or decoded
        """
        path = self._blob_path(key)
        if not path.exists():
            return None

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise CacheError(f"Failed to read cache blob '{key}': {e}")

    def write(self, key: str, value: Any) -> None:
        """
        Encode and atomically replace a blob.

        Raises:
            CacheError: On serialization or filesystem failures
        """
        path = self._blob_path(key)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.store_dir), prefix=f".{path.stem}.", suffix=".tmp"
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(value, f)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheError(f"Failed to write cache blob '{key}': {e}")

    def delete(self, key: str) -> None:
        path = self._blob_path(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise CacheError(f"Failed to delete cache blob '{key}': {e}")


class GeocodeCache:
    """
    In-memory address -> GeocodeResult map with write-through persistence.

    Holds at most one entry per raw address string and never evicts entries
    on its own; only clear() and invalidate() remove them.
    """

    def __init__(self,
                 store: JsonBlobStore = None,
                 store_key: str = "geocode-cache",
                 auto_flush: bool = True):
        """
        Initialize the cache and load any previously persisted entries.

        Args:
            store: Durable blob store (a JsonBlobStore in the default directory if omitted)
            store_key: Key of the blob holding the whole map
            auto_flush: Persist the full map after every set()
        """
        self.store = store or JsonBlobStore()
        self.store_key = store_key
        self.auto_flush = auto_flush
        self._entries: Dict[str, GeocodeResult] = {}

        self._load()

    def _load(self) -> None:
        """Populate the in-memory map from the store. Unreadable data starts empty."""
        try:
            data = self.store.read(self.store_key)
        except CacheError as e:
            log_warning(f"Failed to load geocode cache, starting empty: {e}")
            return

        if data is None:
            log_info("No persisted geocode cache found, starting empty")
            return

        if not isinstance(data, dict):
            log_warning("Persisted geocode cache is not a mapping, starting empty")
            return

        skipped = 0
        for address, raw in data.items():
            try:
                self._entries[address] = GeocodeResult.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError):
                skipped += 1

        if skipped:
            log_warning(f"Skipped {skipped} malformed geocode cache entries")
        log_info(f"Loaded {len(self._entries)} geocode cache entries")

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, address: str) -> Optional[GeocodeResult]:
        """Return the cached result for a raw address, or None on a miss."""
        result = self._entries.get(address)
        if result is None:
            log_debug(f"Geocode cache miss: '{address}'")
        else:
            log_debug(f"Geocode cache hit: '{address}'")
        return result

    def set(self, address: str, result: GeocodeResult) -> None:
        """
        Store a result and, with auto_flush, persist the full map.

        The in-memory entry is kept even if persisting fails.

        Raises:
            CacheError: If auto_flush is on and the store write fails
        """
        self._entries[address] = result
        if self.auto_flush:
            self.flush()

    def flush(self) -> None:
        """
        Overwrite the persisted map with the in-memory one.

        Raises:
            CacheError: On write failures
        """
        payload = {address: result.to_dict() for address, result in self._entries.items()}
        try:
            self.store.write(self.store_key, payload)
        except CacheError as e:
            log_error(f"Failed to persist geocode cache: {e}")
            raise
        log_debug(f"Flushed {len(payload)} geocode cache entries")

    def invalidate(self, address: str) -> bool:
        """
        Drop one entry so the address is geocoded again on next use.

        Returns:
            True if an entry was removed
        """
        if address not in self._entries:
            return False
        del self._entries[address]
        self.flush()
        return True

    def clear(self) -> None:
        """Remove every entry and persist the empty map."""
        log_info(f"Clearing {len(self._entries)} geocode cache entries")
        self._entries.clear()
        self.flush()

    def get_cache_stats(self) -> Dict[str, int]:
        """
        Get cache statistics.

        Returns:
            Dictionary with total, resolved and failed entry counts
        """
        resolved = sum(1 for result in self._entries.values() if result.ok)
        return {
            "total_entries": len(self._entries),
            "resolved": resolved,
            "failed": len(self._entries) - resolved,
        }
