"""Local cache of document parse results, keyed by the digest of the source path."""

import asyncio
from pathlib import Path

from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperHash import path_cache_key

CACHE_SUFFIX = ".json"


class ParseCacheLocal:
    def __init__(self, helper_config: HelperConfig, root: str | Path | None = None):
        self.logging = helper_config.get_logger()
        self._root = Path(root).resolve() if root is not None else helper_config.get_path_val("STORAGE_PARSE_CACHE_DIR", default="parse-cache")

    def get_entry_path(self, original_path: str) -> Path:
        return self._root / f"{path_cache_key(original_path)}{CACHE_SUFFIX}"

    async def do_delete(self, original_path: str) -> bool:
        """Remove the cached parse result of a file.

        Args:
            original_path (str): Absolute storage path the file was parsed from.

        Returns:
            bool: True if an entry was removed, False if there was none.
        """
        entry = self.get_entry_path(original_path)
        try:
            await asyncio.to_thread(entry.unlink)
        except FileNotFoundError:
            return False
        self.logging.debug("Removed parse cache entry %s for %s", entry.name, original_path)
        return True
