"""Path-addressed storage of the physical bytes of original uploads.

Layout: {root}/{organization_id}/{course_id}/{timestamp}-{sanitized filename}
"""

import asyncio
import shutil
import time
from pathlib import Path

from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperFile import require_uuid, sanitize_filename


class BlobStoreLocal:
    def __init__(self, helper_config: HelperConfig, root: str | Path | None = None):
        self.logging = helper_config.get_logger()
        self._root = Path(root).resolve() if root is not None else helper_config.get_path_val("STORAGE_UPLOADS_DIR", default="uploads")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_root(self) -> Path:
        return self._root

    def build_storage_path(self, organization_id: str, course_id: str, filename: str, timestamp_ms: int | None = None) -> Path:
        """Derive the physical location of a new upload.

        Args:
            organization_id (str): Tenant of the upload (must be a UUID).
            course_id (str): Course of the upload (must be a UUID).
            filename (str): Name as uploaded; unsafe characters are replaced.
            timestamp_ms (int | None): Millisecond timestamp, defaults to now.

        Returns:
            Path: Absolute path inside the store root.

        Raises:
            InvalidIdentifierError: If an identifier is not a UUID.
            ValueError: If the resulting path escapes the store root.
        """
        require_uuid("organization_id", organization_id)
        require_uuid("course_id", course_id)
        timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
        path = self._root / organization_id / course_id / f"{timestamp_ms}-{sanitize_filename(filename)}"
        return self.resolve_within_root(path)

    def get_course_directory(self, organization_id: str, course_id: str) -> Path:
        require_uuid("organization_id", organization_id)
        require_uuid("course_id", course_id)
        return self.resolve_within_root(self._root / organization_id / course_id)

    def resolve_within_root(self, path: str | Path) -> Path:
        """Resolve a path and make sure it lies strictly inside the store root.

        Raises:
            ValueError: If the resolved path is the root itself or outside of it.
        """
        resolved = Path(path).resolve()
        if resolved == self._root or self._root not in resolved.parents:
            raise ValueError(f"Path '{path}' resolves outside of the storage root '{self._root}'.")
        return resolved

    ##########################################
    ############### OPERATIONS ###############
    ##########################################

    async def do_save(self, data: bytes, organization_id: str, course_id: str, filename: str) -> str:
        """Write the bytes of a new original and return the absolute storage path."""
        path = self.build_storage_path(organization_id, course_id, filename)
        await asyncio.to_thread(self._write, path, data)
        self.logging.info("Saved file to disk: %s (%d bytes)", path, len(data))
        return str(path)

    async def do_delete_file(self, storage_path: str) -> bool:
        """Delete the bytes at a storage path.

        Returns:
            bool: True if a file was removed, False if it did not exist.

        Raises:
            ValueError: If the path lies outside the store root.
            OSError: If the file exists but cannot be removed.
        """
        path = self.resolve_within_root(storage_path)
        return await asyncio.to_thread(self._unlink, path)

    async def do_delete_course_directory(self, organization_id: str, course_id: str) -> int:
        """Recursively delete the upload directory of a course.

        Returns:
            int: Number of files removed (0 if the directory did not exist).
        """
        directory = self.get_course_directory(organization_id, course_id)
        return await asyncio.to_thread(self._rmtree, directory)

    ##########################################
    ############ BLOCKING HELPERS ############
    ##########################################

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    @staticmethod
    def _rmtree(directory: Path) -> int:
        if not directory.exists():
            return 0
        removed = sum(1 for p in directory.rglob("*") if p.is_file())
        shutil.rmtree(directory)
        return removed
