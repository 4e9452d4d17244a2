"""Content fingerprints and deterministic identifiers."""

import hashlib
import uuid

# log only the leading part of a fingerprint
HASH_PREFIX_LENGTH = 16


def fingerprint(data: bytes) -> str:
    """Compute the content fingerprint of an uploaded byte sequence.

    Identical bytes always produce the identical fingerprint; it is the
    deduplication key stored on every FileRecord.

    Args:
        data (bytes): The raw file content.

    Returns:
        str: Hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(data).hexdigest()


def hash_prefix(digest: str) -> str:
    """Shorten a fingerprint for log output."""
    return digest[:HASH_PREFIX_LENGTH]


def path_cache_key(original_path: str) -> str:
    """Derive the parse-cache key of a file from its absolute path.

    Args:
        original_path (str): Absolute storage path of the original upload.

    Returns:
        str: Hex-encoded SHA-256 digest of the path string.
    """
    return hashlib.sha256(original_path.encode("utf-8")).hexdigest()


def make_point_id(file_id: str, chunk_id: str | int) -> str:
    """Build a deterministic UUID5 point ID for a vector chunk.

    The same (file, chunk) pair always maps to the same point ID so that
    re-uploads and repeated duplications overwrite rather than duplicate.

    Args:
        file_id (str): ID of the FileRecord owning the point.
        chunk_id (str | int): Chunk identifier within the document.

    Returns:
        str: UUID string usable as a Qdrant point ID.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"{file_id}:{chunk_id}"))
