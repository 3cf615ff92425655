# aimtrack/hashing.py

"""Content hashing used as the run deduplication key."""

import hashlib


def hash_bytes(data: bytes) -> str:
    """SHA-1 hex digest of raw file content."""
    return hashlib.sha1(data).hexdigest()


def hash_file(path: str, chunk_size: int = 65536) -> str:
    """Hash a file's full content; path, name and mtime play no part."""
    digest = hashlib.sha1()
    with open(path, 'rb') as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()
