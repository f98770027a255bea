"""
FIMCheck - Hashing module.

Computes file digests for integrity verification. MD5 by default because the
published core checksums use it; pass another hashlib name to upgrade.
"""

import hashlib
import logging
from pathlib import Path

from fimcheck.core.errors import FileAccessError

logger = logging.getLogger(__name__)


class HashEngine:
    """Computes file hashes by streaming content in fixed-size chunks."""

    ALGORITHM = "md5"
    CHUNK_SIZE = 8192

    def __init__(self, algorithm: str = ALGORITHM, chunk_size: int = CHUNK_SIZE) -> None:
        try:
            probe = hashlib.new(algorithm)
        except ValueError as e:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}") from e
        self.algorithm = probe.name
        self.chunk_size = max(1, chunk_size)
        self.digest_length = probe.digest_size * 2

    def compute_file_hash(self, file_path: Path) -> str:
        """
        Compute the hex digest of a file.

        Args:
            file_path: Path to the file.

        Returns:
            Lowercase hex digest string.

        Raises:
            FileAccessError: file vanished, is unreadable, or is not a file.
        """
        try:
            hasher = hashlib.new(self.algorithm)
            with open(file_path, "rb") as f:
                while chunk := f.read(self.chunk_size):
                    hasher.update(chunk)
            return hasher.hexdigest()
        except OSError as e:
            logger.debug("Failed to hash %s: %s", file_path, e)
            raise FileAccessError(file_path, e.strerror or str(e)) from e
