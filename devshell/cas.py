"""
Content-addressable file store.

Stores text under its SHA-256 digest so the same content always lives at
the same path. Used to give bundled Nix expressions a stable location on
disk that the evaluator can read.

Usage:
    from devshell.cas import ContentAddressable

    cas = ContentAddressable(Path("~/.cache/devshell/cas").expanduser())
    path = cas.file_from_string("{ src }: { }")
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger("devshell.cas")


class CasError(Exception):
    """Raised when content cannot be written to the store."""
    pass


def content_hash(content: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ContentAddressable:
    """A directory of files named by the hash of their contents."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, content: str) -> Path:
        """Return the path the content is (or would be) stored at."""
        return self.root / content_hash(content)

    def contains(self, content: str) -> bool:
        """Check whether the content is already stored."""
        return self.path_for(content).is_file()

    def file_from_string(self, content: str) -> Path:
        """
        Store content and return its stable path.

        Writing the same content twice is a no-op the second time.

        Raises:
            CasError: If the store directory or file cannot be written
        """
        path = self.path_for(content)
        if path.is_file():
            logger.debug(f"CAS hit: {path}")
            return path

        temp_path = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)

            # Atomic write: temp file + rename
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.root,
                delete=False,
                prefix=".tmp-",
            ) as f:
                f.write(content)
                temp_path = f.name

            os.replace(temp_path, path)
        except OSError as e:
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise CasError(f"Could not write {path}: {e}") from e

        logger.debug(f"CAS stored {len(content)} chars at {path}")
        return path
