"""
Durable file storage partitioned by address.

Each normalized address gets its own directory under the data root, so
documents for one address never share a file with another. Documents
without an address live at the root.
"""

import os
from typing import Optional

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.exceptions import StorageException
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.utils.file_utils import atomic_write_bytes

logger = get_logger(__name__)


class FileStorage:
    """Reads and writes whole documents as files."""

    def __init__(self, data_dir: str):
        self.data_dir = os.path.abspath(data_dir)

    def _namespace_dir(self, address: Optional[str]) -> str:
        if address is None:
            return self.data_dir
        return os.path.join(self.data_dir, normalize_address(address))

    def path_for(self, name: str, address: Optional[str] = None) -> str:
        if not name or os.path.basename(name) != name:
            raise StorageException(
                f"Invalid document name: {name!r}", key=name, address=address
            )
        return os.path.join(self._namespace_dir(address), name)

    def read(self, name: str, address: Optional[str] = None) -> Optional[bytes]:
        """
        Read a document.

        Returns None when the document does not exist. Any other failure
        raises StorageException.
        """
        path = self.path_for(name, address)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            raise StorageException(
                f"Failed to read {name}: {e}", key=name, address=address
            ) from e

    def write(
        self, name: str, data: bytes, address: Optional[str] = None
    ) -> None:
        """Atomically replace a document. Raises StorageException on failure."""
        path = self.path_for(name, address)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            atomic_write_bytes(path, data)
        except OSError as e:
            logger.error(f"Error writing {path}: {e}")
            raise StorageException(
                f"Failed to write {name}: {e}", key=name, address=address
            ) from e
