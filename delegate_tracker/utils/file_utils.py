import json
import os
import tempfile
from typing import Any, Dict


def load_json(file_path: str) -> Dict[str, Any]:
    """Load and parse a JSON file"""
    with open(file_path, "r") as file:
        return json.load(file)


def atomic_write_bytes(file_path: str, data: bytes) -> None:
    """Write a file via a temp file in the same directory and os.replace"""
    directory = os.path.dirname(file_path) or "."
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, file_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
