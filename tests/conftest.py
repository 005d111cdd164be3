import os
import sys
import tempfile

import pytest


def _cleanup(path: str) -> None:
    for suffix in ("", "-journal", "-wal", "-shm"):
        candidate = path + suffix
        if os.path.exists(candidate):
            try:
                os.unlink(candidate)
            except (PermissionError, OSError):
                if sys.platform != "win32":
                    raise


@pytest.fixture
def test_db():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    try:
        yield path
    finally:
        _cleanup(path)
