"""
File I/O for vault documents

Writes never touch the live vault file until the new content is complete:

 - <dir>/
      - vault.json              (current vault)
      - .vault.json.XXXX.tmp    (new content, fsynced, then renamed over it)

os.replace() is atomic on POSIX and Windows, so a crash mid-save leaves
either the old vault or the new one, never a truncated mix.
"""

import logging
import os
from pathlib import Path
import tempfile
from typing import Union

from .exceptions import VaultIOError

logger = logging.getLogger(__name__)


def read_vault_file(path: Union[str, Path]) -> bytes:
    path = Path(path)
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise VaultIOError(f"Could not open vault file: {path}") from None
    except OSError as e:
        raise VaultIOError(f"Could not read vault file {path}: {e.strerror or e}") from e


def _fsync_dir(directory: Path) -> None:
    # Persist the rename itself; not available on every platform.
    if os.name != "posix":
        return
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError as e:
        logger.debug("could not open %s for fsync: %s", directory, e)
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.debug("directory fsync failed for %s: %s", directory, e)
    finally:
        os.close(fd)


def write_atomic(path: Union[str, Path], data: bytes) -> None:
    """Replace ``path`` with ``data`` via a temp file in the same directory."""
    path = Path(path)
    directory = path.parent if str(path.parent) else Path(".")
    tmp_path = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise VaultIOError(f"Failed to write vault file {path}: {e.strerror or e}") from e
    finally:
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
    _fsync_dir(directory)
