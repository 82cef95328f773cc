import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def needs_fetch(remote_last_modified, local_path: Path, force: bool = False) -> bool:
    """
    Decide whether a local copy has to be (re)fetched.

    Always True when forced, when the file is missing, or when the remote
    watermark is unknown (0/None). Otherwise True only if the local file
    is strictly older than the remote last-update time.
    """
    if force:
        return True

    local_path = Path(local_path)
    if not local_path.is_file():
        return True

    if not remote_last_modified:
        logger.debug("No last-update time for %s, refetching", local_path)
        return True

    mtime = local_path.stat().st_mtime
    if mtime >= int(remote_last_modified):
        logger.debug("%s has not changed (%d/%s)", local_path, mtime, remote_last_modified)
        return False
    return True


def ensure_dir(path: Path) -> bool:
    """
    Create `path` and any missing parents. Returns False (and logs) on failure.
    """
    path = Path(path)
    if path.is_dir():
        return True

    logger.info("create %s", path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("failed to create %s, %s", path, e)
        return False
    return True


def atomic_write(path: Path, data: bytes):
    """
    Write `data` to a temp file next to `path`, then rename it into place.
    Readers see either the old file or the complete new one. On failure
    the temp file is removed and the exception propagates.
    """
    path = Path(path)
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise


def delete_local_file(path: Path) -> bool:
    """
    Delete a local file if it exists. Errors are logged, not raised.
    """
    path = Path(path)
    if not path.exists():
        return False
    try:
        path.unlink()
        logger.info("Deleted local file: %s", path)
    except OSError as e:
        logger.error("failed to unlink %s, %s", path, e)
        return False
    return True


def has_children(path: Path) -> bool:
    try:
        return any(True for _ in os.scandir(path))
    except OSError:
        # unreadable or already gone; don't try to remove it
        return True


def prune_empty_parents(path: Path, root: Path, levels: int = 3):
    """
    Walk up from the directory holding `path` (day, month, year) removing
    each one that is now empty. Stops at the first non-empty directory and
    never touches `root` or anything above it.
    """
    root = Path(os.path.abspath(root))
    parent = Path(os.path.abspath(path)).parent

    for _ in range(levels):
        if parent == root or root not in parent.parents:
            return
        if has_children(parent):
            return
        try:
            os.rmdir(parent)
            logger.info("Removed empty directory: %s", parent)
        except OSError as e:
            logger.error("failed to remove %s, %s", parent, e)
            return
        parent = parent.parent


def file_uri(path: Path, root=None, alias: str = None) -> str:
    """
    URI for a local file. If an alias is configured, it replaces the
    leading `root` of the path; otherwise a file:// URI is returned.
    """
    abs_path = os.path.abspath(str(path))
    if alias and root:
        abs_root = os.path.abspath(str(root))
        if abs_path == abs_root or abs_path.startswith(abs_root + os.sep):
            rest = abs_path[len(abs_root):].replace(os.sep, "/")
            return alias.rstrip("/") + rest
    return Path(abs_path).as_uri()
