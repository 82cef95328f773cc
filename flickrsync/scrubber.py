import logging
import os
from pathlib import Path
from typing import Iterator

from flickrsync.local_store import delete_local_file, prune_empty_parents
from flickrsync.models import RetainedSet
from flickrsync.naming import photo_id_from_filename

logger = logging.getLogger(__name__)


def stale_files(root, retained: RetainedSet) -> Iterator[Path]:
    """
    Yield every file under `root` named like a backup whose path was not
    claimed during this run. Files that don't follow the naming
    convention are never yielded.
    """
    for dirpath, _dirs, files in os.walk(root):
        for fname in files:
            photo_id = photo_id_from_filename(fname)
            if photo_id is None:
                continue
            path = Path(dirpath) / fname
            if not retained.retains(photo_id, path):
                yield path


def scrub(root, retained: RetainedSet) -> bool:
    """
    Remove local backups that this run did not write or confirm, then any
    day/month/year directories left empty.

    Matching is by filename only: another account's backups sharing the
    same root would be removed too.
    """
    if not retained:
        logger.debug("nothing retained this run, skipping scrub")
        return True

    root = Path(root)
    # collect first so deletions don't disturb the walk
    candidates = list(stale_files(root, retained))
    logger.info("scrubbing %d stale file(s) under %s", len(candidates), root)

    for path in candidates:
        if not delete_local_file(path):
            continue
        prune_empty_parents(path, root)

    return True
