import logging
from pathlib import Path
from typing import Iterable, List

from flickrsync.errors import FlickrAPIError, SizeUnavailableError
from flickrsync.local_store import ensure_dir, needs_fetch
from flickrsync.models import FetchResult, RemotePhoto, RenditionKind, Size
from flickrsync.naming import rendition_path, slug_for

logger = logging.getLogger(__name__)


def size_source(sizes: List[Size], kind: RenditionKind) -> str:
    """
    Source URL for `kind` in a getSizes listing.
    """
    for size in sizes:
        if size.label == kind.label and size.source:
            return size.source
    raise SizeUnavailableError(f"Unable to locate size info for key {kind.label}")


def fetch_renditions(client, photo: RemotePhoto, sizes: List[Size],
                     kinds: Iterable[RenditionKind], root, force: bool = False) -> FetchResult:
    """
    Download the enabled renditions of one photo.

    The Original path is probed once against the photo's last-update time;
    if it is current, every rendition is skipped. Skipped paths are still
    returned in `retained` so the scrubber keeps them. Per-rendition
    failures are logged and the remaining kinds are still tried.

    Raises InvalidDateError if the photo's capture date is unusable.
    """
    slug = slug_for(photo.title)
    probe = rendition_path(root, photo.id, photo.taken, slug, RenditionKind.ORIGINAL)
    result = FetchResult(has_changed=needs_fetch(photo.last_update, probe, force))

    wanted = set(kinds)
    for kind in RenditionKind:
        if kind not in wanted:
            continue

        try:
            source = size_source(sizes, kind)
        except SizeUnavailableError as e:
            logger.warning("%s (photo %s)", e, photo.id)
            continue

        path = rendition_path(root, photo.id, photo.taken, slug, kind)
        result.retained.append(path)

        if not result.has_changed:
            logger.info("%s has not changed, skipping", path)
            continue

        if not ensure_dir(path.parent):
            continue

        try:
            client.fetch_to_file(source, path)
        except (FlickrAPIError, OSError) as e:
            logger.error("failed to store '%s' as '%s', %s", source, path, e)
            continue

        logger.info("stored %s", path)
        result.written[kind] = Path(path)

    return result
