import logging
import re
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from flickrsync.auth import AuthManager
from flickrsync.config import enabled_kinds, get_param
from flickrsync.errors import AuthError, FlickrAPIError, InvalidDateError, WindowParseError
from flickrsync.metadata import store_iptc, store_rdf
from flickrsync.models import RenditionKind, RetainedSet
from flickrsync.naming import metadata_path, slug_for
from flickrsync.renditions import fetch_renditions
from flickrsync.scrubber import scrub

logger = logging.getLogger(__name__)

HOOKS = ("queue_started", "queue_finished", "photo_started", "photo_finished")

_HOUR = 60 * 60
_WINDOW_UNITS = {
    "h": _HOUR,
    "d": 24 * _HOUR,
    "w": 7 * 24 * _HOUR,
    "M": 4 * 7 * 24 * _HOUR,  # a "month" is four weeks
}
_WINDOW_RE = re.compile(r"^(\d+)([hdwM])$")


def parse_modified_since(expr: str, now: float = None) -> int:
    """
    Turn a window like "3d" into an absolute unix timestamp lower bound.
    A bare integer is already a timestamp and is returned as is.
    """
    expr = str(expr).strip()
    if expr.isdigit():
        return int(expr)

    m = _WINDOW_RE.match(expr)
    if not m or int(m.group(1)) == 0:
        raise WindowParseError(f"unable to parse min date criteria: {expr!r}")

    now = time.time() if now is None else now
    return int(now) - int(m.group(1)) * _WINDOW_UNITS[m.group(2)]


class PhotoBackup:
    """
    Main class orchestrating a backup run:
     - list the account's photos page by page (search or recently updated)
     - fetch the enabled renditions of each photo
     - write metadata sidecars / embedded metadata
     - scrub stale local files once the whole listing has been processed
    """

    def __init__(self, config: dict, client=None):
        self.config = config
        self.client = client

        # NSID of the authenticated user, set by the identity check
        self.user_id: Optional[str] = None

        # Paths written or confirmed during the current run
        self.retained = RetainedSet()

        self.hooks: Dict[str, List[Callable]] = {name: [] for name in HOOKS}
        self._cancel = threading.Event()

    def authenticate(self) -> bool:
        try:
            self.client = AuthManager(self.config).authenticate()
        except AuthError as e:
            logger.error("authentication failed: %s", e)
            return False
        return True

    def cancel(self):
        """
        Stop the run before the next photo or page. Work already done for
        earlier photos is kept. A cancel requested before backup() starts
        stops that run before its first page.
        """
        logger.info("cancelling backup")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def register_hook(self, name: str, func: Callable):
        """
        queue_started(page_doc), queue_finished(),
        photo_started(entry), photo_finished(entry, ok)
        """
        if name not in self.hooks:
            raise ValueError(f"unknown hook '{name}', expected one of {', '.join(HOOKS)}")
        if not callable(func):
            raise TypeError("hook must be callable")
        self.hooks[name].append(func)

    def _fire(self, name: str, *args):
        for func in self.hooks[name]:
            func(*args)

    # -----------------------------
    # 1) FULL ACCOUNT BACKUP
    # -----------------------------

    def backup(self) -> bool:
        """
        Back up every photo in the listing. Returns False if the run could
        not get going or a listing page failed; individual photo failures
        are logged and do not fail the run.
        """
        try:
            return self._backup()
        finally:
            self._cancel.clear()

    def _backup(self) -> bool:
        self.retained = RetainedSet()

        if not self._auth():
            return False

        photos_root = get_param(self.config, "backup.photos_root")
        if not photos_root:
            logger.error("no photo root defined, exiting")
            return False

        search_args = dict(self.config.get("search", {}))
        modified_since = search_args.pop("modified_since", None)
        search_args["user_id"] = self.user_id
        per_page = int(search_args.get("per_page") or 100)

        min_date = None
        if modified_since:
            try:
                min_date = parse_modified_since(modified_since)
            except WindowParseError as e:
                logger.error("%s, exiting", e)
                return False
            if get_param(self.config, "backup.scrub_backups", False):
                logger.warning("scrub_backups is on with modified_since=%s: backups of photos "
                               "outside the window will be removed", modified_since)

        current_page = 1
        num_pages = 0

        while not self.cancelled:
            try:
                if min_date is not None:
                    photos = self.client.recently_updated(min_date, page=current_page, per_page=per_page)
                else:
                    photos = self.client.search(search_args, page=current_page)
            except FlickrAPIError as e:
                logger.error("listing page %d failed: %s", current_page, e)
                return False

            if current_page == 1:
                num_pages = int(photos.get("pages") or 0)
                logger.info("%d page(s) of photos to back up", num_pages)
                self._fire("queue_started", photos)

            for entry in photos.get("photo", []):
                if self.cancelled:
                    break

                logger.info("process image %s (%s)", entry.get("id"), slug_for(entry.get("title", "")))
                self._fire("photo_started", entry)
                ok = self.backup_photo(entry["id"], entry.get("secret"))
                self._fire("photo_finished", entry, ok)

            if current_page >= num_pages:
                break
            current_page += 1

        self._fire("queue_finished")

        if not self.cancelled and get_param(self.config, "backup.scrub_backups", False):
            logger.info("scrubbing backups")
            scrub(photos_root, self.retained)

        return True

    # -----------------------------
    # 2) SINGLE PHOTO
    # -----------------------------

    def backup_photo(self, photo_id, secret: str = None) -> bool:
        """
        Back up one photo: renditions, then sidecar and embedded metadata.
        """
        if not self._auth():
            return False

        photos_root = get_param(self.config, "backup.photos_root")
        if not photos_root:
            logger.error("no photo root defined, exiting")
            return False

        try:
            return self._backup_photo(photo_id, secret, photos_root)
        except Exception:
            logger.exception("unexpected error backing up photo %s", photo_id)
            self.retained.protect(photo_id)
            return False

    def _backup_photo(self, photo_id, secret, photos_root) -> bool:
        force = bool(get_param(self.config, "backup.force", False))

        try:
            photo = self.client.get_info(photo_id, secret)
            sizes = self.client.get_sizes(photo_id)
        except FlickrAPIError as e:
            logger.error("unable to fetch details for photo %s: %s", photo_id, e)
            self.retained.protect(photo_id)
            return False

        try:
            result = fetch_renditions(self.client, photo, sizes, enabled_kinds(self.config),
                                      photos_root, force)
        except InvalidDateError as e:
            logger.error("skipping photo %s: %s", photo.id, e)
            self.retained.protect(photo.id)
            return False

        self.retained.claim(photo.id, result.retained)
        ok = True

        if get_param(self.config, "rdf.do_dump", False):
            rdf_root = get_param(self.config, "rdf.rdfdump_root", photos_root)
            meta_path = metadata_path(rdf_root, photo.id, photo.taken, slug_for(photo.title))
            self.retained.claim(photo.id, [meta_path])

            if not store_rdf(photo, result.written, meta_path, result.has_changed, force,
                             photos_root=photos_root,
                             alias=get_param(self.config, "rdf.photos_alias")):
                ok = False

        original = result.written.get(RenditionKind.ORIGINAL)
        if get_param(self.config, "iptc.do_dump", False):
            if original is None:
                logger.debug("no fresh Original for photo %s, not embedding metadata", photo.id)
            elif not store_iptc(photo, Path(original)):
                ok = False

        return ok

    # -----------------------------
    # 3) INTERNAL HELPERS
    # -----------------------------

    def _auth(self) -> Optional[str]:
        """
        Check the token once per instance and remember whose account it is.
        """
        if self.user_id:
            return self.user_id

        if self.client is None:
            logger.error("not authenticated, call authenticate() first")
            return None

        try:
            self.user_id = self.client.check_identity()
        except FlickrAPIError as e:
            logger.error("identity check failed: %s", e)
            return None

        logger.info("authenticated as %s", self.user_id)
        return self.user_id


def run_backup(config: dict, client=None) -> bool:
    """
    Convenience wrapper: authenticate (unless a client is given) and run
    a full backup.
    """
    syncer = PhotoBackup(config, client=client)
    if client is None and not syncer.authenticate():
        return False
    return syncer.backup()
