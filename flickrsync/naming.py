"""
Local naming convention for backed up photos:

    <root>/YYYY/MM/DD/YYYYMMDD-<photo id>-<clean title><suffix>.jpg
    <root>/YYYY/MM/DD/YYYYMMDD-<photo id>-<clean title>.xml

The scrubber relies on this layout on every run, so it must not change.
"""
import functools
import re
from pathlib import Path
from typing import Tuple
from urllib.parse import unquote

from unidecode import unidecode

from flickrsync.errors import InvalidDateError
from flickrsync.models import RenditionKind

UNTITLED = "untitled"
IMAGE_EXT = "jpg"
METADATA_EXT = "xml"

# 8-digit date, dash, numeric photo id, dash
PHOTO_FILE_PATTERN = re.compile(r"^\d{8}-(\d+)-")

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_JPG_EXT_RE = re.compile(r"\.jpg$", re.IGNORECASE)
_UNSAFE_RE = re.compile(r"[^a-z0-9_\[\]\-]")
_SPACES_RE = re.compile(r"\s+")


@functools.lru_cache(maxsize=None)
def clean_title(title: str) -> str:
    """
    Turn a photo title into a filesystem and URI safe slug.
    Returns "" when nothing survives; callers substitute UNTITLED.
    """
    if not title:
        return ""

    s = _JPG_EXT_RE.sub("", title)
    s = unquote(s)
    s = unidecode(s)
    s = s.lower()

    s = s.replace("@", "at")
    s = s.replace("&", "and")
    s = s.replace("*", "star")

    s = _UNSAFE_RE.sub(" ", s)
    s = s.replace("'", "")

    s = _SPACES_RE.sub(" ", s)
    s = s.strip()
    s = s.rstrip(".")
    return s.replace(" ", "_")


def slug_for(title: str) -> str:
    return clean_title(title or "") or UNTITLED


def date_parts(taken: str) -> Tuple[str, str, str]:
    """
    Split a capture date ("2006-03-04 10:00:00") into ("2006", "03", "04").
    """
    m = _DATE_RE.match(taken or "")
    if not m:
        raise InvalidDateError(f"unparseable capture date: {taken!r}")
    return m.group(1), m.group(2), m.group(3)


def _stem(photo_id, taken: str, slug: str) -> Tuple[Path, str]:
    yyyy, mm, dd = date_parts(taken)
    return Path(yyyy, mm, dd), f"{yyyy}{mm}{dd}-{photo_id}-{slug or UNTITLED}"


def rendition_path(root, photo_id, taken: str, slug: str, kind: RenditionKind) -> Path:
    subdir, stem = _stem(photo_id, taken, slug)
    return Path(root) / subdir / f"{stem}{kind.suffix}.{IMAGE_EXT}"


def metadata_path(root, photo_id, taken: str, slug: str) -> Path:
    subdir, stem = _stem(photo_id, taken, slug)
    return Path(root) / subdir / f"{stem}.{METADATA_EXT}"


def photo_id_from_filename(name: str):
    """
    Return the photo id embedded in a backup filename, or None if the
    name does not follow the convention.
    """
    m = PHOTO_FILE_PATTERN.match(name)
    if not m:
        return None
    return m.group(1)
