import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set


class RenditionKind(Enum):
    """
    The sizes we know how to back up, in the order they are processed.
    Each value is (Flickr size label, filename suffix).
    """
    ORIGINAL = ("Original", "")
    MEDIUM = ("Medium", "_m")
    SQUARE = ("Square", "_s")

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def suffix(self) -> str:
        return self.value[1]

    @property
    def config_key(self) -> str:
        # backup.fetch_original, backup.fetch_medium, ...
        return "fetch_" + self.label.lower()


@dataclass
class Tag:
    id: str
    author: str
    raw: str
    normalized: str


@dataclass
class Note:
    id: str
    author: str
    x: int
    y: int
    w: int
    h: int
    body: str = ""


@dataclass
class Size:
    label: str
    source: str
    width: int = 0
    height: int = 0


@dataclass
class RemotePhoto:
    """
    One photo as described by flickr.photos.getInfo. Never persisted;
    rebuilt from the API response on every run.
    """
    id: str
    secret: str
    title: str
    taken: str
    last_update: int = 0
    description: str = ""
    posted: Optional[int] = None
    owner: str = ""
    is_public: bool = False
    is_friend: bool = False
    is_family: bool = False
    license: str = ""
    tags: List[Tag] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)

    @classmethod
    def from_info(cls, doc: dict) -> "RemotePhoto":
        """
        Build a RemotePhoto from the "photo" element of a getInfo response.
        """
        dates = doc.get("dates", {})
        visibility = doc.get("visibility", {})

        tags = []
        for t in doc.get("tags", {}).get("tag", []):
            tags.append(Tag(
                id=str(t.get("id", "")),
                author=t.get("author", ""),
                raw=t.get("raw", ""),
                normalized=t.get("_content", ""),
            ))

        notes = []
        for n in doc.get("notes", {}).get("note", []):
            notes.append(Note(
                id=str(n.get("id", "")),
                author=n.get("author", ""),
                x=int(n.get("x", 0)),
                y=int(n.get("y", 0)),
                w=int(n.get("w", 0)),
                h=int(n.get("h", 0)),
                body=n.get("_content", ""),
            ))

        posted = dates.get("posted") or doc.get("dateuploaded")

        return cls(
            id=str(doc["id"]),
            secret=doc.get("secret", ""),
            title=_content(doc.get("title")),
            description=_content(doc.get("description")),
            taken=dates.get("taken", ""),
            posted=int(posted) if posted else None,
            last_update=int(dates.get("lastupdate") or 0),
            owner=doc.get("owner", {}).get("nsid", ""),
            is_public=bool(int(visibility.get("ispublic", 0))),
            is_friend=bool(int(visibility.get("isfriend", 0))),
            is_family=bool(int(visibility.get("isfamily", 0))),
            license=str(doc.get("license", "")),
            tags=tags,
            notes=notes,
        )


def _content(node) -> str:
    # Flickr's JSON wraps text nodes as {"_content": "..."}
    if isinstance(node, dict):
        return node.get("_content", "")
    return node or ""


@dataclass
class FetchResult:
    """What fetch_renditions did for a single photo."""
    has_changed: bool
    retained: List[Path] = field(default_factory=list)
    written: Dict[RenditionKind, Path] = field(default_factory=dict)


class RetainedSet:
    """
    Photo id -> local paths written or confirmed during the current run.
    Built from scratch every run and handed to the scrubber at the end.
    """

    def __init__(self):
        self._paths: Dict[str, List[str]] = {}
        # ids whose details could not be fetched; all their files stay
        self._protected: Set[str] = set()

    def claim(self, photo_id, paths: Iterable) -> None:
        entry = self._paths.setdefault(str(photo_id), [])
        for p in paths:
            norm = os.path.abspath(str(p))
            if norm not in entry:
                entry.append(norm)

    def protect(self, photo_id) -> None:
        self._protected.add(str(photo_id))

    def paths(self, photo_id) -> List[str]:
        return list(self._paths.get(str(photo_id), []))

    def retains(self, photo_id, path) -> bool:
        """
        True if `path` was claimed for `photo_id`. An id missing from the
        set retains nothing; a protected id retains everything.
        """
        if str(photo_id) in self._protected:
            return True
        entry = self._paths.get(str(photo_id))
        if entry is None:
            return False
        return os.path.abspath(str(path)) in entry

    def __contains__(self, photo_id) -> bool:
        return str(photo_id) in self._paths or str(photo_id) in self._protected

    def __len__(self) -> int:
        return len(self._paths.keys() | self._protected)

    def __bool__(self) -> bool:
        return bool(self._paths or self._protected)
