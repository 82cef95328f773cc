import copy
from pathlib import Path

import pytest

from flickrsync.config import merge_config
from flickrsync.errors import FlickrAPIError
from flickrsync.models import RemotePhoto, Size, Tag, Note

USER_ID = "35034348999@N01"
LAST_UPDATE = 1150000000  # well before any mtime a test file will get


def make_photo(photo_id="123", title="Sunset", taken="2006-03-04 10:00:00", **kwargs) -> RemotePhoto:
    defaults = dict(
        id=str(photo_id),
        secret="s3cr3t",
        title=title,
        taken=taken,
        last_update=LAST_UPDATE,
        description="",
        posted=1141466400,
        owner=USER_ID,
    )
    defaults.update(kwargs)
    return RemotePhoto(**defaults)


def make_sizes(photo_id="123", labels=("Square", "Medium", "Original")):
    return [Size(label=label, source=f"https://live.example/{photo_id}_{label.lower()}.jpg")
            for label in labels]


class FakeClient:
    """
    Stands in for FlickrClient. Pages are lists of listing entries; every
    entry's id must have a photo in `photos`.
    """

    def __init__(self, photos=None, pages=None, sizes=None):
        self.photos = {p.id: p for p in (photos or [])}
        self.pages = pages if pages is not None else [[
            {"id": p.id, "secret": p.secret, "title": p.title} for p in (photos or [])
        ]]
        self.sizes = sizes or {}
        self.transfers = []
        self.listing_calls = []
        self.info_calls = []
        self.fail_info = set()
        self.fail_fetch = set()
        self.fail_identity = False
        self.fail_listing = False

    def check_identity(self):
        if self.fail_identity:
            raise FlickrAPIError("Invalid auth token", code=98)
        return USER_ID

    def _page(self, page):
        if self.fail_listing:
            raise FlickrAPIError("Service currently unavailable", code=105)
        entries = self.pages[page - 1] if page <= len(self.pages) else []
        return {"page": page, "pages": len(self.pages), "photo": copy.deepcopy(entries)}

    def search(self, params, page=1):
        self.listing_calls.append(("search", dict(params), page))
        return self._page(page)

    def recently_updated(self, min_date, page=1, per_page=100):
        self.listing_calls.append(("recently_updated", min_date, page))
        return self._page(page)

    def get_info(self, photo_id, secret=None):
        self.info_calls.append(str(photo_id))
        if str(photo_id) in self.fail_info:
            raise FlickrAPIError("Photo not found", code=1)
        return self.photos[str(photo_id)]

    def get_sizes(self, photo_id):
        return self.sizes.get(str(photo_id), make_sizes(photo_id))

    def fetch_to_file(self, url, dest):
        if url in self.fail_fetch:
            raise FlickrAPIError(f"failed to fetch '{url}'")
        self.transfers.append((url, Path(dest)))
        Path(dest).write_bytes(b"\xff\xd8fake-jpeg" + url.encode())


@pytest.fixture
def photos_root(tmp_path):
    root = tmp_path / "backup"
    root.mkdir()
    return root


@pytest.fixture
def config(photos_root):
    return merge_config({
        "flickr": {"api_key": "key", "api_secret": "secret"},
        "backup": {"photos_root": str(photos_root)},
    })


@pytest.fixture
def tagged_photo():
    return make_photo(
        photo_id="30763528",
        title="Mie",
        description="cat on the stairs",
        is_family=True,
        is_friend=True,
        license="4",
        tags=[
            Tag(id="1-cam", author=USER_ID, raw="cameraphone", normalized="cameraphone"),
            Tag(id="1-sf", author=USER_ID, raw="san francisco", normalized="sanfrancisco"),
        ],
        notes=[Note(id="1140939", author="44124415257@N01", x=10, y=20, w=30, h=40, body="the cat")],
    )
