import logging
import os
from pathlib import Path
from typing import List

import requests
from requests_oauthlib import OAuth1

from flickrsync.config import API_URL, REQUEST_TIMEOUT
from flickrsync.errors import FlickrAPIError
from flickrsync.models import RemotePhoto, Size

logger = logging.getLogger(__name__)


class FlickrClient:
    """
    Thin wrapper over the Flickr REST API (JSON format). Every call either
    returns the decoded response or raises FlickrAPIError.
    """

    def __init__(self, api_key: str, api_secret: str = None, token: str = None,
                 token_secret: str = None, session: requests.Session = None):
        self.api_key = api_key
        self.session = session or requests.Session()
        if api_secret and token:
            self.session.auth = OAuth1(
                api_key,
                client_secret=api_secret,
                resource_owner_key=token,
                resource_owner_secret=token_secret,
            )

    def call(self, method: str, **params) -> dict:
        """
        Generic helper to call a Flickr API method.
        """
        payload = {
            "method": method,
            "api_key": self.api_key,
            "format": "json",
            "nojsoncallback": 1,
        }
        payload.update({k: v for k, v in params.items() if v is not None})

        logger.debug("calling %s %s", method, params)
        try:
            resp = self.session.get(API_URL, params=payload, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise FlickrAPIError(f"{method} failed: {e}") from e

        if resp.status_code != 200:
            raise FlickrAPIError(f"{method} returned HTTP {resp.status_code}: {resp.text}",
                                 code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise FlickrAPIError(f"{method} returned an unparseable response") from e

        if data.get("stat") != "ok":
            raise FlickrAPIError(data.get("message", "unknown error"), code=data.get("code"))
        return data

    def check_identity(self) -> str:
        """
        Return the user id (NSID) the current token belongs to.
        """
        data = self.call("flickr.test.login")
        user_id = data.get("user", {}).get("id")
        if not user_id:
            raise FlickrAPIError("unable to determine ID for token")
        return user_id

    def search(self, params: dict, page: int = 1) -> dict:
        """
        One page of flickr.photos.search. Returns the "photos" element:
        {"page": .., "pages": .., "photo": [...]}.
        """
        args = dict(params)
        args["page"] = page
        return self.call("flickr.photos.search", **args).get("photos", {})

    def recently_updated(self, min_date: int, page: int = 1, per_page: int = 100) -> dict:
        return self.call(
            "flickr.photos.recentlyUpdated",
            min_date=int(min_date),
            page=page,
            per_page=per_page,
        ).get("photos", {})

    def get_info(self, photo_id, secret: str = None) -> RemotePhoto:
        data = self.call("flickr.photos.getInfo", photo_id=photo_id, secret=secret)
        if "photo" not in data:
            raise FlickrAPIError(f"no photo element in getInfo response for {photo_id}")
        return RemotePhoto.from_info(data["photo"])

    def get_sizes(self, photo_id) -> List[Size]:
        data = self.call("flickr.photos.getSizes", photo_id=photo_id)
        sizes = []
        for s in data.get("sizes", {}).get("size", []):
            sizes.append(Size(
                label=s.get("label", ""),
                source=s.get("source", ""),
                width=int(s.get("width") or 0),
                height=int(s.get("height") or 0),
            ))
        return sizes

    def fetch_to_file(self, url: str, dest: Path):
        """
        Download `url` to `dest`. The body is streamed into a .part file
        that replaces `dest` only once complete.
        """
        dest = Path(dest)
        part = dest.with_name(dest.name + ".part")
        try:
            with requests.get(url, stream=True, timeout=REQUEST_TIMEOUT) as r:
                r.raise_for_status()
                with open(part, "wb") as f:
                    for chunk in r.iter_content(chunk_size=64 * 1024):
                        f.write(chunk)
            os.replace(part, dest)
        except requests.RequestException as e:
            _discard(part)
            raise FlickrAPIError(f"failed to fetch '{url}': {e}") from e
        except OSError:
            _discard(part)
            raise


def _discard(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
