import json
import logging
from pathlib import Path

import requests
from requests_oauthlib import OAuth1Session

from flickrsync.config import (
    DATA_DIR,
    OAUTH_ACCESS_TOKEN_URL,
    OAUTH_AUTHORIZE_URL,
    OAUTH_REQUEST_TOKEN_URL,
    get_param,
)
from flickrsync.errors import AuthError
from flickrsync.flickr_api import FlickrClient

logger = logging.getLogger(__name__)


class AuthManager:
    """
    Manages Flickr OAuth 1.0a authentication,
    reading/writing the token file, running the authorization flow, etc.
    """

    def __init__(self, config: dict, data_dir: Path = DATA_DIR):
        self.api_key = get_param(config, "flickr.api_key")
        self.api_secret = get_param(config, "flickr.api_secret")
        self.token_file = Path(data_dir) / "token.json"
        self.token = None

    def authenticate(self) -> FlickrClient:
        """
        Loads the access token from the token file if present; otherwise
        performs the OAuth flow. Returns a signed FlickrClient.

        Raises AuthError when no API key is configured or the flow fails.
        """
        if not self.api_key or not self.api_secret:
            raise AuthError("flickr.api_key and flickr.api_secret must be configured")

        if self.token_file.exists():
            try:
                with open(self.token_file, "r") as f:
                    self.token = json.load(f)
            except ValueError:
                logger.warning("Token file corrupt. Re-authenticating.")
                self.token_file.unlink()
                self.token = None

        if not self.token or not self.token.get("oauth_token"):
            try:
                self.token = self._run_flow()
            except (ValueError, KeyError, requests.RequestException) as e:
                raise AuthError(f"OAuth authorization failed: {e}") from e
            self.token_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.token_file, "w") as f:
                json.dump(self.token, f, indent=2)

        return FlickrClient(
            self.api_key,
            api_secret=self.api_secret,
            token=self.token["oauth_token"],
            token_secret=self.token["oauth_token_secret"],
        )

    def _run_flow(self) -> dict:
        """
        Out-of-band OAuth: the user opens the authorize URL and pastes
        back the verifier code.
        """
        oauth = OAuth1Session(self.api_key, client_secret=self.api_secret, callback_uri="oob")
        oauth.fetch_request_token(OAUTH_REQUEST_TOKEN_URL)

        url = oauth.authorization_url(OAUTH_AUTHORIZE_URL, perms="read")
        print(f"Please authorize this application: {url}")
        verifier = input("Verification code: ").strip()

        tokens = oauth.fetch_access_token(OAUTH_ACCESS_TOKEN_URL, verifier=verifier)
        return {
            "oauth_token": tokens["oauth_token"],
            "oauth_token_secret": tokens["oauth_token_secret"],
            "user_nsid": tokens.get("user_nsid", ""),
        }
