import copy
import json
import logging
from pathlib import Path
from typing import Dict, List

from flickrsync.models import RenditionKind

logger = logging.getLogger(__name__)

# === PATH CONFIGURATION ===
DATA_DIR = Path("data")
CONFIG_FILE = Path("sync_config.json")

# === FLICKR ENDPOINTS ===
API_URL = "https://api.flickr.com/services/rest/"
OAUTH_REQUEST_TOKEN_URL = "https://www.flickr.com/services/oauth/request_token"
OAUTH_AUTHORIZE_URL = "https://www.flickr.com/services/oauth/authorize"
OAUTH_ACCESS_TOKEN_URL = "https://www.flickr.com/services/oauth/access_token"

FLICKR_URL = "https://www.flickr.com/"
FLICKR_PHOTOS_URL = FLICKR_URL + "photos/"
FLICKR_PEOPLE_URL = FLICKR_URL + "people/"

REQUEST_TIMEOUT = 60  # seconds, per API call or download

DEFAULT_CONFIG = {
    "flickr": {
        "api_key": "",
        "api_secret": "",
    },
    "backup": {
        "photos_root": "",
        "fetch_original": True,
        "fetch_medium": False,
        "fetch_square": False,
        "scrub_backups": False,
        "force": False,
    },
    "search": {
        "per_page": 100,
    },
    "rdf": {
        "do_dump": False,
        "rdfdump_root": "",
        "photos_alias": "",
    },
    "iptc": {
        "do_dump": False,
    },
}


def load_user_config(path: Path = CONFIG_FILE) -> dict:
    """
    Load the user's sync_config.json and merge it over DEFAULT_CONFIG,
    block by block. Fallback to defaults if not found.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    path = Path(path)

    if not path.exists():
        logger.warning("Config file '%s' not found. Using defaults.", path)
        return config

    with open(path, "r") as f:
        user = json.load(f)

    return merge_config(user, config)


def merge_config(user: Dict[str, dict], base: dict = None) -> dict:
    config = copy.deepcopy(DEFAULT_CONFIG) if base is None else base
    for block, values in user.items():
        if not isinstance(values, dict):
            logger.warning("Ignoring config entry '%s': expected a block of options", block)
            continue
        config.setdefault(block, {}).update(values)
    return config


def get_param(config: dict, name: str, default=None):
    """
    Read a "block.key" option, e.g. get_param(cfg, "backup.photos_root").
    """
    block, _, key = name.partition(".")
    value = config.get(block, {}).get(key)
    if value is None or value == "":
        return default
    return value


def enabled_kinds(config: dict) -> List[RenditionKind]:
    """
    Renditions switched on for this run, in processing order. Original is
    on unless explicitly disabled; everything else is off by default.
    """
    kinds = []
    for kind in RenditionKind:
        default = kind is RenditionKind.ORIGINAL
        if get_param(config, "backup." + kind.config_key, default):
            kinds.append(kind)
        else:
            logger.debug("%s option is false, skipping", kind.config_key)
    return kinds
