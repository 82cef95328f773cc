#!/usr/bin/env python3
"""
Entry point for the Flickr backup tool.
"""
import argparse
import logging
import signal
import sys
from pathlib import Path

from flickrsync.config import CONFIG_FILE, load_user_config
from flickrsync.syncer import PhotoBackup


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Back up a Flickr account to local disk.")
    parser.add_argument("-c", "--config", type=Path, default=CONFIG_FILE,
                        help=f"JSON config file (default: {CONFIG_FILE})")
    parser.add_argument("-f", "--force", action="store_true",
                        help="refetch every photo even if it has not changed")
    parser.add_argument("--photo-id", help="back up a single photo instead of the whole account")
    parser.add_argument("--secret", help="secret of the photo given with --photo-id")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_user_config(args.config)
    if args.force:
        config["backup"]["force"] = True

    # Instantiate the backup orchestrator
    syncer = PhotoBackup(config)

    # Authenticate with Flickr
    if not syncer.authenticate():
        return 1

    # Ctrl-C finishes the current photo, then stops
    signal.signal(signal.SIGINT, lambda signum, frame: syncer.cancel())

    if args.photo_id:
        ok = syncer.backup_photo(args.photo_id, args.secret)
    else:
        ok = syncer.backup()

    if ok:
        logging.getLogger(__name__).info("All backup operations complete!")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
