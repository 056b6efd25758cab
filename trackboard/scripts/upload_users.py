"""
Bulk-register athletes from a YAML roster.

Run: python -m trackboard.scripts.upload_users ROSTER.yaml [--credentials FILE]

The roster is a list of ``{firstName, lastName, gender, birthdate, tags}``
mappings. Athletes whose full name is already registered (ignoring case),
entries without a first name and birthdates not written ``MM/DD/YYYY`` are
skipped. Tags found on users are added to the tag list.
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml

from config import Config
from trackboard.scripts.backfill_leaderboards import build_config, load_credentials

logger = logging.getLogger(__name__)


def load_roster(path):
    roster = yaml.safe_load(Path(path).read_text(encoding='utf-8'))
    if not isinstance(roster, list):
        raise ValueError(f"{path} must contain a list of users")
    return roster


def upload_users(roster, config_class=Config):
    from trackboard import create_app
    from trackboard.queries import import_users, sync_tags_from_users

    app = create_app(config_class)
    with app.app_context():
        logger.info("Uploading %d roster entries...", len(roster))
        added, skipped = import_users(roster)
        new_tags = sync_tags_from_users()
        if new_tags:
            logger.info("  Registered tags: %s", ", ".join(new_tags))
        logger.info("  Added: %d", added)
        logger.info("  Skipped: %d", skipped)
    return added, skipped


def main(argv=None):
    parser = argparse.ArgumentParser(description="Register athletes listed in a YAML roster.")
    parser.add_argument('roster', help="YAML file holding a list of users")
    parser.add_argument('--credentials', help="JSON file holding a 'database_uri'")
    args = parser.parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        database_uri = load_credentials(args.credentials) if args.credentials else None
        upload_users(load_roster(args.roster), build_config(database_uri))
    except Exception:
        logger.exception("User upload failed")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
