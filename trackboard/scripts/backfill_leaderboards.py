"""
Compute and store the leaderboard document from scratch.

Run: python -m trackboard.scripts.backfill_leaderboards [--credentials FILE]

The optional credentials file is JSON with a ``database_uri`` key; without it
the database configured through ``DATABASE_URL`` / ``config.Config`` is used.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from config import Config

logger = logging.getLogger(__name__)


def load_credentials(path):
    data = json.loads(Path(path).read_text(encoding='utf-8'))
    uri = data.get('database_uri')
    if not uri:
        raise ValueError(f"{path} has no 'database_uri'")
    return uri


def build_config(database_uri=None):
    if database_uri is None:
        return Config

    class BackfillConfig(Config):
        SQLALCHEMY_DATABASE_URI = database_uri

    return BackfillConfig


def backfill(config_class=Config, today=None):
    from trackboard import create_app
    from trackboard.leaderboard_compute import compute_leaderboards
    from trackboard.leaderboard_service import fetch_leaderboard_inputs, save_leaderboards

    app = create_app(config_class)
    with app.app_context():
        logger.info("Fetching activities config, users and results...")
        config, users, results = fetch_leaderboard_inputs()
        logger.info("  Activities: %d", len(config['list']))
        logger.info("  Users: %d", len(users))
        logger.info("  Results: %d", len(results))

        logger.info("Computing leaderboards...")
        leaderboards = compute_leaderboards(
            results,
            users,
            config['list'],
            config['prDirection'],
            today=today,
        )
        logger.info("  Activities with leaderboard data: %d", len(leaderboards))

        logger.info("Writing leaderboards document...")
        save_leaderboards(leaderboards)

    logger.info("Done.")
    return leaderboards


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recompute and store activity leaderboards.")
    parser.add_argument('--credentials', help="JSON file holding a 'database_uri'")
    args = parser.parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        database_uri = load_credentials(args.credentials) if args.credentials else None
        backfill(build_config(database_uri))
    except Exception:
        logger.exception("Leaderboard backfill failed")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
