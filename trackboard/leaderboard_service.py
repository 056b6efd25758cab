"""Read, recompute and persist the denormalized leaderboard document.

The stored document lives under a fixed id and is wholly derived from the
roster, the results and the activity configuration, so it is always safe to
throw it away and rebuild it. Concurrent refreshes simply overwrite each
other; the last writer wins.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .leaderboard_compute import compute_leaderboards
from .models import ConfigDocument, Result, User
from .queries import get_activity_config

logger = logging.getLogger(__name__)

LEADERBOARD_DOC = 'leaderboards'


def load_leaderboards():
    doc = db.session.get(ConfigDocument, LEADERBOARD_DOC)
    if doc is None:
        return None
    return (doc.data or {}).get('leaderboards')


def save_leaderboards(leaderboards):
    doc = db.session.get(ConfigDocument, LEADERBOARD_DOC)
    payload = {'leaderboards': leaderboards}
    if doc is None:
        db.session.add(ConfigDocument(doc_id=LEADERBOARD_DOC, data=payload))
    else:
        doc.data = payload
    db.session.commit()


def fetch_leaderboard_inputs():
    """Read activities, roster and results in full, in that order.

    Results come back newest first, matching how the client lists them; that
    order is also the tie-break order for equal values.
    """
    config = get_activity_config()
    users = [
        {
            'fullName': user.full_name,
            'gender': user.gender,
            'birthdate': user.birthdate,
        }
        for user in User.query.all()
    ]
    results = [r.to_dict() for r in Result.query.order_by(Result.date.desc(), Result.id.desc()).all()]
    return config, users, results


def refresh_leaderboards(today=None):
    config, users, results = fetch_leaderboard_inputs()
    logger.info(
        "Refreshing leaderboards: %d activities, %d users, %d results",
        len(config['list']), len(users), len(results),
    )

    leaderboards = compute_leaderboards(
        results,
        users,
        config['list'],
        config['prDirection'],
        today=today,
    )
    save_leaderboards(leaderboards)
    logger.info("Saved leaderboards for %d activities", len(leaderboards))
    return leaderboards


def get_leaderboards(refresh=False, today=None):
    """Return ``(leaderboards, stale)``.

    With ``refresh`` the document is recomputed first; if that fails the last
    persisted document is served instead and ``stale`` is True. ``leaderboards``
    is None only when nothing has ever been persisted.
    """
    if not refresh:
        return load_leaderboards(), False

    try:
        return refresh_leaderboards(today=today), False
    except SQLAlchemyError:
        logger.exception("Leaderboard refresh failed, serving last persisted copy")
        db.session.rollback()
        return load_leaderboards(), True
