import logging
import math
import re
from datetime import datetime, timezone

from sqlalchemy import func

from .models import User, Result, ConfigDocument
from . import db
from .leaderboard_compute import is_higher_better
from .personal_records import get_personal_records, get_progress_series, is_new_personal_record
from .util.conversion_util import Conversion

logger = logging.getLogger(__name__)

ACTIVITIES_DOC = 'activities'
USER_GENDERS = ('Male', 'Female', 'Non-Binary')
TAGS_DOC = 'tags'
BIRTHDATE_PATTERN = re.compile(r'^\d{2}/\d{2}/\d{4}$')


# ---------------------------------------------------------------------------
# activity configuration
# ---------------------------------------------------------------------------

def get_activity_config():
    doc = db.session.get(ConfigDocument, ACTIVITIES_DOC)
    data = dict(doc.data or {}) if doc else {}
    return {
        'list': list(data.get('list') or []),
        'prDirection': dict(data.get('prDirection') or {}),
    }


def _save_activity_config(config):
    doc = db.session.get(ConfigDocument, ACTIVITIES_DOC)
    payload = {'list': list(config['list']), 'prDirection': dict(config['prDirection'])}
    if doc is None:
        db.session.add(ConfigDocument(doc_id=ACTIVITIES_DOC, data=payload))
    else:
        # reassign so the JSON column is flagged dirty
        doc.data = payload


def _require_bool(higher_is_better):
    # JSON strings such as "false" are truthy
    if not isinstance(higher_is_better, bool):
        raise ValueError('higherIsBetter must be true or false')


def add_activity(name, higher_is_better=True):
    name = (name or '').strip()
    if not name:
        raise ValueError('activity name is required')
    _require_bool(higher_is_better)

    config = get_activity_config()
    if name in config['list']:
        raise ValueError(f'activity {name!r} already exists')
    config['list'].append(name)
    if not higher_is_better:
        config['prDirection'][name] = False
    _save_activity_config(config)
    db.session.commit()
    return config


def delete_activity(name):
    """Remove an activity from the configured list.

    Recorded results are kept; they simply stop feeding a leaderboard.
    """
    config = get_activity_config()
    if name not in config['list']:
        return None
    config['list'] = [activity for activity in config['list'] if activity != name]
    config['prDirection'].pop(name, None)
    _save_activity_config(config)
    db.session.commit()
    return config


def set_activity_direction(name, higher_is_better):
    _require_bool(higher_is_better)
    config = get_activity_config()
    if name not in config['list']:
        return None
    config['prDirection'][name] = higher_is_better
    _save_activity_config(config)
    db.session.commit()
    return config


def rename_activity(old_name, new_name):
    """Rename an activity and cascade the new name to every stored result."""
    new_name = (new_name or '').strip()
    if not new_name:
        raise ValueError('new activity name is required')

    config = get_activity_config()
    if old_name not in config['list']:
        return None
    if new_name != old_name and new_name in config['list']:
        raise ValueError(f'activity {new_name!r} already exists')

    config['list'] = [new_name if activity == old_name else activity for activity in config['list']]
    if old_name in config['prDirection']:
        config['prDirection'][new_name] = config['prDirection'].pop(old_name)
    _save_activity_config(config)

    updated = (
        Result.query
        .filter(Result.activity == old_name)
        .update({Result.activity: new_name}, synchronize_session=False)
    )
    db.session.commit()
    logger.info("Renamed activity %r -> %r (%d results)", old_name, new_name, updated)
    return config


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------

def get_users():
    return User.query.order_by(User.last_name, User.first_name).all()


def get_user_by_id(uid):
    return db.session.get(User, uid)


def find_user_by_full_name(full_name):
    """Case-insensitive lookup on the trimmed full name results are joined on."""
    full_name = (full_name or '').strip().lower()
    if not full_name:
        return None
    return User.query.filter(
        func.lower(User.first_name + ' ' + User.last_name) == full_name
    ).first()


def _validated_tags(tags):
    if tags is None:
        return []
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ValueError('tags must be a list of strings')
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def add_user(first_name, last_name, gender=None, birthdate=None, is_admin=False, tags=None):
    first_name = (first_name or '').strip()
    last_name = (last_name or '').strip()
    if not first_name or not last_name:
        raise ValueError('firstName and lastName required')
    if gender is not None and gender not in USER_GENDERS:
        raise ValueError(f'gender must be one of {", ".join(USER_GENDERS)}')
    birthdate = str(birthdate).strip() if birthdate is not None else ''
    birthdate = birthdate or None
    if birthdate is not None and not BIRTHDATE_PATTERN.match(birthdate):
        raise ValueError('birthdate must be MM/DD/YYYY')
    tags = _validated_tags(tags)

    full_name = f'{first_name} {last_name}'
    # results are keyed on the full name, so it has to identify one user
    if find_user_by_full_name(full_name) is not None:
        raise ValueError(f'a user named {full_name!r} already exists')

    user = User(
        first_name=first_name,
        last_name=last_name,
        gender=gender,
        birthdate=birthdate,
        is_admin=bool(is_admin),
        tags=tags,
    )
    db.session.add(user)
    _register_tags(tags)
    db.session.commit()
    return user


def import_users(roster):
    """Add every valid, not yet registered athlete from a roster list.

    Entries without a first name, with a malformed birthdate or whose full
    name already exists (in storage or earlier in the roster) are skipped.
    Returns ``(added, skipped)`` counts.
    """
    if not isinstance(roster, list):
        raise ValueError('roster must be a list of users')

    added = skipped = 0
    for entry in roster:
        if not isinstance(entry, dict) or not str(entry.get('firstName') or '').strip():
            logger.warning("Skipping roster entry without firstName: %r", entry)
            skipped += 1
            continue
        try:
            add_user(
                str(entry['firstName']),
                str(entry.get('lastName') or ''),
                gender=entry.get('gender'),
                birthdate=entry.get('birthdate'),
                tags=entry.get('tags'),
            )
        except ValueError as exc:
            db.session.rollback()
            logger.warning("Skipping %s %s: %s", entry.get('firstName'), entry.get('lastName') or '', exc)
            skipped += 1
            continue
        added += 1

    logger.info("Imported %d users, skipped %d", added, skipped)
    return added, skipped


def set_user_tags(uid, tags):
    user = db.session.get(User, uid)
    if user is None:
        return None
    user.tags = _validated_tags(tags)
    _register_tags(user.tags)
    db.session.commit()
    return user


def delete_user(uid):
    """Delete a user and every result recorded under their full name."""
    user = db.session.get(User, uid)
    if user is None:
        return None

    deleted = (
        Result.query
        .filter(Result.user_name == user.full_name)
        .delete(synchronize_session=False)
    )
    db.session.delete(user)
    db.session.commit()
    logger.info("Deleted user %s and %d results", user.full_name, deleted)
    return deleted


# ---------------------------------------------------------------------------
# tags
# ---------------------------------------------------------------------------

def get_tags():
    doc = db.session.get(ConfigDocument, TAGS_DOC)
    return list((doc.data or {}).get('list') or []) if doc else []


def _save_tags(tags):
    doc = db.session.get(ConfigDocument, TAGS_DOC)
    payload = {'list': sorted(set(tags))}
    if doc is None:
        db.session.add(ConfigDocument(doc_id=TAGS_DOC, data=payload))
    else:
        doc.data = payload


def _register_tags(tags):
    """Make sure every tag a user carries is listed; caller commits."""
    known = get_tags()
    missing = [tag for tag in tags if tag not in known]
    if missing:
        _save_tags(known + missing)


def add_tag(name):
    name = name.strip() if isinstance(name, str) else ''
    if not name:
        raise ValueError('tag name is required')
    tags = get_tags()
    if name in tags:
        raise ValueError(f'tag {name!r} already exists')
    _save_tags(tags + [name])
    db.session.commit()
    return get_tags()


def delete_tag(name):
    """Remove a tag from the tag list and from every user carrying it."""
    tags = get_tags()
    if name not in tags:
        return None
    _save_tags([tag for tag in tags if tag != name])

    untagged = 0
    for user in User.query.all():
        if name in (user.tags or []):
            user.tags = [tag for tag in user.tags if tag != name]
            untagged += 1
    db.session.commit()
    logger.info("Deleted tag %r from %d users", name, untagged)
    return get_tags()


def sync_tags_from_users():
    """Register every tag found on a user that the tag list is missing."""
    found = set()
    for user in User.query.all():
        found.update(tag.strip() for tag in (user.tags or []) if isinstance(tag, str) and tag.strip())
    missing = sorted(found - set(get_tags()))
    if missing:
        _save_tags(get_tags() + missing)
        db.session.commit()
    return missing


# ---------------------------------------------------------------------------
# results
# ---------------------------------------------------------------------------

def get_results(user_name=None, activity=None):
    query = Result.query
    if user_name is not None:
        query = query.filter(Result.user_name == user_name)
    if activity is not None:
        query = query.filter(Result.activity == activity)
    return query.order_by(Result.date.desc(), Result.id.desc()).all()


def get_result_by_id(rid):
    return db.session.get(Result, rid)


def _validated_value(activity, raw_value):
    value = Conversion.normalize_value(activity, raw_value)
    if not math.isfinite(value):
        raise ValueError('value must be a finite number')
    return value


def _validated_date(date):
    if date is None:
        return datetime.now(timezone.utc).isoformat()
    if not isinstance(date, str) or not date.strip():
        raise ValueError('date must be an ISO 8601 string')
    date = date.strip()
    try:
        # fromisoformat only accepts a trailing Z from Python 3.11
        datetime.fromisoformat(date[:-1] + '+00:00' if date.endswith('Z') else date)
    except ValueError:
        raise ValueError(f'date {date!r} is not an ISO 8601 date') from None
    return date


def add_result(user_name, activity, value, date=None):
    """Record a measurement.

    Returns ``(result, is_personal_record)`` where the flag says whether the
    new value beats the user's previous best for the activity.
    """
    user_name = (user_name or '').strip()
    activity = (activity or '').strip()
    if not user_name:
        raise ValueError('userName is required')
    if not activity:
        raise ValueError('activity is required')

    numeric = _validated_value(activity, value)
    date = _validated_date(date)
    config = get_activity_config()
    previous = [r.to_dict() for r in get_results(user_name=user_name, activity=activity)]
    is_pr = is_new_personal_record(previous, numeric, is_higher_better(activity, config['prDirection']))

    result = Result(
        user_name=user_name,
        activity=activity,
        value=numeric,
        date=date,
    )
    db.session.add(result)
    db.session.commit()
    return result, is_pr


def update_result_value(rid, value):
    result = db.session.get(Result, rid)
    if result is None:
        return None
    result.value = _validated_value(result.activity, value)
    db.session.commit()
    return result


def delete_result(rid):
    result = db.session.get(Result, rid)
    if result is None:
        return False
    db.session.delete(result)
    db.session.commit()
    return True


# ---------------------------------------------------------------------------
# per-user views
# ---------------------------------------------------------------------------

def get_user_personal_records(uid):
    user = db.session.get(User, uid)
    if user is None:
        return None

    config = get_activity_config()
    results = [r.to_dict() for r in get_results(user_name=user.full_name)]
    records = get_personal_records(results, user.full_name, config['prDirection'])
    for record in records:
        record['display'] = Conversion.format_activity_value(record['activity'], record['value'])
    return records


def get_user_progress(uid, activity):
    user = db.session.get(User, uid)
    if user is None:
        return None

    config = get_activity_config()
    results = [r.to_dict() for r in get_results(user_name=user.full_name, activity=activity)]
    return get_progress_series(
        results,
        user.full_name,
        activity,
        higher_is_better=is_higher_better(activity, config['prDirection']),
    )
