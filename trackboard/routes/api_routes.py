from flask import jsonify, request

from . import api_bp
from ..leaderboard_service import get_leaderboards
from ..queries import (
    get_users,
    get_user_by_id,
    add_user,
    delete_user,
    set_user_tags,
    get_tags,
    add_tag,
    delete_tag,
    get_results,
    add_result,
    update_result_value,
    delete_result,
    get_user_personal_records,
    get_user_progress,
    get_activity_config,
    add_activity,
    delete_activity,
    set_activity_direction,
    rename_activity,
)


def _not_found():
    return jsonify({'error': 'not found'}), 404


@api_bp.errorhandler(ValueError)
def handle_value_error(exc):
    return jsonify({'error': str(exc)}), 400


@api_bp.route('/leaderboards')
def api_get_leaderboards():
    refresh = request.args.get('refresh', '').lower() in ('1', 'true', 'yes')
    leaderboards, stale = get_leaderboards(refresh=refresh)
    if leaderboards is None:
        if stale:
            return jsonify({'error': 'leaderboards unavailable'}), 503
        return jsonify({'leaderboards': {}, 'stale': False})
    return jsonify({'leaderboards': leaderboards, 'stale': stale})


@api_bp.route('/leaderboards/refresh', methods=['POST'])
def api_refresh_leaderboards():
    leaderboards, stale = get_leaderboards(refresh=True)
    if leaderboards is None:
        return jsonify({'error': 'leaderboards unavailable'}), 503
    return jsonify({'leaderboards': leaderboards, 'stale': stale})


@api_bp.route('/users')
def api_get_users():
    return jsonify([u.to_dict() for u in get_users()])


@api_bp.route('/users', methods=['POST'])
def api_add_user():
    data = request.get_json() or {}
    user = add_user(
        data.get('firstName'),
        data.get('lastName'),
        gender=data.get('gender'),
        birthdate=data.get('birthdate'),
        is_admin=data.get('isAdmin', False),
        tags=data.get('tags'),
    )
    return jsonify(user.to_dict()), 201


@api_bp.route('/users/<int:uid>', methods=['DELETE'])
def api_delete_user(uid):
    deleted = delete_user(uid)
    if deleted is None:
        return _not_found()
    return jsonify({'deleted_results': deleted})


@api_bp.route('/users/<int:uid>/personal-records')
def api_get_personal_records(uid):
    records = get_user_personal_records(uid)
    if records is None:
        return _not_found()
    return jsonify(records)


@api_bp.route('/users/<int:uid>/progress')
def api_get_progress(uid):
    activity = request.args.get('activity', '').strip()
    if not activity:
        return jsonify({'error': 'activity is required'}), 400

    series = get_user_progress(uid, activity)
    if series is None:
        return _not_found()
    return jsonify({'activity': activity, 'points': series})


@api_bp.route('/results')
def api_get_results():
    results = get_results(
        user_name=request.args.get('userName') or None,
        activity=request.args.get('activity') or None,
    )
    return jsonify([r.to_dict() for r in results])


@api_bp.route('/results', methods=['POST'])
def api_add_result():
    data = request.get_json() or {}
    result, is_pr = add_result(
        data.get('userName'),
        data.get('activity'),
        data.get('value'),
        date=data.get('date'),
    )
    payload = result.to_dict()
    payload['isPersonalRecord'] = is_pr
    return jsonify(payload), 201


@api_bp.route('/results/<int:rid>', methods=['PATCH'])
def api_update_result(rid):
    data = request.get_json() or {}
    if 'value' not in data:
        return jsonify({'error': 'value is required'}), 400
    result = update_result_value(rid, data['value'])
    if result is None:
        return _not_found()
    return jsonify(result.to_dict())


@api_bp.route('/results/<int:rid>', methods=['DELETE'])
def api_delete_result(rid):
    if not delete_result(rid):
        return _not_found()
    return '', 204


@api_bp.route('/activities')
def api_get_activities():
    return jsonify(get_activity_config())


@api_bp.route('/activities', methods=['POST'])
def api_add_activity():
    data = request.get_json() or {}
    config = add_activity(data.get('name'), higher_is_better=data.get('higherIsBetter', True))
    return jsonify(config), 201


@api_bp.route('/activities/<path:name>', methods=['DELETE'])
def api_delete_activity(name):
    config = delete_activity(name)
    if config is None:
        return _not_found()
    return jsonify(config)


@api_bp.route('/activities/<path:name>/direction', methods=['PUT'])
def api_set_activity_direction(name):
    data = request.get_json() or {}
    if 'higherIsBetter' not in data:
        return jsonify({'error': 'higherIsBetter is required'}), 400
    config = set_activity_direction(name, data['higherIsBetter'])
    if config is None:
        return _not_found()
    return jsonify(config)


@api_bp.route('/activities/<path:name>/rename', methods=['POST'])
def api_rename_activity(name):
    data = request.get_json() or {}
    config = rename_activity(name, data.get('newName'))
    if config is None:
        return _not_found()
    return jsonify(config)


@api_bp.route('/users/<int:uid>/tags', methods=['PUT'])
def api_set_user_tags(uid):
    data = request.get_json() or {}
    user = set_user_tags(uid, data.get('tags', []))
    if user is None:
        return _not_found()
    return jsonify(user.to_dict())


@api_bp.route('/tags')
def api_get_tags():
    return jsonify(get_tags())


@api_bp.route('/tags', methods=['POST'])
def api_add_tag():
    data = request.get_json() or {}
    return jsonify(add_tag(data.get('name'))), 201


@api_bp.route('/tags/<path:name>', methods=['DELETE'])
def api_delete_tag(name):
    tags = delete_tag(name)
    if tags is None:
        return _not_found()
    return jsonify(tags)
