import pytest
from sqlalchemy.exc import OperationalError

from trackboard import create_app, db
from config import Config


class TestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    TESTING = True
    SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'check_same_thread': False}}


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_activities()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def test_leaderboards_empty_before_first_refresh(client):
    rv = client.get('/api/leaderboards')
    assert rv.status_code == 200
    assert rv.get_json() == {'leaderboards': {}, 'stale': False}


def test_refresh_builds_and_persists_leaderboards(client):
    with client.application.app_context():
        seed_athletes()

    rv = client.post('/api/leaderboards/refresh')
    assert rv.status_code == 200
    payload = rv.get_json()
    assert payload['stale'] is False

    boards = payload['leaderboards']
    assert set(boards) == {'Squats', 'Mile (seconds)'}  # Push-ups has no results

    squats = boards['Squats']
    assert [e['userName'] for e in squats['overall']['Male']] == ['Max Power', 'Al Strong', 'Ben Lift']
    assert [e['value'] for e in squats['overall']['Male']] == [400, 315, 300]
    assert [e['userName'] for e in squats['overall']['Female']] == ['Fay Quick']
    assert squats['0-19']['Male'] == []
    # no birthdate -> overall only
    assert all(e['userName'] != 'Ben Lift' for c, cells in squats.items() if c != 'overall' for e in cells['Male'])
    assert all(
        e['userName'] != 'Nic Bee' for cells in squats.values() for entries in cells.values() for e in entries
    )

    mile = boards['Mile (seconds)']
    assert mile['overall']['Female'][0]['value'] == 380

    cached = client.get('/api/leaderboards').get_json()
    assert cached == {'leaderboards': boards, 'stale': False}


def test_refresh_is_idempotent(app):
    from trackboard.leaderboard_service import load_leaderboards, refresh_leaderboards
    from trackboard.models import ConfigDocument

    seed_athletes()
    first = refresh_leaderboards()
    second = refresh_leaderboards()

    assert first == second
    assert load_leaderboards() == second
    assert ConfigDocument.query.filter_by(doc_id='leaderboards').count() == 1


def test_refresh_failure_serves_last_persisted_copy(client, monkeypatch):
    with client.application.app_context():
        seed_athletes()
    persisted = client.post('/api/leaderboards/refresh').get_json()['leaderboards']

    def boom():
        raise OperationalError('SELECT 1', {}, Exception('database is gone'))

    monkeypatch.setattr('trackboard.leaderboard_service.fetch_leaderboard_inputs', boom)

    rv = client.get('/api/leaderboards?refresh=1')
    assert rv.status_code == 200
    assert rv.get_json() == {'leaderboards': persisted, 'stale': True}


def test_refresh_failure_without_cache_is_503(client, monkeypatch):
    def boom():
        raise OperationalError('SELECT 1', {}, Exception('database is gone'))

    monkeypatch.setattr('trackboard.leaderboard_service.fetch_leaderboard_inputs', boom)

    rv = client.post('/api/leaderboards/refresh')
    assert rv.status_code == 503


def test_add_result_flags_personal_record(client):
    rv = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 200})
    assert rv.status_code == 201
    assert rv.get_json()['isPersonalRecord'] is True

    rv = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 150})
    assert rv.get_json()['isPersonalRecord'] is False

    rv = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Mile (seconds)', 'value': '7:00'})
    assert rv.status_code == 201
    body = rv.get_json()
    assert body['value'] == 420.0
    assert body['date']


def test_add_result_compound_feet_inches(client):
    rv = client.post(
        '/api/results',
        json={'userName': 'Al Strong', 'activity': 'Broad Jump (ft/in)', 'value': {'value1': '7', 'value2': '3'}},
    )
    assert rv.status_code == 201
    assert rv.get_json()['value'] == 87.0


@pytest.mark.parametrize('payload', [
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 'NaN'},
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 'inf'},
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 'heavy'},
    {'userName': 'Al Strong', 'activity': '', 'value': 100},
    {'userName': '', 'activity': 'Squats', 'value': 100},
    {'userName': 'Al Strong', 'activity': 'Squats'},
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 500, 'date': 'yesterday'},
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 500, 'date': '2024-13-40'},
    {'userName': 'Al Strong', 'activity': 'Squats', 'value': 500, 'date': 20240101},
])
def test_add_result_rejects_invalid_input(client, payload):
    rv = client.post('/api/results', json=payload)
    assert rv.status_code == 400
    assert 'error' in rv.get_json()


def test_update_and_delete_result(client):
    rid = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 200}).get_json()['id']

    rv = client.patch(f'/api/results/{rid}', json={'value': 225})
    assert rv.status_code == 200
    assert rv.get_json()['value'] == 225

    assert client.patch(f'/api/results/{rid}', json={'value': 'nan'}).status_code == 400
    assert client.patch(f'/api/results/{rid}', json={}).status_code == 400
    assert client.patch('/api/results/9999', json={'value': 1}).status_code == 404

    assert client.delete(f'/api/results/{rid}').status_code == 204
    assert client.delete(f'/api/results/{rid}').status_code == 404
    assert client.get('/api/results').get_json() == []


def test_list_results_filters_and_orders_newest_first(client):
    for value, date in ((1, '2024-01-01'), (2, '2024-03-01'), (3, '2024-02-01')):
        client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': value, 'date': date})
    client.post('/api/results', json={'userName': 'Fay Quick', 'activity': 'Squats', 'value': 9, 'date': '2024-05-01'})

    rv = client.get('/api/results?userName=Al%20Strong&activity=Squats')
    assert [r['value'] for r in rv.get_json()] == [2, 3, 1]


def test_users_crud_and_cascade(client):
    rv = client.post('/api/users', json={'firstName': 'Al', 'lastName': 'Strong', 'gender': 'Male'})
    assert rv.status_code == 201
    uid = rv.get_json()['id']
    assert rv.get_json()['fullName'] == 'Al Strong'

    client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 100})
    client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Push-ups', 'value': 40})
    client.post('/api/results', json={'userName': 'Fay Quick', 'activity': 'Squats', 'value': 90})

    assert [u['fullName'] for u in client.get('/api/users').get_json()] == ['Al Strong']

    rv = client.delete(f'/api/users/{uid}')
    assert rv.status_code == 200
    assert rv.get_json() == {'deleted_results': 2}
    assert [r['userName'] for r in client.get('/api/results').get_json()] == ['Fay Quick']
    assert client.delete(f'/api/users/{uid}').status_code == 404


@pytest.mark.parametrize('payload', [
    {'firstName': 'Al'},
    {'firstName': 'Al', 'lastName': 'Strong', 'gender': 'Robot'},
    {'firstName': 'Al', 'lastName': 'Strong', 'birthdate': '1990-04-12'},
    {'firstName': 'Al', 'lastName': 'Strong', 'birthdate': '4/12/1990'},
    {'firstName': 'Al', 'lastName': 'Strong', 'tags': 'sprinters'},
])
def test_add_user_validation(client, payload):
    assert client.post('/api/users', json=payload).status_code == 400


def test_personal_records_endpoint(client):
    uid = client.post('/api/users', json={'firstName': 'Fay', 'lastName': 'Quick', 'gender': 'Female'}).get_json()['id']
    for activity, value in (('Squats', 150), ('Squats', 180), ('Mile (seconds)', 400), ('Mile (seconds)', 380)):
        client.post('/api/results', json={'userName': 'Fay Quick', 'activity': activity, 'value': value})

    rv = client.get(f'/api/users/{uid}/personal-records')
    assert rv.status_code == 200
    records = rv.get_json()
    assert [(r['activity'], r['value']) for r in records] == [('Mile (seconds)', 380), ('Squats', 180)]
    assert records[1]['display'] == '180.00'

    assert client.get('/api/users/9999/personal-records').status_code == 404


def test_progress_endpoint(client):
    uid = client.post('/api/users', json={'firstName': 'Fay', 'lastName': 'Quick', 'gender': 'Female'}).get_json()['id']
    for value, date in ((150, '2024-02-01'), (140, '2024-03-01'), (160, '2024-01-01')):
        client.post('/api/results', json={'userName': 'Fay Quick', 'activity': 'Squats', 'value': value, 'date': date})

    rv = client.get(f'/api/users/{uid}/progress?activity=Squats')
    assert rv.status_code == 200
    points = rv.get_json()['points']
    assert [p['value'] for p in points] == [160, 150, 140]
    assert [p['best'] for p in points] == [160, 160, 160]

    assert client.get(f'/api/users/{uid}/progress').status_code == 400


def test_activity_config_endpoints(client):
    rv = client.get('/api/activities')
    assert rv.get_json() == {
        'list': ['Squats', 'Push-ups', 'Mile (seconds)'],
        'prDirection': {'Mile (seconds)': False},
    }

    rv = client.post('/api/activities', json={'name': 'Plank (seconds)', 'higherIsBetter': True})
    assert rv.status_code == 201
    assert 'Plank (seconds)' in rv.get_json()['list']
    assert client.post('/api/activities', json={'name': 'Squats'}).status_code == 400

    rv = client.put('/api/activities/Plank%20(seconds)/direction', json={'higherIsBetter': False})
    assert rv.get_json()['prDirection']['Plank (seconds)'] is False

    rv = client.delete('/api/activities/Plank%20(seconds)')
    assert rv.status_code == 200
    assert 'Plank (seconds)' not in rv.get_json()['list']
    assert 'Plank (seconds)' not in rv.get_json()['prDirection']
    assert client.delete('/api/activities/Plank%20(seconds)').status_code == 404


def test_rename_activity_cascades_to_results(client):
    client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Mile (seconds)', 'value': 400})
    client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 100})

    rv = client.post('/api/activities/Mile%20(seconds)/rename', json={'newName': 'Mile Run (seconds)'})
    assert rv.status_code == 200
    config = rv.get_json()
    assert config['list'] == ['Squats', 'Push-ups', 'Mile Run (seconds)']
    assert config['prDirection'] == {'Mile Run (seconds)': False}

    activities = sorted(r['activity'] for r in client.get('/api/results').get_json())
    assert activities == ['Mile Run (seconds)', 'Squats']

    assert client.post('/api/activities/Nope/rename', json={'newName': 'X'}).status_code == 404
    assert client.post('/api/activities/Squats/rename', json={'newName': 'Push-ups'}).status_code == 400


def test_feet_inches_activity_routes_with_slash(client):
    client.post('/api/activities', json={'name': 'Broad Jump (ft/in)'})

    rv = client.put('/api/activities/Broad%20Jump%20(ft/in)/direction', json={'higherIsBetter': True})
    assert rv.status_code == 200
    assert rv.get_json()['prDirection']['Broad Jump (ft/in)'] is True


def test_add_user_rejects_duplicate_full_name(client):
    rv = client.post('/api/users', json={'firstName': 'Sam', 'lastName': 'Lee', 'gender': 'Male'})
    assert rv.status_code == 201
    first_id = rv.get_json()['id']

    assert client.post('/api/users', json={'firstName': 'Sam', 'lastName': 'Lee', 'gender': 'Female'}).status_code == 400
    assert client.post('/api/users', json={'firstName': ' sam ', 'lastName': 'LEE'}).status_code == 400
    assert [u['fullName'] for u in client.get('/api/users').get_json()] == ['Sam Lee']

    client.post('/api/users', json={'firstName': 'Sam', 'lastName': 'Leeds'})
    client.post('/api/results', json={'userName': 'Sam Leeds', 'activity': 'Squats', 'value': 100})
    client.post('/api/results', json={'userName': 'Sam Lee', 'activity': 'Squats', 'value': 90})

    assert client.delete(f'/api/users/{first_id}').get_json() == {'deleted_results': 1}
    assert [r['userName'] for r in client.get('/api/results').get_json()] == ['Sam Leeds']


def test_add_result_accepts_iso_dates(client):
    for date in ('2024-05-01', '2024-05-01T12:30:00Z', '2024-05-01T12:30:00+02:00'):
        rv = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 100, 'date': date})
        assert rv.status_code == 201
        assert rv.get_json()['date'] == date


def test_invalid_date_leaves_no_result(client):
    uid = client.post('/api/users', json={'firstName': 'Al', 'lastName': 'Strong'}).get_json()['id']
    rv = client.post('/api/results', json={'userName': 'Al Strong', 'activity': 'Squats', 'value': 500, 'date': 'yesterday'})
    assert rv.status_code == 400
    assert client.get(f'/api/users/{uid}/personal-records').get_json() == []


def test_direction_must_be_boolean(client):
    rv = client.put('/api/activities/Squats/direction', json={'higherIsBetter': 'false'})
    assert rv.status_code == 400
    assert client.get('/api/activities').get_json()['prDirection'] == {'Mile (seconds)': False}

    assert client.put('/api/activities/Squats/direction', json={'higherIsBetter': 0}).status_code == 400
    assert client.post('/api/activities', json={'name': 'Plank', 'higherIsBetter': 'false'}).status_code == 400
    assert 'Plank' not in client.get('/api/activities').get_json()['list']


def test_tag_endpoints(client):
    assert client.get('/api/tags').get_json() == []

    rv = client.post('/api/tags', json={'name': 'Sprinters'})
    assert rv.status_code == 201
    assert rv.get_json() == ['Sprinters']
    assert client.post('/api/tags', json={'name': 'Sprinters'}).status_code == 400
    assert client.post('/api/tags', json={'name': '  '}).status_code == 400

    rv = client.post('/api/users', json={'firstName': 'Fay', 'lastName': 'Quick', 'tags': ['Masters', ' Sprinters ']})
    assert rv.status_code == 201
    uid = rv.get_json()['id']
    assert rv.get_json()['tags'] == ['Masters', 'Sprinters']
    assert client.get('/api/tags').get_json() == ['Masters', 'Sprinters']

    rv = client.put(f'/api/users/{uid}/tags', json={'tags': ['Sprinters', 'Varsity']})
    assert rv.get_json()['tags'] == ['Sprinters', 'Varsity']
    assert client.get('/api/tags').get_json() == ['Masters', 'Sprinters', 'Varsity']
    assert client.put('/api/users/9999/tags', json={'tags': []}).status_code == 404

    rv = client.delete('/api/tags/Sprinters')
    assert rv.status_code == 200
    assert rv.get_json() == ['Masters', 'Varsity']
    assert client.get('/api/users').get_json()[0]['tags'] == ['Varsity']
    assert client.delete('/api/tags/Sprinters').status_code == 404


def seed_activities():
    from trackboard.models import ConfigDocument

    if not db.session.get(ConfigDocument, 'activities'):
        db.session.add(ConfigDocument(
            doc_id='activities',
            data={
                'list': ['Squats', 'Push-ups', 'Mile (seconds)'],
                'prDirection': {'Mile (seconds)': False},
            },
        ))
    db.session.commit()


def seed_athletes():
    from trackboard.models import User, Result

    db.session.add_all([
        User(first_name='Al', last_name='Strong', gender='Male', birthdate='04/12/1990'),
        User(first_name='Ben', last_name='Lift', gender='Male'),
        User(first_name='Max', last_name='Power', gender='Male', birthdate='09/30/1975'),
        User(first_name='Cy', last_name='Weak', gender='Male', birthdate='01/01/2001'),
        User(first_name='Fay', last_name='Quick', gender='Female', birthdate='07/04/1996'),
        User(first_name='Nic', last_name='Bee', gender='Non-Binary', birthdate='02/02/1992'),
    ])

    db.session.add_all([
        Result(user_name='Al Strong', activity='Squats', value=300, date='2024-01-10T10:00:00Z'),
        Result(user_name='Al Strong', activity='Squats', value=315, date='2024-02-10T10:00:00Z'),
        Result(user_name='Ben Lift', activity='Squats', value=300, date='2024-01-12T10:00:00Z'),
        Result(user_name='Max Power', activity='Squats', value=400, date='2024-01-05T10:00:00Z'),
        Result(user_name='Cy Weak', activity='Squats', value=150, date='2024-01-06T10:00:00Z'),
        Result(user_name='Fay Quick', activity='Squats', value=185, date='2024-01-07T10:00:00Z'),
        Result(user_name='Nic Bee', activity='Squats', value=999, date='2024-01-08T10:00:00Z'),
        Result(user_name='Fay Quick', activity='Mile (seconds)', value=395, date='2024-01-09T10:00:00Z'),
        Result(user_name='Fay Quick', activity='Mile (seconds)', value=380, date='2024-03-09T10:00:00Z'),
        Result(user_name='Unknown Person', activity='Mile (seconds)', value=200, date='2024-03-10T10:00:00Z'),
        Result(user_name='Al Strong', activity='Curls', value=50, date='2024-03-10T10:00:00Z'),
    ])
    db.session.commit()
