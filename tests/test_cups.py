"""Tests for the cup leaderboard routes."""
import json
import threading

from racecup.app import db, socketio
from racecup.models import Cup, LeaderboardEntry, Qualifier, QualifierResult
from racecup.services.locks import cup_lock


def _upload(client, cup_id, qualifier_id, server, rows):
    return client.post(
        f'/api/cups/{cup_id}/qualifiers/{qualifier_id}/results',
        json={'server': server, 'data': rows},
    )


def _leaderboard(client, cup_id):
    res = client.get(f'/api/cups/{cup_id}/leaderboard')
    assert res.status_code == 200
    return json.loads(res.data)['leaderboard']['entries']


def test_upload_results_recomputes_leaderboard(client, sample_cup):
    cup_id = sample_cup.id
    qualifier_id = sample_cup.qualifiers[0].id
    res = _upload(client, cup_id, qualifier_id, 1, [
        [1, 0, 'Player One', 'p1', 'World|France'],
        [4, 0, 'Player Two', 'p2', 'World|Spain'],
        [10, 7200, 'Player Three', 'p3', 'World|Chile'],
    ])
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['success'] is True
    assert data['import']['stored'] == 3
    assert [(e['player_id'], e['position']) for e in data['entries']] == [
        ('p1', 1), ('p2', 2), ('p3', 3),
    ]

    entries = _leaderboard(client, cup_id)
    assert [(e['player_id'], e['points'], e['qualified'], e['position']) for e in entries] == [
        ('p1', 50000, True, 1),
        ('p2', 15000, False, 2),
        ('p3', 7500, False, 3),
    ]
    assert entries[0]['player']['name'] == 'Player One'
    assert entries[2]['player']['zone'] == 'World|Chile'


def test_reupload_replaces_previous_server_results(client, sample_cup):
    cup_id = sample_cup.id
    qualifier_id = sample_cup.qualifiers[0].id
    _upload(client, cup_id, qualifier_id, 2, [
        [1, 0, 'Alpha', 'alpha', 'World'],
        [2, 0, 'Bravo', 'bravo', 'World'],
    ])
    res = _upload(client, cup_id, qualifier_id, 2, [
        [1, 0, 'Bravo', 'bravo', 'World'],
    ])
    assert res.status_code == 200

    entries = _leaderboard(client, cup_id)
    assert [(e['player_id'], e['points'], e['position']) for e in entries] == [
        ('bravo', 6500, 1),
    ]


def test_results_from_several_qualifiers_accumulate(client, sample_cup):
    cup_id = sample_cup.id
    q1, q2, _ = [q.id for q in sample_cup.qualifiers]
    _upload(client, cup_id, q1, 2, [[1, 0, 'Alpha', 'alpha', 'World']])
    _upload(client, cup_id, q2, 2, [
        [3, 0, 'Alpha', 'alpha', 'World'],
        [4, 4700, 'Bravo', 'bravo', 'World'],
        [5, 4900, 'Charlie', 'charlie', 'World'],
        [6, 20, 'Delta', 'delta', 'World'],
    ])

    entries = _leaderboard(client, cup_id)
    assert [(e['player_id'], e['points'], e['position']) for e in entries] == [
        ('alpha', 12000, 1),
        ('bravo', 5000, 2),
        ('charlie', 5000, 2),
        ('delta', 20, 4),
    ]


def test_upload_rejects_invalid_body(client, sample_cup):
    cup_id = sample_cup.id
    qualifier_id = sample_cup.qualifiers[0].id

    missing = client.post(
        f'/api/cups/{cup_id}/qualifiers/{qualifier_id}/results',
        json={'data': []},
    )
    assert missing.status_code == 400

    empty = _upload(client, cup_id, qualifier_id, 1, [])
    assert empty.status_code == 400

    bad_server = _upload(client, cup_id, qualifier_id, 0, [[1, 0, 'A', 'a', 'W']])
    assert bad_server.status_code == 400

    bad_row = _upload(client, cup_id, qualifier_id, 1, [[1, 0, 'A', 'a']])
    assert bad_row.status_code == 400
    assert 'Row #1' in json.loads(bad_row.data)['error']

    not_json = client.post(
        f'/api/cups/{cup_id}/qualifiers/{qualifier_id}/results',
        data='nope',
        content_type='text/plain',
    )
    assert not_json.status_code == 400
    assert QualifierResult.query.count() == 0


def test_upload_to_qualifier_of_other_cup_is_not_found(client, sample_cup):
    other = Cup(year=2024, month=7, name='August Cup 2024')
    db.session.add(other)
    db.session.flush()
    other_qualifier = Qualifier(cup_id=other.id, version=1)
    db.session.add(other_qualifier)
    db.session.commit()

    res = _upload(client, sample_cup.id, other_qualifier.id, 1, [[1, 0, 'A', 'a', 'W']])
    assert res.status_code == 404

    missing = _upload(client, sample_cup.id, 9999, 1, [[1, 0, 'A', 'a', 'W']])
    assert missing.status_code == 404


def test_upload_to_cup_without_leaderboard_writes_nothing(client, app):
    cup = Cup(year=2024, month=8, name='September Cup 2024')
    db.session.add(cup)
    db.session.flush()
    qualifier = Qualifier(cup_id=cup.id, version=1)
    db.session.add(qualifier)
    db.session.commit()

    res = _upload(client, cup.id, qualifier.id, 1, [[1, 0, 'A', 'a', 'W']])
    assert res.status_code == 404
    assert QualifierResult.query.count() == 0
    assert LeaderboardEntry.query.count() == 0


def test_clear_qualifier_recomputes_leaderboard(client, sample_cup):
    cup_id = sample_cup.id
    q1, q2, _ = [q.id for q in sample_cup.qualifiers]
    _upload(client, cup_id, q1, 1, [[1, 0, 'Alpha', 'alpha', 'World']])
    _upload(client, cup_id, q1, 2, [[1, 0, 'Bravo', 'bravo', 'World']])
    _upload(client, cup_id, q2, 1, [[5, 0, 'Charlie', 'charlie', 'World']])

    res = client.delete(f'/api/cups/{cup_id}/qualifiers/{q1}/results')
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['removed'] == 2

    entries = _leaderboard(client, cup_id)
    assert [(e['player_id'], e['points'], e['qualified'], e['position']) for e in entries] == [
        ('charlie', 10000, False, 1),
    ]


def test_recompute_leaderboard_route(client, sample_cup):
    cup_id = sample_cup.id
    _upload(client, cup_id, sample_cup.qualifiers[0].id, 1, [[2, 0, 'Alpha', 'alpha', 'World']])
    LeaderboardEntry.query.delete()
    db.session.commit()

    res = client.post(f'/api/cups/{cup_id}/leaderboard/recompute')
    assert res.status_code == 200
    entries = _leaderboard(client, cup_id)
    assert [(e['player_id'], e['qualified'], e['position']) for e in entries] == [
        ('alpha', True, 1),
    ]


def test_missing_cup_routes_return_not_found(client, app):
    assert client.get('/api/cups/404/leaderboard').status_code == 404
    assert client.post('/api/cups/404/leaderboard/recompute').status_code == 404
    assert client.delete('/api/cups/404/qualifiers/1/results').status_code == 404


def test_leaderboard_of_fresh_cup_is_empty(client, sample_cup):
    res = client.get(f'/api/cups/{sample_cup.id}/leaderboard')
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['cup']['name'] == 'June Cup 2024'
    assert data['leaderboard']['entries'] == []
    assert data['leaderboard']['updated_at'] is None


def _hold_cup_lock(cup_id):
    acquired = threading.Event()
    release = threading.Event()

    def worker():
        with cup_lock(cup_id):
            acquired.set()
            release.wait(5)

    thread = threading.Thread(target=worker)
    thread.start()
    assert acquired.wait(5)
    return thread, release


def test_busy_cup_returns_conflict_and_writes_nothing(client, app, sample_cup):
    cup_id = sample_cup.id
    qualifier_id = sample_cup.qualifiers[0].id
    app.config['LEADERBOARD_LOCK_TIMEOUT_SECONDS'] = 0.05

    thread, release = _hold_cup_lock(cup_id)
    try:
        upload = _upload(client, cup_id, qualifier_id, 1, [[1, 0, 'Alpha', 'alpha', 'World']])
        cleared = client.delete(f'/api/cups/{cup_id}/qualifiers/{qualifier_id}/results')
        recompute = client.post(f'/api/cups/{cup_id}/leaderboard/recompute')
    finally:
        release.set()
        thread.join(5)

    assert upload.status_code == 409
    assert cleared.status_code == 409
    assert recompute.status_code == 409
    assert 'Timed out' in json.loads(upload.data)['error']
    assert QualifierResult.query.count() == 0
    assert LeaderboardEntry.query.count() == 0


def test_upload_emits_leaderboard_update(client, app, sample_cup):
    cup_id = sample_cup.id
    sio_client = socketio.test_client(app)
    sio_client.get_received()

    res = _upload(client, cup_id, sample_cup.qualifiers[0].id, 1, [[1, 0, 'Alpha', 'alpha', 'World']])
    assert res.status_code == 200

    events = [e for e in sio_client.get_received() if e['name'] == 'leaderboard_update']
    assert len(events) == 1
    payload = events[0]['args'][0]
    assert payload['cup_id'] == cup_id
    assert payload['reason'] == 'results_uploaded'
    assert payload['updated_at']
    sio_client.disconnect()


def test_leaderboard_update_can_be_disabled(client, app, sample_cup):
    app.config['EMIT_LEADERBOARD_UPDATES'] = False
    sio_client = socketio.test_client(app)
    sio_client.get_received()

    res = client.post(f'/api/cups/{sample_cup.id}/leaderboard/recompute')
    assert res.status_code == 200
    assert [e for e in sio_client.get_received() if e['name'] == 'leaderboard_update'] == []
    sio_client.disconnect()
