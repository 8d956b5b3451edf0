from datetime import date

import pytest
from flask_jwt_extended import create_access_token

from certsys.api import db
from certsys.api.app import create_app
from certsys.api.config import Config
from certsys.api.models.pending_registration import PendingRegistration
from certsys.api.models.user import User
from certsys.api.utils.realtime import ALL, ChangeEvent, ChangeFeed, apply_change_event, parse_filter
from certsys.api.utils.stores import get_feed, get_registry


class RealtimeTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    REALTIME_WEBHOOK_SECRET = 'hook-secret'


ROWS = [
    {'id': '2', 'status': 'pending', 'purok_chairman_id': 'c1'},
    {'id': '1', 'status': 'pending', 'purok_chairman_id': 'c1'},
]


def _pending_for(chairman_id):
    return lambda row: row.get('purok_chairman_id') == chairman_id and row.get('status') == 'pending'


def test_insert_prepends_matching_rows_only():
    keep = _pending_for('c1')
    added = apply_change_event(ROWS, ChangeEvent('INSERT', 't', {'id': '3', 'status': 'pending',
                                                                  'purok_chairman_id': 'c1'}), keep)
    assert [r['id'] for r in added] == ['3', '2', '1']

    ignored = apply_change_event(ROWS, ChangeEvent('INSERT', 't', {'id': '4', 'status': 'pending',
                                                                    'purok_chairman_id': 'c2'}), keep)
    assert ignored == ROWS


def test_insert_of_known_id_merges_instead_of_duplicating():
    result = apply_change_event(ROWS, ChangeEvent('INSERT', 't', {'id': '1', 'status': 'pending', 'note': 'x'}))
    assert len(result) == 2
    assert result[1]['note'] == 'x'


def test_update_replaces_by_id_and_drops_rows_that_leave_the_list():
    keep = _pending_for('c1')
    updated = apply_change_event(ROWS, ChangeEvent('UPDATE', 't', {'id': '1', 'status': 'pending',
                                                                    'purok_chairman_id': 'c1', 'age': 30}), keep)
    assert updated[1] == {'id': '1', 'status': 'pending', 'purok_chairman_id': 'c1', 'age': 30}

    approved = apply_change_event(ROWS, ChangeEvent('UPDATE', 't', {'id': '1', 'status': 'approved',
                                                                     'purok_chairman_id': 'c1'}), keep)
    assert [r['id'] for r in approved] == ['2']


def test_update_for_unknown_row_changes_nothing():
    result = apply_change_event(ROWS, ChangeEvent('UPDATE', 't', {'id': '9', 'status': 'pending'}))
    assert result == ROWS


def test_delete_filters_by_old_id():
    result = apply_change_event(ROWS, ChangeEvent('DELETE', 't', None, {'id': '2'}))
    assert [r['id'] for r in result] == ['1']


def test_apply_does_not_mutate_input():
    original = [dict(r) for r in ROWS]
    apply_change_event(ROWS, ChangeEvent('DELETE', 't', None, {'id': '2'}))
    assert ROWS == original


def test_parse_filter_eq_and_neq():
    eq = parse_filter('user_id=eq.abc')
    assert eq({'user_id': 'abc'}) and not eq({'user_id': 'xyz'})

    neq = parse_filter('status=neq.completed')
    assert neq({'status': 'pending'}) and not neq({'status': 'completed'})

    is_read = parse_filter('is_read=eq.false')
    assert is_read({'is_read': False})

    assert parse_filter(None) is None
    with pytest.raises(ValueError):
        parse_filter('amount=gt.5')
    with pytest.raises(ValueError):
        parse_filter('nonsense')


def test_from_payload_accepts_webhook_and_realtime_shapes():
    webhook = ChangeEvent.from_payload({
        'type': 'INSERT', 'table': 'notifications', 'schema': 'public',
        'record': {'id': 'n1'}, 'old_record': None,
    })
    assert webhook.event_type == 'INSERT'
    assert webhook.row == {'id': 'n1'}

    realtime = ChangeEvent.from_payload({'eventType': 'delete', 'table': 'notifications', 'old': {'id': 'n1'}})
    assert realtime.event_type == 'DELETE'
    assert realtime.row == {'id': 'n1'}


@pytest.mark.parametrize('payload', [
    None,
    [],
    {'type': 'TRUNCATE', 'table': 'users'},
    {'type': 'INSERT', 'record': {'id': '1'}},
    {'type': 'UPDATE', 'table': 'users'},
    {'type': 'DELETE', 'table': 'users', 'old_record': {}},
])
def test_from_payload_rejects_malformed_events(payload):
    with pytest.raises(ValueError):
        ChangeEvent.from_payload(payload)


def test_feed_routes_events_by_table_filter_and_type():
    feed = ChangeFeed()
    mine, inserts, everything = [], [], []
    feed.subscribe('notifications', mine.append, filter='user_id=eq.u1')
    feed.subscribe('notifications', inserts.append, events=('insert',))
    feed.subscribe(ALL, everything.append)

    assert feed.publish(ChangeEvent('INSERT', 'notifications', {'id': 'a', 'user_id': 'u1'})) == 3
    assert feed.publish(ChangeEvent('UPDATE', 'notifications', {'id': 'b', 'user_id': 'u2'})) == 1
    # Deletes that only carry the key still reach filtered subscribers
    assert feed.publish(ChangeEvent('DELETE', 'notifications', None, {'id': 'a'})) == 2

    assert [e.event_type for e in mine] == ['INSERT', 'DELETE']
    assert [e.event_type for e in inserts] == ['INSERT']
    assert len(everything) == 3


def test_unsubscribe_and_failing_subscriber():
    feed = ChangeFeed()
    received = []

    def broken(event):
        raise RuntimeError('boom')

    sub = feed.subscribe('users', received.append)
    feed.subscribe('users', broken)
    assert feed.publish(ChangeEvent('INSERT', 'users', {'id': '1'})) == 1

    sub.unsubscribe()
    assert feed.publish(ChangeEvent('INSERT', 'users', {'id': '2'})) == 0
    assert len(received) == 1
    assert feed.subscriber_counts() == {'users': 1}


def _webhook_app():
    app = create_app(RealtimeTestConfig)
    with app.app_context():
        db.create_all()
        db.session.add(User(id='c1', email='chair@example.com', full_name='Pedro Reyes',
                            role='purok_chairman', purok='Purok 1'))
        db.session.commit()
        token = create_access_token(identity='c1')
    return app, token


def test_webhook_requires_secret():
    app, _ = _webhook_app()
    client = app.test_client()
    payload = {'type': 'INSERT', 'table': 'users', 'record': {'id': 'x'}}

    assert client.post('/api/realtime/webhook', json=payload).status_code == 401
    assert client.post('/api/realtime/webhook', json=payload,
                       headers={'X-Webhook-Secret': 'wrong'}).status_code == 401

    resp = client.post('/api/realtime/webhook', json={'type': 'INSERT'},
                       headers={'X-Webhook-Secret': 'hook-secret'})
    assert resp.status_code == 400


def test_webhook_unconfigured_is_503():
    class NoSecretConfig(RealtimeTestConfig):
        REALTIME_WEBHOOK_SECRET = ''

    app = create_app(NoSecretConfig)
    resp = app.test_client().post('/api/realtime/webhook', json={},
                                  headers={'X-Webhook-Secret': 'anything'})
    assert resp.status_code == 503
    assert resp.get_json() == {'error': 'Realtime webhook is not configured', 'code': 'UNAVAILABLE'}


def test_webhook_event_splices_into_pending_list():
    app, token = _webhook_app()
    client = app.test_client()
    auth = {'Authorization': f'Bearer {token}'}
    with app.app_context():
        db.session.add(PendingRegistration(
            id='r0', first_name='Ben', last_name='Santos', email='ben@example.com',
            date_of_birth=date(1990, 1, 5), purok_chairman_id='c1', status='pending',
        ))
        db.session.commit()

    first = client.get('/api/registrations/pending', headers=auth).get_json()['registrations']
    assert [r['id'] for r in first] == ['r0']

    # Database webhooks carry table columns only
    row = {
        'id': 'r1', 'first_name': 'Ana', 'middle_name': 'Lopez', 'last_name': 'Cruz',
        'email': 'ana@example.com', 'date_of_birth': '1995-08-20', 'status': 'pending',
        'purok_chairman_id': 'c1', 'created_at': '2026-10-19T08:00:00',
    }
    resp = client.post('/api/realtime/webhook', headers={'X-Webhook-Secret': 'hook-secret'},
                       json={'type': 'INSERT', 'table': 'pending_registrations', 'record': row})
    assert resp.status_code == 200
    assert resp.get_json() == {'received': True, 'delivered': 1}

    # Served from the cache window with the pushed row spliced in
    listed = client.get('/api/registrations/pending', headers=auth).get_json()['registrations']
    assert [r['id'] for r in listed] == ['r1', 'r0']
    assert set(listed[0]) == set(listed[1])
    assert listed[0]['full_name'] == 'Ana Lopez Cruz'
    assert listed[0]['address'] is None

    client.post('/api/realtime/webhook', headers={'X-Webhook-Secret': 'hook-secret'},
                json={'type': 'UPDATE', 'table': 'pending_registrations',
                      'record': dict(row, status='approved')})
    listed = client.get('/api/registrations/pending', headers=auth).get_json()
    assert [r['id'] for r in listed['registrations']] == ['r0']


def test_events_invalidate_stores_without_membership_rule():
    app = create_app(RealtimeTestConfig)
    with app.app_context():
        registry = get_registry()
        store = registry.get('users', 'admin:*', lambda: ['cached'])
        store.fetch()
        assert store.is_fresh()

        get_feed().publish(ChangeEvent('UPDATE', 'users', {'id': 'u1'}))
        assert not store.is_fresh()
        assert store.data == ['cached']
