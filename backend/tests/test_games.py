from conftest import join
from quizflow import db
from quizflow.models import Game, GameFlow, QuizSet
from quizflow.services.games import broadcast
from quizflow.services.games.flow import GameFlowResult, game_flow_service


def test_create_game(flask_app, host_client, quiz, host_id):
    res = host_client.post('/games', json={'quiz_set_id': quiz['id'], 'game_settings': {'music': False}})
    assert res.status_code == 201
    data = res.get_json()
    game = data['game']
    assert game['status'] == 'waiting'
    assert game['user_id'] == host_id
    assert game['game_settings'] == {'music': False}
    assert len(game['game_code']) == 6 and game['game_code'].isdigit()
    assert data['host_player'] is None

    with flask_app.app_context():
        flow = GameFlow.query.filter_by(game_id=game['id']).one()
        assert flow.total_questions == 3
        assert flow.quiz_set_id == quiz['id']
        assert db.session.get(QuizSet, quiz['id']).times_played == 1


def test_create_game_with_host_player(host_client, quiz):
    res = host_client.post('/games', json={
        'quiz_set_id': quiz['id'],
        'player_name': 'Host',
        'device_id': 'host-device',
    })
    host_player = res.get_json()['host_player']
    assert host_player['is_host'] is True
    assert host_player['is_logged_in'] is True
    assert res.get_json()['game']['current_players'] == 1


def test_create_game_prefers_configured_code(flask_app, host_client, quiz):
    with flask_app.app_context():
        db.session.get(QuizSet, quiz['id']).play_settings = {'code': '424242'}
        db.session.commit()
    first = host_client.post('/games', json={'quiz_set_id': quiz['id']}).get_json()['game']
    second = host_client.post('/games', json={'quiz_set_id': quiz['id']}).get_json()['game']
    assert first['game_code'] == '424242'
    assert second['game_code'] != '424242'


def test_create_game_validation(host_client):
    res = host_client.post('/games', json={})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'validation_error'
    res = host_client.post('/games', json={'quiz_set_id': 'missing'})
    assert res.status_code == 404


def test_create_game_rolls_back_when_flow_fails(flask_app, host_client, quiz, monkeypatch):
    monkeypatch.setattr(
        game_flow_service, 'create_game_flow',
        lambda *args, **kwargs: GameFlowResult(False, error='Failed to create game flow'),
    )
    res = host_client.post('/games', json={'quiz_set_id': quiz['id']})
    assert res.status_code == 500
    assert res.get_json()['error'] == 'database_error'
    with flask_app.app_context():
        assert Game.query.count() == 0


def test_get_game_by_code(client, game):
    res = client.get(f"/games/by-code/{game['game_code']}")
    assert res.status_code == 200
    assert res.get_json()['id'] == game['id']
    assert client.get('/games/by-code/000000').status_code == 404


def test_delete_game(flask_app, host_client, game):
    res = host_client.delete(f"/games/{game['id']}")
    assert res.status_code == 200
    assert host_client.get(f"/games/{game['id']}").status_code == 404
    with flask_app.app_context():
        assert GameFlow.query.count() == 0


def test_join_and_list_players(client, game, recorder):
    alice = join(client, game['id'], 'Alice')
    join(client, game['id'], 'Bob')
    assert alice['is_host'] is False
    assert recorder.named(broadcast.PLAYER_JOINED)[0]['player']['id'] == alice['id']

    res = client.get(f"/games/{game['id']}/players")
    data = res.get_json()
    assert data['total'] == 2
    assert [p['player_name'] for p in data['players']] == ['Alice', 'Bob']
    assert client.get(f"/games/{game['id']}").get_json()['current_players'] == 2


def test_join_validation(client, game):
    res = client.post(f"/games/{game['id']}/players", json={'player_name': 'Alice'})
    assert res.status_code == 400
    res = client.post('/games/missing/players', json={'player_name': 'Alice', 'device_id': 'd'})
    assert res.status_code == 404


def test_locked_room_rejects_players(host_client, client, game):
    host_client.patch(f"/games/{game['id']}/lock", json={'locked': True})
    res = client.post(f"/games/{game['id']}/players", json={'player_name': 'Eve', 'device_id': 'eve'})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'room_locked'


def test_finished_game_rejects_players(host_client, client, started_game):
    host_client.patch(f"/games/{started_game['id']}/status", json={'action': 'end'})
    res = client.post(f"/games/{started_game['id']}/players", json={'player_name': 'Eve', 'device_id': 'eve'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_state'


def test_kick_player(host_client, client, game, recorder, host_id):
    bob = join(client, game['id'], 'Bob')
    res = host_client.delete(f"/games/{game['id']}/players/{bob['id']}")
    assert res.status_code == 200
    kicked = recorder.named(broadcast.PLAYER_KICKED)[0]
    assert kicked['player_id'] == bob['id']
    assert kicked['player_name'] == 'Bob'
    assert kicked['kicked_by'] == host_id
    assert client.get(f"/games/{game['id']}/players").get_json()['total'] == 0

    res = host_client.delete(f"/games/{game['id']}/players/{bob['id']}")
    assert res.status_code == 404


def test_host_cannot_be_kicked(host_client, quiz):
    data = host_client.post('/games', json={
        'quiz_set_id': quiz['id'], 'player_name': 'Host', 'device_id': 'host-device',
    }).get_json()
    res = host_client.delete(f"/games/{data['game']['id']}/players/{data['host_player']['id']}")
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_request'


def test_answer_validation(client, game):
    player = join(client, game['id'], 'Alice')
    url = f"/games/{game['id']}/players/{player['id']}/answer"
    base = {
        'question_id': 'q1', 'question_number': 1, 'answer_id': 'a',
        'is_correct': True, 'time_taken': 1.5, 'points_earned': 10,
    }
    assert client.post(url, json={**base, 'question_number': 0}).status_code == 400
    assert client.post(url, json={**base, 'time_taken': -1}).status_code == 400
    assert client.post(url, json={**base, 'points_earned': -5}).status_code == 400
    assert client.post(url, json={**base, 'is_correct': 'yes'}).status_code == 400
    assert client.post(f"/games/{game['id']}/players/ghost/answer", json=base).status_code == 404

    res = client.post(url, json={**base, 'answer_id': None, 'is_correct': False, 'points_earned': None})
    assert res.status_code == 200
    assert res.get_json()['score'] == 0
    assert res.get_json()['answer_stats'] == {}


def test_leaderboard(client, game):
    alice = join(client, game['id'], 'Alice')
    bob = join(client, game['id'], 'Bob')
    body = {'question_id': 'q1', 'question_number': 1, 'answer_id': 'a', 'time_taken': 1}
    client.post(f"/games/{game['id']}/players/{alice['id']}/answer", json={**body, 'is_correct': False})
    client.post(f"/games/{game['id']}/players/{bob['id']}/answer",
                json={**body, 'is_correct': True, 'points_earned': 50})

    res = client.get(f"/games/{game['id']}/leaderboard")
    assert res.status_code == 200
    data = res.get_json()
    assert data['total'] == 2
    assert [(e['player_name'], e['rank'], e['accuracy']) for e in data['entries']] == [('Bob', 1, 100), ('Alice', 2, 0)]

    page = client.get(f"/games/{game['id']}/leaderboard?limit=1&offset=1").get_json()
    assert [e['player_name'] for e in page['entries']] == ['Alice']
    assert page['entries'][0]['rank'] == 2


def test_leaderboard_bounds(client, game):
    assert client.get(f"/games/{game['id']}/leaderboard?limit=0").status_code == 400
    assert client.get(f"/games/{game['id']}/leaderboard?limit=201").status_code == 400
    assert client.get(f"/games/{game['id']}/leaderboard?offset=-1").status_code == 400
    assert client.get('/games/missing/leaderboard').status_code == 404


def test_configured_code_is_found_as_stored(flask_app, client, host_client, quiz):
    with flask_app.app_context():
        db.session.get(QuizSet, quiz['id']).play_settings = {'code': 'room-abc'}
        db.session.commit()
    game = host_client.post('/games', json={'quiz_set_id': quiz['id']}).get_json()['game']
    assert game['game_code'] == 'room-abc'

    res = client.get('/games/by-code/room-abc')
    assert res.status_code == 200
    assert res.get_json()['id'] == game['id']


def test_completed_game_rejects_players(host_client, client, started_game):
    host_client.patch(f"/games/{started_game['id']}/status", json={'status': 'completed'})
    res = client.post(f"/games/{started_game['id']}/players", json={'player_name': 'Eve', 'device_id': 'eve'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_state'


def test_answer_saved_when_stats_query_fails(client, game, recorder, monkeypatch):
    from sqlalchemy.exc import OperationalError
    import quizflow.api.player_data as player_data_routes

    def broken_stats(game_id, question_id):
        raise OperationalError('SELECT answer_report', {}, Exception('database is locked'))

    monkeypatch.setattr(player_data_routes, 'answer_statistics', broken_stats)
    player = join(client, game['id'], 'Alice')
    res = client.post(f"/games/{game['id']}/players/{player['id']}/answer", json={
        'question_id': 'q1', 'question_number': 1, 'answer_id': 'a',
        'is_correct': True, 'time_taken': 1.0, 'points_earned': 10,
    })
    assert res.status_code == 200
    assert res.get_json()['score'] == 10
    assert res.get_json()['answer_stats'] == {}

    board = client.get(f"/games/{game['id']}/leaderboard").get_json()
    assert board['entries'][0]['score'] == 10
    assert board['entries'][0]['total_answers'] == 1
    assert recorder.named(broadcast.ANSWER_STATS_UPDATE)[-1]['counts'] == {}


def test_answer_emits_both_stats_events(client, game, recorder):
    player = join(client, game['id'], 'Alice')
    client.post(f"/games/{game['id']}/players/{player['id']}/answer", json={
        'question_id': 'q1', 'question_number': 1, 'answer_id': 'a',
        'is_correct': True, 'time_taken': 1.0,
    })
    expected = {'roomId': game['id'], 'questionId': 'q1', 'counts': {'a': 1}}
    assert recorder.named(broadcast.ANSWER_STATS) == [expected]
    assert recorder.named(broadcast.ANSWER_STATS_UPDATE) == [expected]
