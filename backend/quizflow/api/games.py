from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
import random

from quizflow import db
from quizflow.errors import ApiError, handle_unexpected, DATABASE_ERROR, INVALID_PAYLOAD, INVALID_STATE, NOT_FOUND
from quizflow.models import (
    FINISHED_STATUSES, Game, GamePlayerData, Player, Question, QuizSet, empty_answer_report, utcnow,
    GAME_STATUS_WAITING,
)
from quizflow.services.games import broadcast
from quizflow.services.games.access import load_game, load_owned_game
from quizflow.services.games.flow import game_flow_service


games = Blueprint('games', __name__)

GAME_CODE_MIN = 100000
GAME_CODE_MAX = 999999


def generate_game_code():
    return str(random.randint(GAME_CODE_MIN, GAME_CODE_MAX))


def _code_taken(code):
    return db.session.query(Game.id).filter_by(game_code=code).first() is not None


def ensure_unique_game_code(play_settings):
    """Prefer the quiz's configured room code, else draw random 6-digit codes."""
    preferred = (play_settings or {}).get('code')
    code = str(preferred) if preferred else generate_game_code()
    if not _code_taken(code):
        return code
    attempts = int(current_app.config.get('GAME_CODE_ATTEMPTS', 5))
    for _ in range(attempts):
        code = generate_game_code()
        if not _code_taken(code):
            return code
    raise RuntimeError('Failed to generate unique game code')


def add_player(game, player_name, device_id, is_host=False, is_logged_in=False):
    """Create a player together with its score/answer-report row."""
    player = Player(
        game_id=game.id,
        player_name=player_name,
        device_id=device_id,
        is_host=is_host,
        is_logged_in=is_logged_in,
    )
    db.session.add(player)
    db.session.flush()
    db.session.add(GamePlayerData(
        player_id=player.id,
        game_id=game.id,
        player_device_id=device_id,
        score=0,
        answer_report=empty_answer_report(),
    ))
    game.current_players = (game.current_players or 0) + 1
    db.session.add(game)
    db.session.commit()
    return player


def _rollback_game_creation(game_id):
    current_app.logger.error(f"[create] game={game_id} flow creation failed, rolling back game")
    try:
        db.session.query(Game).filter_by(id=game_id).delete()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[create] game={game_id} rollback failed: {exc}")


@games.route('', methods=['POST'])
@login_required
@handle_unexpected('Internal server error')
def create_game():
    """
    Creates a new game in the waiting state together with its game flow.
    """
    data = request.get_json(silent=True) or {}
    quiz_set_id = data.get('quiz_set_id')
    if not quiz_set_id or not isinstance(quiz_set_id, str):
        raise ApiError(400, 'validation_error', 'quiz_set_id is required')
    game_settings = data.get('game_settings') or {}
    if not isinstance(game_settings, dict):
        raise ApiError(400, 'validation_error', 'game_settings must be an object')

    quiz = db.session.get(QuizSet, quiz_set_id)
    if quiz is None:
        current_app.logger.warning(f"[create] quiz_set={quiz_set_id} not found")
        raise ApiError(404, NOT_FOUND, 'Quiz not found')

    game = Game(
        user_id=current_user.get_id(),
        quiz_set_id=quiz.id,
        game_code=ensure_unique_game_code(quiz.play_settings),
        status=GAME_STATUS_WAITING,
        game_settings=game_settings,
        current_players=0,
        current_question_index=0,
        locked=False,
    )
    try:
        db.session.add(game)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[create] insert failed: {exc}")
        raise ApiError(500, DATABASE_ERROR, 'Failed to create game')

    total_questions = len(Question.ordered_for_quiz(quiz.id))
    flow_result = game_flow_service.create_game_flow(game.id, quiz.id, total_questions)
    if not flow_result.success:
        game_id = game.id
        _rollback_game_creation(game_id)
        raise ApiError(500, DATABASE_ERROR, f'Failed to initialize game flow: {flow_result.error}')

    host_player = None
    player_name = data.get('player_name')
    device_id = data.get('device_id')
    if player_name and device_id:
        try:
            host_player = add_player(game, player_name, device_id, is_host=True, is_logged_in=True)
            current_app.logger.info(f"[create] game={game.id} host player={host_player.id}")
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[create] game={game.id} host player not created: {exc}")

    try:
        quiz.times_played = (quiz.times_played or 0) + 1
        db.session.add(quiz)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[create] quiz_set={quiz.id} times_played not incremented: {exc}")

    current_app.logger.info(
        f"[create] game={game.id} flow={flow_result.game_flow.id} code={game.game_code} host={current_user.get_id()}"
    )
    return jsonify({
        'game': game.to_dict(),
        'host_player': host_player.to_dict() if host_player else None,
    }), 201


@games.route('/by-code/<string:game_code>', methods=['GET'])
@handle_unexpected('Internal server error')
def get_game_by_code(game_code):
    game = Game.query.filter_by(game_code=game_code.strip()).first()
    if game is None:
        raise ApiError(404, NOT_FOUND, 'Game not found')
    return jsonify(game.to_dict())


@games.route('/<string:game_id>', methods=['DELETE'])
@login_required
@handle_unexpected('Failed to delete game')
def delete_game(game_id):
    game = load_owned_game(game_id)
    db.session.delete(game)
    db.session.commit()
    current_app.logger.info(f"[delete] game={game_id} removed by host={current_user.get_id()}")
    return jsonify({'message': 'Game deleted', 'game_id': game_id})


@games.route('/<string:game_id>/players', methods=['POST'])
@handle_unexpected('Failed to join game')
def join_game(game_id):
    data = request.get_json(silent=True) or {}
    player_name = data.get('player_name')
    device_id = data.get('device_id')
    if not all([player_name, device_id]) or not isinstance(player_name, str) or not isinstance(device_id, str):
        raise ApiError(400, INVALID_PAYLOAD, 'player_name and device_id are required')

    game = load_game(game_id)
    if game.locked:
        raise ApiError(403, 'room_locked', 'This room is locked')
    if game.status in FINISHED_STATUSES:
        raise ApiError(400, INVALID_STATE, 'This game has already finished')

    player = add_player(game, player_name.strip(), device_id)
    broadcast.notify(game.id, broadcast.PLAYER_JOINED, {
        'roomId': game.id,
        'player': player.to_dict(),
    })
    current_app.logger.info(f"[join] game={game.id} player={player.id} name={player.player_name}")
    return jsonify(player.to_dict()), 201


@games.route('/<string:game_id>/players', methods=['GET'])
@handle_unexpected('Failed to fetch players')
def list_players(game_id):
    game = load_game(game_id)
    players = Player.query.filter_by(game_id=game.id).order_by(Player.created_at.asc()).all()
    return jsonify({'players': [p.to_dict() for p in players], 'total': len(players)})


@games.route('/<string:game_id>/players/<string:player_id>', methods=['DELETE'])
@login_required
@handle_unexpected('Internal server error')
def kick_player(game_id, player_id):
    game = load_owned_game(game_id)
    player = Player.query.filter_by(id=player_id, game_id=game.id).first()
    if player is None:
        raise ApiError(404, NOT_FOUND, 'Player not found in this game')
    if player.is_host:
        raise ApiError(400, 'invalid_request', 'Cannot ban the host player')

    player_name = player.player_name
    db.session.delete(player)
    game.current_players = max(0, (game.current_players or 0) - 1)
    db.session.add(game)
    db.session.commit()

    broadcast.notify(game.id, broadcast.PLAYER_KICKED, {
        'roomId': game.id,
        'player_id': player_id,
        'player_name': player_name,
        'game_id': game.id,
        'kicked_by': current_user.get_id(),
        'timestamp': utcnow().isoformat(),
    })
    current_app.logger.info(f"[kick] game={game.id} player={player_id} name={player_name} by={current_user.get_id()}")
    return jsonify({'message': 'Player banned successfully', 'player_id': player_id})
