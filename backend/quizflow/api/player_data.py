from flask import Blueprint, jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from quizflow import db
from quizflow.errors import ApiError, handle_unexpected, INVALID_PAYLOAD, NOT_FOUND
from quizflow.models import GamePlayerData, as_utc, utcnow
from quizflow.services.games import broadcast
from quizflow.services.games.access import load_game
from quizflow.services.games.flow import game_flow_service
from quizflow.services.games.scoring import answer_statistics, build_leaderboard, record_answer

player_data = Blueprint('player_data', __name__)

LEADERBOARD_MAX_LIMIT = 200


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_answer(data):
    """Validate an answer submission body; returns the normalized dict."""
    question_id = data.get('question_id')
    question_number = data.get('question_number')
    answer_id = data.get('answer_id')
    is_correct = data.get('is_correct')
    time_taken = data.get('time_taken')
    points_earned = data.get('points_earned', 0)

    if not question_id or not isinstance(question_id, str):
        raise ApiError(400, INVALID_PAYLOAD, 'question_id is required')
    if isinstance(question_number, bool) or not isinstance(question_number, int) or question_number < 1:
        raise ApiError(400, INVALID_PAYLOAD, 'question_number must be a positive integer')
    if answer_id is not None and not isinstance(answer_id, str):
        raise ApiError(400, INVALID_PAYLOAD, 'answer_id must be a string or null')
    if not isinstance(is_correct, bool):
        raise ApiError(400, INVALID_PAYLOAD, 'is_correct must be a boolean')
    if not _is_number(time_taken) or time_taken < 0:
        raise ApiError(400, INVALID_PAYLOAD, 'Time taken must be non-negative')
    if points_earned is None:
        points_earned = 0
    if not _is_number(points_earned) or points_earned < 0:
        raise ApiError(400, INVALID_PAYLOAD, 'Points must be non-negative')

    return {
        'question_id': question_id,
        'question_number': question_number,
        'answer_id': answer_id,
        'is_correct': is_correct,
        'time_taken': time_taken,
        'points_earned': int(points_earned),
    }


def _answers_locked(game_id, question_id):
    flow = game_flow_service.get_game_flow_by_game_id(game_id)
    if flow is None or flow.current_question_id != question_id:
        return False
    end_time = flow.current_question_end_time
    return end_time is not None and as_utc(end_time) <= utcnow()


@player_data.route('/<string:game_id>/players/<string:player_id>/answer', methods=['POST'])
@handle_unexpected('Failed to submit answer')
def submit_answer(game_id, player_id):
    answer = parse_answer(request.get_json(silent=True) or {})

    data = GamePlayerData.query.filter_by(player_id=player_id, game_id=game_id).first()
    if data is None:
        raise ApiError(404, NOT_FOUND, 'Player data not found')
    if _answers_locked(game_id, answer['question_id']):
        raise ApiError(400, 'answer_locked', 'Answers for this question are locked')

    record_answer(data, answer)

    try:
        stats = answer_statistics(game_id, answer['question_id'])
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            f"[answer] game={game_id} question={answer['question_id']} stats failed after submit: {exc}"
        )
        stats = {}

    stats_payload = {'roomId': game_id, 'questionId': answer['question_id'], 'counts': stats}
    # Older clients still listen on the bare stats event
    broadcast.notify(game_id, broadcast.ANSWER_STATS, stats_payload)
    broadcast.notify(game_id, broadcast.ANSWER_STATS_UPDATE, stats_payload)

    current_app.logger.info(
        f"[answer] game={game_id} player={player_id} question={answer['question_id']} "
        f"answer={answer['answer_id']} correct={answer['is_correct']}"
    )
    payload = data.to_dict()
    payload['answer_stats'] = stats
    return jsonify(payload)


@player_data.route('/<string:game_id>/leaderboard', methods=['GET'])
@handle_unexpected('Failed to fetch leaderboard')
def get_leaderboard(game_id):
    limit = request.args.get('limit', default=int(current_app.config.get('LEADERBOARD_LIMIT', 100)), type=int)
    offset = request.args.get('offset', default=0, type=int)
    if not 1 <= limit <= LEADERBOARD_MAX_LIMIT:
        raise ApiError(400, INVALID_PAYLOAD, f'limit must be between 1 and {LEADERBOARD_MAX_LIMIT}')
    if offset < 0:
        raise ApiError(400, INVALID_PAYLOAD, 'offset must be non-negative')

    load_game(game_id)
    board = build_leaderboard(game_id, limit=limit, offset=offset)
    return jsonify(board)
