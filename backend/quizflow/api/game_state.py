"""Host-driven game progression and the public read endpoints players poll.

Each lifecycle route runs validate -> ownership -> flow read -> timing ->
flow write -> game write -> broadcast, in that order, inside one request.
Nothing serializes two requests for the same game beyond the version check
on ``GameFlow``: a host racing itself gets a 409 on the losing write rather
than a silent overwrite. Broadcasts go through ``notify`` and never fail the
request once the state change is committed.
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from quizflow import db
from quizflow.errors import (
    ApiError, handle_unexpected,
    CONFLICT, FLOW_NOT_FOUND, FLOW_UPDATE_FAILED, INVALID_INDEX, INVALID_PAYLOAD,
    INVALID_STATE, NO_EXPLANATION, NO_QUESTION, NO_QUESTIONS, NOT_FOUND,
    QUESTIONS_FETCH_FAILED, UPDATE_FAILED,
)
from quizflow.models import (
    Question, utcnow,
    FINISHED_STATUSES, GAME_STATUS_ACTIVE, GAME_STATUS_FINISHED, GAME_STATUS_PAUSED, GAME_STATUS_WAITING,
)
from quizflow.services.games import broadcast
from quizflow.services.games.access import load_game, load_owned_game
from quizflow.services.games.flow import (
    AdvanceTo, Complete, InitializeFlow, Reveal, StartQuestion, game_flow_service,
)
from quizflow.services.games.scoring import answer_statistics, build_leaderboard
from quizflow.services.games.timing import countdown_start_ms, open_question_window, remaining_time

game_state = Blueprint('game_state', __name__)

ACTION_PAUSE = 'pause'
ACTION_RESUME = 'resume'
ACTION_END = 'end'

FLOW_MISSING_MESSAGE = 'Game flow not found. Cannot initialize game.'


# ---- helpers ----

def _timing_defaults():
    cfg = current_app.config
    return int(cfg.get('DEFAULT_SHOW_QUESTION_TIME', 10)), int(cfg.get('DEFAULT_ANSWERING_TIME', 30))


def _require_flow(game_id, status=404, code=NOT_FOUND, message='Game flow not found'):
    result = game_flow_service.get_game_flow(game_id)
    if not result.success:
        current_app.logger.error(f"[flow-missing] game={game_id} error={result.error}")
        raise ApiError(status, code, message)
    return result.game_flow


def _raise_for_flow_failure(result, code=UPDATE_FAILED):
    if result.stale:
        raise ApiError(409, CONFLICT, result.error)
    raise ApiError(500, code, result.error or 'Failed to update game flow')


def _ordered_questions(quiz_set_id, game_id):
    try:
        return Question.ordered_for_quiz(quiz_set_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[questions] game={game_id} quiz_set={quiz_set_id} fetch failed: {exc}")
        raise ApiError(500, QUESTIONS_FETCH_FAILED, 'Failed to fetch questions for quiz')


def _commit_game(game, failure_message, code=UPDATE_FAILED):
    try:
        db.session.add(game)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[game-update] game={game.id} failed: {exc}")
        raise ApiError(500, code, failure_message)
    return game


def _explanation_payload(question):
    show_time = question.show_explanation_time or int(current_app.config.get('DEFAULT_EXPLANATION_TIME', 10))
    return {
        'title': question.explanation_title,
        'text': question.explanation_text,
        'image_url': question.explanation_image_url,
        'show_time': show_time,
    }


def _current_question_or_400(flow, message):
    if not flow.current_question_id:
        raise ApiError(400, INVALID_STATE, message)
    return flow.current_question_id


def _emit_leaderboard(game_id):
    try:
        board = build_leaderboard(game_id, limit=int(current_app.config.get('LEADERBOARD_LIMIT', 100)))
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[leaderboard] game={game_id} fetch failed, emitting without data: {exc!r}")
        broadcast.notify(game_id, broadcast.LEADERBOARD_UPDATE, {'roomId': game_id})
        return
    broadcast.notify(game_id, broadcast.LEADERBOARD_UPDATE, {
        'roomId': game_id,
        'leaderboard': {
            'game_id': game_id,
            'entries': board['entries'],
            'total': board['total'],
            'updated_at': board['updated_at'],
        },
    })


def _emit_phase_change(game_id, phase):
    payload = {'roomId': game_id, 'phase': phase}
    if phase == broadcast.PHASE_COUNTDOWN:
        payload['startedAt'] = countdown_start_ms(int(current_app.config.get('COUNTDOWN_LEAD_MS', 3000)))
    broadcast.notify(game_id, broadcast.PHASE_CHANGE, payload)


def build_status_update(game, action, status):
    """Map a status PATCH body onto game column values.

    ``action`` wins over ``status``; ``status`` is stored as given.
    """
    now = utcnow()
    updates = {}
    if action == ACTION_PAUSE:
        updates['status'] = GAME_STATUS_PAUSED
        updates['paused_at'] = now
    elif action == ACTION_RESUME:
        updates['status'] = GAME_STATUS_ACTIVE
        updates['resumed_at'] = now
    elif action == ACTION_END:
        updates['status'] = GAME_STATUS_FINISHED
        if game.ended_at is None:
            updates['ended_at'] = now
    elif status:
        updates['status'] = status
        if status in FINISHED_STATUSES and game.ended_at is None:
            updates['ended_at'] = now
    return updates


# ---- host lifecycle ----

@game_state.route('/<string:game_id>/start', methods=['POST'])
@login_required
@handle_unexpected('Failed to start game')
def start_game(game_id):
    game = load_owned_game(game_id)
    if game.status != GAME_STATUS_WAITING:
        raise ApiError(400, INVALID_STATE, f'Cannot start game in {game.status} state')

    flow = _require_flow(game_id, status=500, code=FLOW_NOT_FOUND, message=FLOW_MISSING_MESSAGE)
    questions = _ordered_questions(flow.quiz_set_id, game_id)
    if not questions:
        current_app.logger.warning(f"[start] game={game_id} quiz_set={flow.quiz_set_id} has no questions")
        raise ApiError(400, NO_QUESTIONS, 'Quiz set has no questions. Cannot start game.')

    first = questions[0]
    second = questions[1] if len(questions) > 1 else None
    result = game_flow_service.apply_transition(
        game_id,
        InitializeFlow(first_question_id=first.id, next_question_id=second.id if second else None),
        expected_version=flow.version,
    )
    if not result.success:
        current_app.logger.error(f"[start] game={game_id} flow init failed: {result.error}")
        if result.stale:
            raise ApiError(409, CONFLICT, result.error)
        raise ApiError(500, FLOW_UPDATE_FAILED, 'Failed to initialize game flow')

    game.status = GAME_STATUS_ACTIVE
    game.started_at = utcnow()
    game.current_question_index = 0
    _commit_game(game, 'Failed to start game')

    current_app.logger.info(
        f"[start] game={game_id} host={current_user.get_id()} first={first.id} "
        f"next={second.id if second else None} total={len(questions)}"
    )
    payload = game.to_dict()
    payload['gameFlow'] = result.game_flow.to_dict()
    payload['initializedQuestions'] = {
        'current': first.id,
        'next': second.id if second else None,
        'total': len(questions),
    }
    return jsonify(payload)


@game_state.route('/<string:game_id>/questions/start', methods=['POST'])
@login_required
@handle_unexpected('Failed to start question')
def start_question(game_id):
    data = request.get_json(silent=True) or {}
    question_id = data.get('questionId')
    question_index = data.get('questionIndex')
    if not question_id or not isinstance(question_id, str):
        raise ApiError(400, INVALID_PAYLOAD, 'questionId is required')
    if question_index is not None and (isinstance(question_index, bool) or not isinstance(question_index, int)):
        raise ApiError(400, INVALID_PAYLOAD, 'questionIndex must be an integer')

    game = load_owned_game(game_id)
    if game.status != GAME_STATUS_ACTIVE:
        raise ApiError(400, INVALID_STATE, f'Cannot start a question while game is {game.status}')

    flow = _require_flow(game_id)
    question = db.session.get(Question, question_id)
    if question is None or question.deleted_at is not None or question.question_set_id != flow.quiz_set_id:
        current_app.logger.error(f"[question-start] game={game_id} question={question_id} not found")
        raise ApiError(404, NOT_FOUND, 'Question not found')
    if question_index is not None and not 0 <= question_index < flow.total_questions:
        raise ApiError(
            400, INVALID_INDEX,
            f'Question index {question_index} is out of bounds (total: {flow.total_questions})',
        )

    show_default, answering_default = _timing_defaults()
    window = open_question_window(question, show_default, answering_default)
    result = game_flow_service.apply_transition(
        game_id,
        StartQuestion(
            question_id=question_id,
            question_index=question_index,
            start_time=window.start_time,
            end_time=window.end_time,
        ),
        expected_version=flow.version,
    )
    if not result.success:
        _raise_for_flow_failure(result)

    if question_index is not None:
        game.current_question_index = question_index
        _commit_game(game, 'Failed to start question')

    broadcast.notify(game_id, broadcast.QUESTION_STARTED, {
        'roomId': game_id,
        'question': {'id': question_id, 'index': question_index},
        'startsAt': window.starts_at,
        'endsAt': window.ends_at,
    })

    current_app.logger.info(
        f"[question-start] game={game_id} question={question_id} index={question_index} "
        f"starts_at={window.starts_at} ends_at={window.ends_at} duration_ms={window.duration_ms}"
    )
    payload = result.game_flow.to_dict()
    payload.update({
        'server_time': window.start_time.isoformat(),
        'starts_at': window.starts_at,
        'ends_at': window.ends_at,
        'duration_ms': window.duration_ms,
    })
    return jsonify(payload)


@game_state.route('/<string:game_id>/questions/reveal', methods=['POST'])
@login_required
@handle_unexpected('Failed to trigger answer reveal')
def reveal_answers(game_id):
    load_owned_game(game_id)
    flow = _require_flow(game_id)
    question_id = _current_question_or_400(flow, 'No active question to reveal')

    result = game_flow_service.apply_transition(game_id, Reveal(end_time=utcnow()), expected_version=flow.version)
    if not result.success:
        _raise_for_flow_failure(result)

    try:
        stats = answer_statistics(game_id, question_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"[reveal] game={game_id} question={question_id} stats failed: {exc}")
        stats = {}

    broadcast.notify(game_id, broadcast.QUESTION_ENDED, {'roomId': game_id, 'questionId': question_id})
    broadcast.notify(game_id, broadcast.ANSWER_LOCKED, {'roomId': game_id, 'questionId': question_id, 'counts': stats})
    broadcast.notify(game_id, broadcast.ANSWER_STATS_UPDATE, {'roomId': game_id, 'questionId': question_id, 'counts': stats})
    _emit_leaderboard(game_id)

    current_app.logger.info(f"[reveal] game={game_id} question={question_id} stats={stats}")
    return jsonify({
        'message': 'Answer reveal triggered',
        'gameFlow': result.game_flow.to_dict(),
        'answerStats': stats,
    })


@game_state.route('/<string:game_id>/questions/explanation/show', methods=['POST'])
@login_required
@handle_unexpected('Failed to show explanation')
def show_explanation(game_id):
    load_owned_game(game_id)
    flow = _require_flow(game_id)
    question_id = _current_question_or_400(flow, 'No active question to show explanation for')

    question = db.session.get(Question, question_id)
    if question is None:
        raise ApiError(404, NOT_FOUND, 'Question not found')

    explanation = _explanation_payload(question)
    broadcast.notify(game_id, broadcast.EXPLANATION_SHOW, {
        'roomId': game_id,
        'questionId': question_id,
        'explanation': explanation,
    })
    current_app.logger.info(f"[explanation-show] game={game_id} question={question_id}")
    return jsonify({'message': 'Explanation shown', 'explanation': explanation})


@game_state.route('/<string:game_id>/questions/explanation/hide', methods=['POST'])
@login_required
@handle_unexpected('Failed to hide explanation')
def hide_explanation(game_id):
    load_owned_game(game_id)
    flow = _require_flow(game_id)
    question_id = _current_question_or_400(flow, 'No active question to hide explanation for')

    broadcast.notify(game_id, broadcast.EXPLANATION_HIDE, {'roomId': game_id, 'questionId': question_id})
    current_app.logger.info(f"[explanation-hide] game={game_id} question={question_id}")
    return jsonify({'message': 'Explanation hidden'})


@game_state.route('/<string:game_id>/questions/next', methods=['POST'])
@login_required
@handle_unexpected('Failed to advance to next question')
def next_question(game_id):
    game = load_owned_game(game_id)
    if game.status in FINISHED_STATUSES:
        raise ApiError(400, INVALID_STATE, 'Game is already finished')

    flow = _require_flow(game_id)
    current_index = flow.current_question_index or 0
    questions = _ordered_questions(flow.quiz_set_id, game_id)
    if not 0 <= current_index < len(questions):
        current_app.logger.error(f"[next] game={game_id} index={current_index} out of bounds total={len(questions)}")
        raise ApiError(
            400, INVALID_INDEX,
            f'Current question index {current_index} is out of bounds (total: {len(questions)})',
        )

    next_index = current_index + 1
    if next_index >= len(questions):
        result = game_flow_service.apply_transition(game_id, Complete(), expected_version=flow.version)
        if not result.success:
            _raise_for_flow_failure(result, code=FLOW_UPDATE_FAILED)
        game.status = GAME_STATUS_FINISHED
        if game.ended_at is None:
            game.ended_at = utcnow()
        _commit_game(game, 'Failed to advance to next question')
        _emit_phase_change(game_id, broadcast.PHASE_ENDED)
        current_app.logger.info(f"[next] game={game_id} completed after {len(questions)} questions")
        return jsonify({
            'message': 'Game completed',
            'gameFlow': result.game_flow.to_dict(),
            'isComplete': True,
        })

    upcoming = questions[next_index]
    after = questions[next_index + 1] if next_index + 1 < len(questions) else None
    result = game_flow_service.apply_transition(
        game_id,
        AdvanceTo(question_id=upcoming.id, question_index=next_index, next_question_id=after.id if after else None),
        expected_version=flow.version,
    )
    if not result.success:
        _raise_for_flow_failure(result)

    game.current_question_index = next_index
    _commit_game(game, 'Failed to advance to next question')
    _emit_phase_change(game_id, broadcast.PHASE_COUNTDOWN)

    current_app.logger.info(
        f"[next] game={game_id} question={upcoming.id} index={next_index} total={len(questions)}"
    )
    return jsonify({
        'message': 'Advanced to next question',
        'gameFlow': result.game_flow.to_dict(),
        'nextQuestion': {'id': upcoming.id, 'index': next_index},
        'isComplete': False,
    })


@game_state.route('/<string:game_id>/status', methods=['PATCH'])
@login_required
@handle_unexpected('Failed to update game status')
def update_status(game_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    action = data.get('action')
    if not status and not action:
        raise ApiError(400, INVALID_PAYLOAD, 'status or action is required')
    if (status is not None and not isinstance(status, str)) or (action is not None and not isinstance(action, str)):
        raise ApiError(400, INVALID_PAYLOAD, 'status and action must be strings')
    if action and action not in (ACTION_PAUSE, ACTION_RESUME, ACTION_END) and not status:
        raise ApiError(400, INVALID_PAYLOAD, f'Unknown action: {action}')

    game = load_owned_game(game_id)
    updates = build_status_update(game, action, status)
    if game.status in FINISHED_STATUSES and updates.get('status') not in FINISHED_STATUSES:
        raise ApiError(400, INVALID_STATE, 'Game is already finished')

    for field, value in updates.items():
        setattr(game, field, value)
    _commit_game(game, 'Failed to update game status')

    current_app.logger.info(f"[status] game={game_id} action={action} status={status} now={game.status}")
    return jsonify(game.to_dict())


@game_state.route('/<string:game_id>/lock', methods=['PATCH'])
@login_required
@handle_unexpected('Failed to update lock status')
def update_lock(game_id):
    data = request.get_json(silent=True) or {}
    locked = data.get('locked')
    if not isinstance(locked, bool):
        raise ApiError(400, INVALID_PAYLOAD, 'locked must be a boolean')

    game = load_owned_game(game_id)
    game.locked = locked
    _commit_game(game, 'Failed to update lock status')

    current_app.logger.info(f"[lock] game={game_id} locked={locked}")
    return jsonify(game.to_dict())


# ---- public reads ----

@game_state.route('/<string:game_id>', methods=['GET'])
@handle_unexpected('Failed to get game')
def get_game(game_id):
    return jsonify(load_game(game_id).to_dict())


@game_state.route('/<string:game_id>/state', methods=['GET'])
@handle_unexpected('Failed to get game state')
def get_game_state(game_id):
    game = load_game(game_id)
    flow = _require_flow(game_id)
    return jsonify({'game': game.to_dict(), 'gameFlow': flow.to_dict()})


@game_state.route('/<string:game_id>/questions/current', methods=['GET'])
@handle_unexpected('Failed to get current question')
def get_current_question(game_id):
    flow = _require_flow(game_id)
    if not flow.current_question_id:
        raise ApiError(404, NO_QUESTION, 'No current question active')

    question = db.session.get(Question, flow.current_question_id)
    if question is None or question.deleted_at is not None:
        current_app.logger.error(f"[current-question] game={game_id} question={flow.current_question_id} missing")
        raise ApiError(404, NOT_FOUND, 'Question not found')

    show_default, answering_default = _timing_defaults()
    timing = remaining_time(question, flow.current_question_start_time, show_default, answering_default)
    return jsonify({
        'question': {
            'id': question.id,
            'text': question.question_text,
            'image_url': question.image_url,
            'type': question.question_type,
            'time_limit': question.show_question_time,
            'answering_time': question.answering_time,
            'points': question.points,
            'difficulty': question.difficulty,
            'explanation_title': question.explanation_title,
            'explanation_text': question.explanation_text,
            'explanation_image_url': question.explanation_image_url,
            'show_explanation_time': question.show_explanation_time,
        },
        'answers': [a.to_dict() for a in question.answers],
        'question_index': flow.current_question_index,
        'total_questions': flow.total_questions,
        'server_time': timing.server_time.isoformat(),
        'start_time': flow.to_dict()['current_question_start_time'],
        'remaining_ms': timing.remaining_ms,
        'is_active': timing.is_active,
    })


@game_state.route('/<string:game_id>/questions/<string:question_id>/explanation', methods=['GET'])
@handle_unexpected('Failed to fetch explanation')
def get_explanation(game_id, question_id):
    load_game(game_id)
    question = db.session.get(Question, question_id)
    if question is None:
        raise ApiError(404, NOT_FOUND, 'Question not found')
    if not question.explanation_text and not question.explanation_title:
        raise ApiError(404, NO_EXPLANATION, 'No explanation available for this question')

    explanation = _explanation_payload(question)
    return jsonify({
        'question_id': question.id,
        'explanation_title': explanation['title'],
        'explanation_text': explanation['text'],
        'explanation_image_url': explanation['image_url'],
        'show_explanation_time': explanation['show_time'],
    })
