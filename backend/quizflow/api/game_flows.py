from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from quizflow.errors import ApiError, handle_unexpected, CONFLICT, FLOW_NOT_FOUND, INVALID_PAYLOAD
from quizflow.services.games.access import load_owned_game
from quizflow.services.games.flow import FLOW_FIELDS, game_flow_service

game_flows = Blueprint('game_flows', __name__)

TIMESTAMP_FIELDS = ('current_question_start_time', 'current_question_end_time')


def _parse_timestamp(field, value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ApiError(400, INVALID_PAYLOAD, f'{field} must be an ISO-8601 string or null')
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ApiError(400, INVALID_PAYLOAD, f'{field} is not a valid timestamp')


def parse_flow_updates(data):
    """Keep only progression fields, coercing timestamps; unknown keys are ignored."""
    updates = {k: v for k, v in data.items() if k in FLOW_FIELDS}
    for field in TIMESTAMP_FIELDS:
        if field in updates:
            updates[field] = _parse_timestamp(field, updates[field])
    index = updates.get('current_question_index')
    if 'current_question_index' in updates and (isinstance(index, bool) or not isinstance(index, int)):
        raise ApiError(400, INVALID_PAYLOAD, 'current_question_index must be an integer')
    for field in ('current_question_id', 'next_question_id'):
        if updates.get(field) is not None and not isinstance(updates[field], str):
            raise ApiError(400, INVALID_PAYLOAD, f'{field} must be a string or null')
    return updates


@game_flows.route('/<string:game_id>/flow', methods=['GET'])
@login_required
@handle_unexpected('Failed to fetch game flow')
def get_flow(game_id):
    load_owned_game(game_id)
    result = game_flow_service.get_game_flow(game_id)
    if not result.success:
        raise ApiError(404, FLOW_NOT_FOUND, result.error)
    return jsonify(result.game_flow.to_dict())


@game_flows.route('/<string:game_id>/flow', methods=['PATCH'])
@login_required
@handle_unexpected('Failed to update game flow')
def patch_flow(game_id):
    data = request.get_json(silent=True) or {}
    expected_version = data.get('version')
    if expected_version is not None and (isinstance(expected_version, bool) or not isinstance(expected_version, int)):
        raise ApiError(400, INVALID_PAYLOAD, 'version must be an integer')
    updates = parse_flow_updates(data)
    if not updates:
        raise ApiError(400, INVALID_PAYLOAD, 'No valid game flow fields supplied')

    load_owned_game(game_id)
    result = game_flow_service.update_game_flow(game_id, updates, expected_version=expected_version)
    if not result.success:
        if result.stale:
            raise ApiError(409, CONFLICT, result.error)
        raise ApiError(400, 'operation_failed', result.error)

    current_app.logger.info(
        f"[flow-patch] game={game_id} fields={sorted(updates)} by={current_user.get_id()}"
    )
    return jsonify(result.game_flow.to_dict())


@game_flows.route('/<string:game_id>/flow', methods=['DELETE'])
@login_required
@handle_unexpected('Failed to delete game flow')
def delete_flow(game_id):
    load_owned_game(game_id)
    if not game_flow_service.delete_game_flow(game_id):
        raise ApiError(400, 'operation_failed', 'Failed to delete game flow')
    return jsonify({'message': 'Game flow deleted', 'game_id': game_id})
