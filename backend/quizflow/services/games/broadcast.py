"""Room-scoped realtime notifications.

Routes talk to a broadcaster through ``current_app.extensions['broadcaster']``
and always via :func:`notify`, so a failed emit is logged and dropped instead
of failing a request whose state change has already been committed.
"""

from flask import current_app

NAMESPACE = '/ws'

QUESTION_STARTED = 'game:question:started'
QUESTION_ENDED = 'game:question:ended'
ANSWER_LOCKED = 'game:answer:locked'
ANSWER_STATS = 'game:answer:stats'
ANSWER_STATS_UPDATE = 'game:answer:stats:update'
LEADERBOARD_UPDATE = 'game:leaderboard:update'
EXPLANATION_SHOW = 'game:explanation:show'
EXPLANATION_HIDE = 'game:explanation:hide'
PHASE_CHANGE = 'game:phase:change'
PLAYER_JOINED = 'game:player-joined'
PLAYER_KICKED = 'game:player-kicked'

PHASE_COUNTDOWN = 'countdown'
PHASE_ENDED = 'ended'


def room_for(game_id: str) -> str:
    return f"game:{game_id}"


class SocketIOBroadcaster:
    """Delivers events to every socket joined to the game's room on /ws."""

    def __init__(self, socketio):
        self.socketio = socketio

    def emit(self, game_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=room_for(game_id), namespace=NAMESPACE)


class NullBroadcaster:
    def emit(self, game_id: str, event: str, payload: dict) -> None:
        return None


def get_broadcaster():
    return current_app.extensions.get('broadcaster') or NullBroadcaster()


def notify(game_id: str, event: str, payload: dict) -> bool:
    """Emit ``event`` to the game's room; never raises."""
    try:
        get_broadcaster().emit(game_id, event, payload)
        return True
    except Exception as exc:
        current_app.logger.warning(f"[broadcast-failed] game={game_id} event={event} error={exc!r}")
        return False
