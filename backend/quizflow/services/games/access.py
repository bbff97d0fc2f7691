from flask_login import current_user

from quizflow import db
from quizflow.errors import ApiError, NOT_FOUND
from quizflow.models import Game


def load_owned_game(game_id: str) -> Game:
    """Return the game if the logged-in host owns it.

    Absent and foreign games are indistinguishable to the caller: both 404.
    """
    game = db.session.query(Game).filter_by(id=game_id, user_id=current_user.get_id()).first()
    if game is None:
        raise ApiError(404, NOT_FOUND, 'Game not found or unauthorized')
    return game


def load_game(game_id: str) -> Game:
    game = db.session.get(Game, game_id)
    if game is None:
        raise ApiError(404, NOT_FOUND, 'Game not found')
    return game
