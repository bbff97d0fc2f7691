"""Sole reader/writer of the per-game progression record (``GameFlow``).

Every public method returns a :class:`GameFlowResult` (or a plain value for
the lookup/delete helpers) and never raises past this module: persistence
errors are rolled back, logged and reported as ``success=False``.

Writes are guarded twice:

- ``GameFlow.version`` is SQLAlchemy's ``version_id_col``, so the UPDATE only
  lands if the row still carries the version this session read. A concurrent
  writer surfaces as ``StaleDataError`` and is reported as stale.
- Callers may pass ``expected_version`` (the version they based their
  decision on); a mismatch is rejected before anything is written.

The index bounds invariant ``0 <= current_question_index < total_questions``
whenever ``current_question_id`` is set is enforced here for every update.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from quizflow import db
from quizflow.models import Game, GameFlow, QuizSet

FLOW_FIELDS = frozenset({
    'current_question_id',
    'current_question_index',
    'next_question_id',
    'current_question_start_time',
    'current_question_end_time',
})

ERR_STALE = 'Game flow was modified by another request'
ERR_NOT_FOUND = 'Game flow not found'


@dataclass
class GameFlowResult:
    success: bool
    game_flow: Optional[GameFlow] = None
    error: Optional[str] = None
    stale: bool = False


# ---- Transition commands ----

@dataclass(frozen=True)
class InitializeFlow:
    """Point the flow at the first question with no timing yet (game start/reset)."""
    first_question_id: str
    next_question_id: Optional[str]

    def fields(self):
        return {
            'current_question_id': self.first_question_id,
            'current_question_index': 0,
            'next_question_id': self.next_question_id,
            'current_question_start_time': None,
            'current_question_end_time': None,
        }


@dataclass(frozen=True)
class StartQuestion:
    question_id: str
    question_index: Optional[int]
    start_time: datetime
    end_time: datetime

    def fields(self):
        updates = {
            'current_question_id': self.question_id,
            'current_question_start_time': self.start_time,
            'current_question_end_time': self.end_time,
        }
        if self.question_index is not None:
            updates['current_question_index'] = self.question_index
        return updates


@dataclass(frozen=True)
class Reveal:
    end_time: datetime

    def fields(self):
        return {'current_question_end_time': self.end_time}


@dataclass(frozen=True)
class AdvanceTo:
    question_id: str
    question_index: int
    next_question_id: Optional[str]

    def fields(self):
        return {
            'current_question_id': self.question_id,
            'current_question_index': self.question_index,
            'next_question_id': self.next_question_id,
            'current_question_start_time': None,
            'current_question_end_time': None,
        }


@dataclass(frozen=True)
class Complete:
    """All questions exhausted: clear the live pointers and timing."""

    def fields(self):
        return {
            'current_question_id': None,
            'next_question_id': None,
            'current_question_start_time': None,
            'current_question_end_time': None,
        }


FlowTransition = Union[InitializeFlow, StartQuestion, Reveal, AdvanceTo, Complete]


def _index_in_bounds(flow: GameFlow) -> bool:
    if flow.current_question_id is None:
        return True
    index = flow.current_question_index
    return index is not None and 0 <= index < flow.total_questions


class GameFlowService:

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def create_game_flow(self, game_id: str, quiz_set_id: str, total_questions: int,
                         current_question_index: int = 0,
                         current_question_id: Optional[str] = None,
                         next_question_id: Optional[str] = None) -> GameFlowResult:
        log = current_app.logger
        if not game_id:
            log.error("[flow-create] missing game_id")
            return GameFlowResult(False, error='game_id is required')
        if not quiz_set_id:
            log.error(f"[flow-create] game={game_id} missing quiz_set_id")
            return GameFlowResult(False, error='quiz_set_id is required')
        if total_questions is None or total_questions < 0:
            log.error(f"[flow-create] game={game_id} invalid total_questions={total_questions}")
            return GameFlowResult(False, error='total_questions must be non-negative')

        try:
            game_exists = self.session.query(Game.id).filter_by(id=game_id).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.error(f"[flow-create] game={game_id} game lookup failed: {exc}")
            return GameFlowResult(False, error='Failed to verify game existence')
        if not game_exists:
            log.warning(f"[flow-create] game={game_id} does not exist")
            return GameFlowResult(False, error='Game not found')

        try:
            quiz_exists = self.session.query(QuizSet.id).filter_by(id=quiz_set_id).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.error(f"[flow-create] quiz_set={quiz_set_id} lookup failed: {exc}")
            return GameFlowResult(False, error='Failed to verify quiz_set existence')
        if not quiz_exists:
            log.warning(f"[flow-create] quiz_set={quiz_set_id} does not exist")
            return GameFlowResult(False, error='Quiz set not found')

        flow = GameFlow(
            game_id=game_id,
            quiz_set_id=quiz_set_id,
            total_questions=total_questions,
            current_question_index=current_question_index or 0,
            current_question_id=current_question_id,
            next_question_id=next_question_id,
            current_question_start_time=None,
            current_question_end_time=None,
        )
        try:
            self.session.add(flow)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.error(f"[flow-create] game={game_id} quiz_set={quiz_set_id} insert failed: {exc}")
            return GameFlowResult(False, error='Failed to create game flow')

        log.info(f"[flow-create] flow={flow.id} game={game_id} quiz_set={quiz_set_id} total={total_questions}")
        return GameFlowResult(True, game_flow=flow)

    def get_game_flow_by_game_id(self, game_id: str) -> Optional[GameFlow]:
        try:
            return self.session.query(GameFlow).filter_by(game_id=game_id).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error(f"[flow-get] game={game_id} lookup failed: {exc}")
            return None

    def get_game_flow(self, game_id: str) -> GameFlowResult:
        try:
            flow = self.session.query(GameFlow).filter_by(game_id=game_id).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error(f"[flow-get] game={game_id} lookup failed: {exc}")
            return GameFlowResult(False, error='Failed to fetch game flow')
        if flow is None:
            return GameFlowResult(False, error=ERR_NOT_FOUND)
        return GameFlowResult(True, game_flow=flow)

    def update_game_flow(self, game_id: str, updates: dict,
                         expected_version: Optional[int] = None) -> GameFlowResult:
        log = current_app.logger
        unknown = set(updates) - FLOW_FIELDS
        if unknown:
            log.error(f"[flow-update] game={game_id} rejected fields={sorted(unknown)}")
            return GameFlowResult(False, error=f"Unsupported game flow fields: {', '.join(sorted(unknown))}")

        found = self.get_game_flow(game_id)
        if not found.success:
            return found
        flow = found.game_flow

        if expected_version is not None and flow.version != expected_version:
            log.warning(
                f"[flow-update] game={game_id} stale write expected_version={expected_version} actual={flow.version}"
            )
            return GameFlowResult(False, error=ERR_STALE, stale=True)

        for field, value in updates.items():
            setattr(flow, field, value)

        if not _index_in_bounds(flow):
            bad_index = flow.current_question_index
            self.session.rollback()
            log.error(
                f"[flow-update] game={game_id} index={bad_index} out of bounds total={flow.total_questions}"
            )
            return GameFlowResult(
                False,
                error=f"current_question_index {bad_index} is out of bounds (total: {flow.total_questions})",
            )

        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            log.warning(f"[flow-update] game={game_id} lost a concurrent write")
            return GameFlowResult(False, error=ERR_STALE, stale=True)
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.error(f"[flow-update] game={game_id} update failed: {exc}")
            return GameFlowResult(False, error='Failed to update game flow')

        log.info(f"[flow-update] game={game_id} fields={sorted(updates)} version={flow.version}")
        return GameFlowResult(True, game_flow=flow)

    def apply_transition(self, game_id: str, command: FlowTransition,
                         expected_version: Optional[int] = None) -> GameFlowResult:
        return self.update_game_flow(game_id, command.fields(), expected_version=expected_version)

    def delete_game_flow(self, game_id: str) -> bool:
        try:
            self.session.query(GameFlow).filter_by(game_id=game_id).delete()
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            current_app.logger.error(f"[flow-delete] game={game_id} delete failed: {exc}")
            return False
        current_app.logger.info(f"[flow-delete] game={game_id} deleted")
        return True


game_flow_service = GameFlowService()
