from quizflow import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import uuid

GAME_STATUS_WAITING = 'waiting'
GAME_STATUS_ACTIVE = 'active'
GAME_STATUS_PAUSED = 'paused'
GAME_STATUS_FINISHED = 'finished'
# Statuses that close a game; all are terminal
FINISHED_STATUSES = frozenset({GAME_STATUS_FINISHED, 'ended', 'completed'})


def new_id():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def iso(value):
    return as_utc(value).isoformat() if value is not None else None


def empty_answer_report():
    return {
        'total_answers': 0,
        'correct_answers': 0,
        'incorrect_answers': 0,
        'questions': [],
    }


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class QuizSet(db.Model):
    __tablename__ = 'quiz_sets'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    play_settings = db.Column(db.JSON, nullable=True)
    times_played = db.Column(db.Integer, default=0, nullable=False)
    questions = db.relationship('Question', back_populates='quiz_set', lazy='dynamic')


class Question(db.Model):
    __tablename__ = 'questions'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_set_id = db.Column(db.String(36), db.ForeignKey('quiz_sets.id'), nullable=False, index=True)
    question_text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(32), default='multiple_choice', nullable=False)
    image_url = db.Column(db.String(512), nullable=True)
    # Seconds; None falls back to the configured defaults
    show_question_time = db.Column(db.Integer, nullable=True)
    answering_time = db.Column(db.Integer, nullable=True)
    points = db.Column(db.Integer, default=100, nullable=False)
    difficulty = db.Column(db.String(32), default='easy', nullable=False)
    order_index = db.Column(db.Integer, nullable=False)
    explanation_title = db.Column(db.String(255), nullable=True)
    explanation_text = db.Column(db.Text, nullable=True)
    explanation_image_url = db.Column(db.String(512), nullable=True)
    show_explanation_time = db.Column(db.Integer, nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    quiz_set = db.relationship('QuizSet', back_populates='questions')
    answers = db.relationship('Answer', backref='question', order_by='Answer.order_index')

    @classmethod
    def ordered_for_quiz(cls, quiz_set_id):
        """Live (non-deleted) questions of a quiz set in play order."""
        return (
            cls.query.filter_by(question_set_id=quiz_set_id)
            .filter(cls.deleted_at.is_(None))
            .order_by(cls.order_index.asc())
            .all()
        )


class Answer(db.Model):
    __tablename__ = 'answers'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    question_id = db.Column(db.String(36), db.ForeignKey('questions.id'), nullable=False, index=True)
    answer_text = db.Column(db.String(512), nullable=False)
    image_url = db.Column(db.String(512), nullable=True)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.answer_text,
            'image_url': self.image_url,
            'is_correct': self.is_correct,
            'order_index': self.order_index,
        }


class Game(db.Model):
    __tablename__ = 'games'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    quiz_set_id = db.Column(db.String(36), db.ForeignKey('quiz_sets.id'), nullable=False)
    game_code = db.Column(db.String(16), unique=True, index=True, nullable=False)
    status = db.Column(db.String(32), default=GAME_STATUS_WAITING, nullable=False)  # waiting, active, paused, finished
    current_question_index = db.Column(db.Integer, default=0, nullable=False)
    locked = db.Column(db.Boolean, default=False, nullable=False)
    game_settings = db.Column(db.JSON, nullable=True)
    current_players = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paused_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resumed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    flow = db.relationship('GameFlow', back_populates='game', uselist=False, cascade='all, delete-orphan')
    players = db.relationship('Player', back_populates='game', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'quiz_set_id': self.quiz_set_id,
            'game_code': self.game_code,
            'status': self.status,
            'current_question_index': self.current_question_index,
            'locked': self.locked,
            'game_settings': self.game_settings or {},
            'current_players': self.current_players,
            'created_at': iso(self.created_at),
            'started_at': iso(self.started_at),
            'paused_at': iso(self.paused_at),
            'resumed_at': iso(self.resumed_at),
            'ended_at': iso(self.ended_at),
        }


class GameFlow(db.Model):
    __tablename__ = 'game_flows'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id', ondelete='CASCADE'), unique=True, nullable=False)
    quiz_set_id = db.Column(db.String(36), db.ForeignKey('quiz_sets.id'), nullable=False)
    total_questions = db.Column(db.Integer, nullable=False)
    current_question_id = db.Column(db.String(36), nullable=True)
    current_question_index = db.Column(db.Integer, default=0, nullable=False)
    next_question_id = db.Column(db.String(36), nullable=True)
    current_question_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    # Non-null and in the past once answers for the current question are locked
    current_question_end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    game = db.relationship('Game', back_populates='flow')

    # Every UPDATE is conditioned on the version that was read
    __mapper_args__ = {'version_id_col': version}

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'quiz_set_id': self.quiz_set_id,
            'total_questions': self.total_questions,
            'current_question_id': self.current_question_id,
            'current_question_index': self.current_question_index,
            'next_question_id': self.next_question_id,
            'current_question_start_time': iso(self.current_question_start_time),
            'current_question_end_time': iso(self.current_question_end_time),
            'version': self.version,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }


class Player(db.Model):
    __tablename__ = 'players'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id', ondelete='CASCADE'), nullable=False, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    device_id = db.Column(db.String(100), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    is_logged_in = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    game = db.relationship('Game', back_populates='players')
    data = db.relationship('GamePlayerData', back_populates='player', uselist=False, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'player_name': self.player_name,
            'device_id': self.device_id,
            'is_host': self.is_host,
            'is_logged_in': self.is_logged_in,
            'created_at': iso(self.created_at),
        }


class GamePlayerData(db.Model):
    __tablename__ = 'game_player_data'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    player_id = db.Column(db.String(36), db.ForeignKey('players.id', ondelete='CASCADE'), nullable=False, index=True)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id', ondelete='CASCADE'), nullable=False, index=True)
    player_device_id = db.Column(db.String(100), nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    answer_report = db.Column(db.JSON, default=empty_answer_report, nullable=False)
    player = db.relationship('Player', back_populates='data')

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'game_id': self.game_id,
            'player_device_id': self.player_device_id,
            'score': self.score,
            'answer_report': self.answer_report or empty_answer_report(),
        }


def seed_demo_quiz(owner, question_count=3):
    """Create a small quiz set owned by ``owner`` for local play."""
    quiz = QuizSet(title='Demo quiz', user_id=owner.id, play_settings={})
    db.session.add(quiz)
    db.session.flush()
    for idx in range(question_count):
        question = Question(
            question_set_id=quiz.id,
            question_text=f'Question {idx + 1}?',
            order_index=idx,
            show_question_time=10,
            answering_time=30,
            explanation_title=f'Why {idx + 1}',
            explanation_text=f'Because of reason {idx + 1}.',
            show_explanation_time=15,
        )
        db.session.add(question)
        db.session.flush()
        for a_idx, label in enumerate(['A', 'B', 'C', 'D']):
            db.session.add(Answer(
                question_id=question.id,
                answer_text=label,
                is_correct=(a_idx == 0),
                order_index=a_idx,
            ))
    db.session.commit()
    return quiz
