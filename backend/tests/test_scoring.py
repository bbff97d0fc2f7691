from quizflow import db
from quizflow.models import GamePlayerData
from quizflow.services.games.scoring import count_answer_selections, record_answer

from conftest import join


def _report(*entries):
    return {'questions': [{'question_id': q, 'answer_id': a} for q, a in entries]}


def test_count_answer_selections():
    reports = [
        _report(('q1', 'a'), ('q2', 'c')),
        _report(('q1', 'a')),
        _report(('q1', 'b')),
        _report(('q1', None)),
        None,
        {},
    ]
    assert count_answer_selections(reports, 'q1') == {'a': 2, 'b': 1}
    assert count_answer_selections(reports, 'q2') == {'c': 1}
    assert count_answer_selections(reports, 'q3') == {}


def test_record_answer_tracks_totals_and_streaks(flask_app, client, game):
    player = join(client, game['id'], 'Alice')
    with flask_app.app_context():
        data = GamePlayerData.query.filter_by(player_id=player['id']).one()
        for number, correct in enumerate([True, True, False, True], start=1):
            record_answer(data, {
                'question_id': f'q{number}',
                'question_number': number,
                'answer_id': 'a',
                'is_correct': correct,
                'time_taken': 1.0,
                'points_earned': 10 if correct else 0,
            })

        db.session.expire_all()
        data = GamePlayerData.query.filter_by(player_id=player['id']).one()
        report = data.answer_report
        assert data.score == 30
        assert report['total_answers'] == 4
        assert report['correct_answers'] == 3
        assert report['incorrect_answers'] == 1
        assert report['streaks'] == {'current_streak': 1, 'max_streak': 2}
        assert [q['question_number'] for q in report['questions']] == [1, 2, 3, 4]
