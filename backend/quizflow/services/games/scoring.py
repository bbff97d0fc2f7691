from quizflow import db
from quizflow.models import GamePlayerData, Player, empty_answer_report, utcnow
from typing import Dict, Iterable, Optional
import copy


def count_answer_selections(reports: Iterable[Optional[dict]], question_id: str) -> Dict[str, int]:
    """Tally how many players picked each answer of ``question_id``.

    Entries for other questions, and entries with no answer (timed out),
    are ignored.
    """
    counts: Dict[str, int] = {}
    for report in reports:
        for entry in (report or {}).get('questions') or []:
            if entry.get('question_id') == question_id and entry.get('answer_id'):
                counts[entry['answer_id']] = counts.get(entry['answer_id'], 0) + 1
    return counts


def answer_statistics(game_id: str, question_id: str) -> Dict[str, int]:
    rows = db.session.query(GamePlayerData.answer_report).filter_by(game_id=game_id).all()
    return count_answer_selections((row[0] for row in rows), question_id)


def _streaks(questions: list) -> dict:
    best = 0
    run = 0
    for entry in questions:
        if entry.get('is_correct'):
            run += 1
            best = max(best, run)
        else:
            run = 0
    # The trailing run is the live streak
    return {'current_streak': run, 'max_streak': best}


def record_answer(data: GamePlayerData, answer: dict) -> GamePlayerData:
    """Append one answer to a player's report and apply its points.

    The JSON column is replaced rather than mutated so the change is flushed.
    """
    report = copy.deepcopy(data.answer_report or empty_answer_report())
    is_correct = bool(answer['is_correct'])
    points = int(answer.get('points_earned') or 0)
    report['total_answers'] = report.get('total_answers', 0) + 1
    report['correct_answers'] = report.get('correct_answers', 0) + (1 if is_correct else 0)
    report['incorrect_answers'] = report.get('incorrect_answers', 0) + (0 if is_correct else 1)
    report.setdefault('questions', []).append({
        'question_id': answer['question_id'],
        'question_number': answer['question_number'],
        'answer_id': answer.get('answer_id'),
        'is_correct': is_correct,
        'time_taken': answer['time_taken'],
        'points_earned': points,
        'answered_at': utcnow().isoformat(),
    })
    report['streaks'] = _streaks(report['questions'])
    data.answer_report = report
    data.score = (data.score or 0) + points
    db.session.add(data)
    db.session.commit()
    return data


def build_leaderboard(game_id: str, limit: int, offset: int = 0) -> dict:
    base = (
        db.session.query(GamePlayerData, Player)
        .join(Player, Player.id == GamePlayerData.player_id)
        .filter(GamePlayerData.game_id == game_id)
    )
    total = base.count()
    rows = (
        base.order_by(GamePlayerData.score.desc(), Player.created_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    entries = []
    for i, (data, player) in enumerate(rows):
        report = data.answer_report or empty_answer_report()
        answered = report.get('total_answers', 0)
        correct = report.get('correct_answers', 0)
        entries.append({
            'player_id': player.id,
            'player_name': player.player_name,
            'device_id': player.device_id,
            'score': data.score,
            'rank': offset + i + 1,
            'total_answers': answered,
            'correct_answers': correct,
            'accuracy': round(correct / answered * 100) if answered > 0 else 0,
            'is_host': player.is_host,
            'is_logged_in': player.is_logged_in,
        })
    return {
        'game_id': game_id,
        'entries': entries,
        'total': total,
        'limit': limit,
        'offset': offset,
        'updated_at': utcnow().isoformat(),
    }
