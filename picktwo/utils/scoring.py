"""
Scoring Engine for Pick Two

A week's points are the effective values of that week's winning team picks.
Persisted ``Score`` rows are a cache of ``compute_live``; readers go through
``get_score`` which falls back to the live value when no row exists.
"""

import logging

from picktwo import db
from picktwo.errors import NotFound
from picktwo.models import Game, League, Pick, Score, Season
from picktwo.utils.team_values import get_team_values

logger = logging.getLogger(__name__)


def calculate_pick_score(pick, game, values):
    """
    Points earned by a single pick.

    Bye picks, pending games and picks on missing or malformed games earn 0.

    Args:
        pick: Pick row or TeamPick value
        game: the pick's Game (may be None)
        values: ``{team_id: points}`` effective values for the league
    """
    if getattr(pick, "is_bye", False) or game is None:
        return 0
    team_id = getattr(pick, "picked_team_id", None) or getattr(pick, "team_id", None)
    if not game.is_final or game.winner_team_id is None:
        return 0
    if game.winner_team_id != team_id or not game.involves(team_id):
        return 0
    return values.get(team_id, 0)


def score_picks(picks, games_by_id, values):
    """Sum of ``calculate_pick_score`` over a set of picks"""
    return sum(
        calculate_pick_score(pick, games_by_id.get(pick.game_id), values)
        for pick in picks
        if not pick.is_bye
    )


def _week_picks(league_id, user_id, week):
    league = League.get_or_404(league_id)
    picks = Pick.query.filter_by(
        league_id=league_id,
        user_id=user_id,
        season_id=league.season_id,
        week=week,
        is_bye=False,
    ).all()
    return picks


def compute_live(league_id, user_id, week, values=None):
    """
    Derive a member's week points from picks and game results.

    Deterministic and side-effect free.
    """
    picks = _week_picks(league_id, user_id, week)
    if not picks:
        return 0

    game_ids = {pick.game_id for pick in picks if pick.game_id}
    games_by_id = {
        game.id: game for game in Game.query.filter(Game.id.in_(sorted(game_ids))).all()
    }
    if values is None:
        values = get_team_values(league_id)
    return score_picks(picks, games_by_id, values)


def persist_week(league_id, user_id, week, values=None, commit=True):
    """
    Upsert the member's Score row with the live value. Always overwrites.

    Returns:
        Score
    """
    points = compute_live(league_id, user_id, week, values=values)

    score = Score.get(league_id, user_id, week)
    if score is None:
        score = Score(league_id=league_id, user_id=user_id, week=week, points=points)
        db.session.add(score)
    else:
        score.points = points

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return score


def get_score(league_id, user_id, week):
    """Persisted points when a row exists, the live value otherwise"""
    score = Score.get(league_id, user_id, week)
    if score is not None:
        return score.points
    return compute_live(league_id, user_id, week)


def persist_final_weeks(season_id, weeks=None, commit=True):
    """
    Persist scores for every member of every league in a season.

    Args:
        season_id: season to score
        weeks: restrict to these weeks; by default every week with a final game

    Returns:
        int: number of Score rows written
    """
    if weeks is None:
        season = db.session.get(Season, season_id)
        if season is None:
            raise NotFound(f"Season {season_id} not found")
        weeks = season.get_weeks_with_final_games()
    if not weeks:
        return 0

    written = 0
    try:
        for league in League.query.filter_by(season_id=season_id).all():
            values = get_team_values(league.id)
            for member in league.get_members():
                for week in weeks:
                    persist_week(
                        league.id, member.user_id, week, values=values, commit=False
                    )
                    written += 1
        if commit:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Persisted {written} score row(s) for season {season_id}, weeks {list(weeks)}")
    return written
