"""
Standings Aggregator

Season tables, points progression and per-member history. Everything here is
derived from picks, games and scores; nothing is stored.
"""

import logging
from collections import defaultdict

from picktwo.errors import NotFound
from picktwo.models import Game, League, LeagueMemberState, Pick, Score, Team
from picktwo.utils.pick_rules import REGULAR_SEASON_WEEKS, dense_rank
from picktwo.utils.scoring import calculate_pick_score, score_picks
from picktwo.utils.team_values import get_team_values
from picktwo.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


class _LeagueSeason:
    """Everything the aggregations need, loaded with a fixed number of queries"""

    def __init__(self, league):
        self.league = league
        self.members = league.get_members()
        self.values = get_team_values(league.id)
        self.persisted = Score.get_for_league(league.id)

        self.games_by_id = {
            game.id: game
            for game in Game.query.filter_by(season_id=league.season_id).all()
        }
        self.weeks = sorted({game.week for game in self.games_by_id.values()})

        self.picks_by_user = defaultdict(list)
        picks = Pick.query.filter_by(league_id=league.id, season_id=league.season_id).all()
        for pick in picks:
            self.picks_by_user[pick.user_id].append(pick)

        self.byes_used = {
            state.user_id: state.byes_used
            for state in LeagueMemberState.query.filter_by(league_id=league.id).all()
        }

    def week_picks(self, user_id, week):
        return [pick for pick in self.picks_by_user[user_id] if pick.week == week]

    def score(self, user_id, week):
        """Same precedence as ``scoring.get_score``: persisted row, else live"""
        if (user_id, week) in self.persisted:
            return self.persisted[(user_id, week)]
        return score_picks(self.week_picks(user_id, week), self.games_by_id, self.values)

    def record(self, user_id):
        wins = losses = 0
        for pick in self.picks_by_user[user_id]:
            if pick.is_bye:
                continue
            game = self.games_by_id.get(pick.game_id)
            if game is None or not game.is_final:
                continue
            if game.winner_team_id is not None and game.winner_team_id == pick.picked_team_id:
                wins += 1
            else:
                losses += 1
        return wins, losses


def _member_name(member):
    return member.user.full_name if member.user else f"User {member.user_id}"


def _hidden_from(viewer_id, user_id, pick, game, now):
    """Another member's team pick stays hidden until its game kicks off"""
    if viewer_id is None or viewer_id == user_id or pick.is_bye:
        return False
    return game is not None and not game.has_started(now)


def compute_standings(league_id):
    """
    League table for the league's season.

    Returns:
        list: rows of ``user_id, display_name, total_points, wins, losses,
        byes_used, rank`` ordered by rank, ties by ascending user id
    """
    data = _LeagueSeason(League.get_or_404(league_id))

    rows = []
    for member in data.members:
        wins, losses = data.record(member.user_id)
        rows.append(
            {
                "user_id": member.user_id,
                "display_name": _member_name(member),
                "total_points": sum(data.score(member.user_id, week) for week in data.weeks),
                "wins": wins,
                "losses": losses,
                "byes_used": data.byes_used.get(member.user_id, 0),
            }
        )
    return dense_rank(rows)


def points_progression(league_id):
    """Cumulative points per member after each week that has games"""
    data = _LeagueSeason(League.get_or_404(league_id))

    series = []
    for member in data.members:
        running = 0
        cumulative = []
        for week in data.weeks:
            running += data.score(member.user_id, week)
            cumulative.append(running)
        series.append(
            {
                "user_id": member.user_id,
                "display_name": _member_name(member),
                "cumulative": cumulative,
            }
        )

    return {"weeks": data.weeks, "series": series}


def weekly_history(league_id, user_id, viewer_id=None, now=None):
    """
    Week-by-week picks, outcomes and points for one member.

    When ``viewer_id`` is another member, team picks whose game has not kicked
    off are masked with outcome ``hidden``.
    """
    league = League.get_or_404(league_id)
    if not league.is_user_member(user_id):
        raise NotFound(f"User {user_id} is not a member of league {league_id}")
    now = ensure_utc(now) if now else get_utc_time()

    data = _LeagueSeason(league)
    teams = {team.id: team for team in Team.query.all()}

    weeks = []
    for week in range(1, REGULAR_SEASON_WEEKS + 1):
        picks = data.week_picks(user_id, week)
        if not picks and week not in data.weeks:
            continue

        pick_rows = []
        for pick in sorted(picks, key=lambda p: (p.is_bye, p.slot_number or 0)):
            game = data.games_by_id.get(pick.game_id)
            if _hidden_from(viewer_id, user_id, pick, game, now):
                pick_rows.append(
                    {
                        "slot_number": pick.slot_number,
                        "is_bye": False,
                        "team": None,
                        "points_value": None,
                        "outcome": "hidden",
                        "points": 0,
                    }
                )
                continue

            team = teams.get(pick.picked_team_id)
            pick_rows.append(
                {
                    "slot_number": pick.slot_number,
                    "is_bye": pick.is_bye,
                    "team": team.to_dict() if team else None,
                    "points_value": data.values.get(pick.picked_team_id) if team else None,
                    "outcome": pick.outcome(),
                    "points": calculate_pick_score(pick, game, data.values),
                }
            )

        weeks.append(
            {
                "week": week,
                "is_bye": any(pick.is_bye for pick in picks),
                "picks": pick_rows,
                "points": data.score(user_id, week),
            }
        )

    scored = [row for row in weeks if row["picks"]]
    summary = {
        "total_points": sum(row["points"] for row in weeks),
        "weeks_played": len(scored),
        "byes_used": data.byes_used.get(user_id, 0),
        "best_week": max(scored, key=lambda row: row["points"])["week"] if scored else None,
        "worst_week": min(scored, key=lambda row: row["points"])["week"] if scored else None,
    }
    return {"weeks": weeks, "summary": summary}


def teams_remaining(league_id, user_id, viewer_id=None, now=None):
    """
    Teams the member has not picked yet this season with their effective values

    Another member's picks only count as used once their game has kicked off.
    """
    league = League.get_or_404(league_id)
    if viewer_id is None or viewer_id == user_id:
        used = Pick.get_used_team_ids(league_id, user_id, league.season_id)
    else:
        now = ensure_utc(now) if now else get_utc_time()
        picks = Pick.query.filter_by(
            league_id=league_id, user_id=user_id, season_id=league.season_id, is_bye=False
        ).all()
        used = {
            pick.picked_team_id
            for pick in picks
            if not _hidden_from(viewer_id, user_id, pick, pick.game, now)
        }
    values = get_team_values(league_id)

    query = Team.query
    if used:
        query = query.filter(~Team.id.in_(sorted(used)))

    remaining = [
        {
            "team_id": team.id,
            "code": team.code,
            "display_name": team.display_name,
            "points_value": values.get(team.id, team.default_points_value),
        }
        for team in query.all()
    ]
    remaining.sort(key=lambda row: (-row["points_value"], row["code"]))
    return remaining
