"""
Team point values.

A league may override the default value of any team. Everything that scores a
pick goes through these helpers so overrides are always honored.
"""

from picktwo import db
from picktwo.errors import NotFound
from picktwo.models.league import LeagueTeamValue
from picktwo.models.team import Team


def resolve_team_value(league_id, team_id):
    """
    Effective points for a team in a league.

    Returns:
        int: the league override if one exists, else the team default

    Raises:
        NotFound: unknown team
    """
    override = LeagueTeamValue.query.filter_by(
        league_id=league_id, team_id=team_id
    ).first()
    if override:
        return override.points_value

    team = db.session.get(Team, team_id)
    if not team:
        raise NotFound(f"Team {team_id} not found")
    return team.default_points_value


def get_team_values(league_id):
    """``{team_id: points}`` for every team, overrides applied"""
    values = {
        team_id: points
        for team_id, points in db.session.query(Team.id, Team.default_points_value).all()
    }
    overrides = (
        db.session.query(LeagueTeamValue.team_id, LeagueTeamValue.points_value)
        .filter(LeagueTeamValue.league_id == league_id)
        .all()
    )
    values.update(dict(overrides))
    return values


def get_point_value_table(league_id):
    """Rows for the point-values endpoint, ordered by effective value then code"""
    overrides = {
        team_id: points
        for team_id, points in db.session.query(
            LeagueTeamValue.team_id, LeagueTeamValue.points_value
        )
        .filter(LeagueTeamValue.league_id == league_id)
        .all()
    }
    rows = []
    for team in Team.query.order_by(Team.code).all():
        rows.append(
            {
                "team_id": team.id,
                "code": team.code,
                "display_name": team.display_name,
                "default_points_value": team.default_points_value,
                "points_value": overrides.get(team.id, team.default_points_value),
                "is_override": team.id in overrides,
            }
        )
    rows.sort(key=lambda row: (-row["points_value"], row["code"]))
    return rows
