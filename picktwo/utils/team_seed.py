"""
The 32 NFL teams used to seed the Team table.

Default point values follow list order (1..32) and are meant to be tuned with
``manage.py team set-default`` before the season starts.
"""

from picktwo import db
from picktwo.models import Team

NFL_TEAMS = [
    ("KC", "Kansas City Chiefs"),
    ("PHI", "Philadelphia Eagles"),
    ("BUF", "Buffalo Bills"),
    ("BAL", "Baltimore Ravens"),
    ("DET", "Detroit Lions"),
    ("SF", "San Francisco 49ers"),
    ("CIN", "Cincinnati Bengals"),
    ("DAL", "Dallas Cowboys"),
    ("GB", "Green Bay Packers"),
    ("HOU", "Houston Texans"),
    ("LAR", "Los Angeles Rams"),
    ("MIA", "Miami Dolphins"),
    ("PIT", "Pittsburgh Steelers"),
    ("LAC", "Los Angeles Chargers"),
    ("MIN", "Minnesota Vikings"),
    ("TB", "Tampa Bay Buccaneers"),
    ("SEA", "Seattle Seahawks"),
    ("ATL", "Atlanta Falcons"),
    ("JAX", "Jacksonville Jaguars"),
    ("CHI", "Chicago Bears"),
    ("ARI", "Arizona Cardinals"),
    ("IND", "Indianapolis Colts"),
    ("NYJ", "New York Jets"),
    ("DEN", "Denver Broncos"),
    ("WAS", "Washington Commanders"),
    ("NO", "New Orleans Saints"),
    ("LV", "Las Vegas Raiders"),
    ("CLE", "Cleveland Browns"),
    ("NE", "New England Patriots"),
    ("TEN", "Tennessee Titans"),
    ("NYG", "New York Giants"),
    ("CAR", "Carolina Panthers"),
]


def seed_teams():
    """
    Insert missing teams; existing rows keep their values. Caller commits.

    Returns:
        int: number of teams created
    """
    created = 0
    for points, (code, display_name) in enumerate(NFL_TEAMS, start=1):
        if Team.get_by_code(code):
            continue
        db.session.add(
            Team(code=code, display_name=display_name, default_points_value=points)
        )
        created += 1
    return created
