from picktwo import db  # noqa: F401 - imported for model imports

from .game import Game, GameStatus
from .league import League, LeagueTeamValue
from .league_member import LeagueMember, LeagueMemberState
from .pick import Pick
from .score import Score
from .season import Season
from .team import Team
from .user import User

__all__ = [
    "User",
    "League",
    "LeagueTeamValue",
    "LeagueMember",
    "LeagueMemberState",
    "Season",
    "Team",
    "Game",
    "GameStatus",
    "Pick",
    "Score",
]
