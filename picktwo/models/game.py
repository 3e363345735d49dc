from datetime import datetime, timezone

from picktwo import db
from picktwo.utils.timezone_utils import ensure_utc, format_kickoff, get_utc_time


class GameStatus:
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"

    ALL = (SCHEDULED, LIVE, FINAL)


class Game(db.Model):
    __tablename__ = "games"

    id = db.Column(db.Integer, primary_key=True)

    # Feed identifier used as the upsert key
    external_id = db.Column(db.String(50), unique=True, index=True)

    # Game identification
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Teams
    home_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)

    kickoff_ts = db.Column(db.DateTime(timezone=True), nullable=False)

    # Game status
    status = db.Column(db.String(10), nullable=False, default=GameStatus.SCHEDULED)
    winner_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    winner_team = db.relationship("Team", foreign_keys=[winner_team_id])

    __table_args__ = (
        db.Index("idx_game_season_week", "season_id", "week"),
        db.Index("idx_game_kickoff", "kickoff_ts"),
        db.CheckConstraint("home_team_id != away_team_id", name="different_teams"),
        db.CheckConstraint("week BETWEEN 1 AND 18", name="game_week_range"),
        db.CheckConstraint(
            "status IN ('scheduled', 'live', 'final')", name="game_status_values"
        ),
        db.CheckConstraint(
            "winner_team_id IS NULL OR status = 'final'", name="winner_only_when_final"
        ),
    )

    def __repr__(self):
        return f'<Game {self.away_team.code if self.away_team else "TBD"} @ {self.home_team.code if self.home_team else "TBD"} Week {self.week}>'

    @property
    def is_final(self):
        return self.status == GameStatus.FINAL

    @property
    def team_ids(self):
        return (self.home_team_id, self.away_team_id)

    def involves(self, team_id):
        return team_id in self.team_ids

    def has_started(self, now=None):
        """Check if kickoff has passed; picks on a started game are locked"""
        if not self.kickoff_ts:
            return False
        now = ensure_utc(now) if now else get_utc_time()
        return now > ensure_utc(self.kickoff_ts)

    def is_team_winner(self, team_id):
        """True/False once final, None while pending"""
        if not self.is_final:
            return None
        return self.winner_team_id is not None and self.winner_team_id == team_id

    def apply_result(self, status, winner_team_id=None):
        """
        Apply a status/winner update from the feed.

        A final game is never moved back to a non-final status. The winner is
        only kept for final games and must be one of the two teams.

        Returns:
            bool: True if anything changed
        """
        if status not in GameStatus.ALL:
            raise ValueError(f"Unknown game status: {status}")

        if self.is_final and status != GameStatus.FINAL:
            return False

        if status != GameStatus.FINAL or not self.involves(winner_team_id):
            winner_team_id = None

        changed = self.status != status or self.winner_team_id != winner_team_id
        self.status = status
        self.winner_team_id = winner_team_id
        return changed

    @staticmethod
    def get_games_for_week(season_id, week):
        """Get all games for a specific week with eager loading"""
        from sqlalchemy.orm import joinedload

        return (
            Game.query.filter_by(season_id=season_id, week=week)
            .options(joinedload(Game.home_team), joinedload(Game.away_team))
            .order_by(Game.kickoff_ts, Game.id)
            .all()
        )

    def to_dict(self, now=None):
        """Convert game to dictionary for API responses"""
        return {
            "id": self.id,
            "season_id": self.season_id,
            "week": self.week,
            "kickoff_ts": ensure_utc(self.kickoff_ts).isoformat() if self.kickoff_ts else None,
            "kickoff_display": format_kickoff(self.kickoff_ts),
            "home_team": self.home_team.to_dict() if self.home_team else None,
            "away_team": self.away_team.to_dict() if self.away_team else None,
            "status": self.status,
            "winner_team_id": self.winner_team_id,
            "is_locked": self.has_started(now),
        }
