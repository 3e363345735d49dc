from datetime import datetime, timezone

from picktwo import db
from picktwo.utils.pick_rules import MAX_POINTS_VALUE, MIN_POINTS_VALUE


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)

    # Team identification
    code = db.Column(db.String(10), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(100), nullable=False)

    # Scoring
    default_points_value = db.Column(db.Integer, nullable=False)

    logo_url = db.Column(db.String(500))

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Define bidirectional relationships with Game model
    home_games = db.relationship(
        "Game",
        foreign_keys="Game.home_team_id",
        backref=db.backref("home_team", lazy="joined"),
        lazy="dynamic",
    )
    away_games = db.relationship(
        "Game",
        foreign_keys="Game.away_team_id",
        backref=db.backref("away_team", lazy="joined"),
        lazy="dynamic",
    )

    __table_args__ = (
        db.CheckConstraint(
            f"default_points_value BETWEEN {MIN_POINTS_VALUE} AND {MAX_POINTS_VALUE}",
            name="team_default_points_range",
        ),
    )

    def __repr__(self):
        return f"<Team {self.code}>"

    @staticmethod
    def get_by_code(code):
        """Get team by its upper-case code"""
        if not code:
            return None
        return Team.query.filter_by(code=code.strip().upper()).first()

    @staticmethod
    def get_all():
        """All teams ordered by display name"""
        return Team.query.order_by(Team.display_name).all()

    def to_dict(self):
        """Convert team to dictionary for API responses"""
        return {
            "id": self.id,
            "code": self.code,
            "display_name": self.display_name,
            "default_points_value": self.default_points_value,
            "logo_url": self.logo_url,
        }
