from datetime import datetime, timezone

from picktwo import db
from picktwo.errors import SeasonNotResolved


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)  # e.g., "2025 NFL Season"

    # Status
    is_active = db.Column(db.Boolean, default=False, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    games = db.relationship(
        "Game", backref="season", lazy="dynamic", cascade="all, delete-orphan"
    )
    leagues = db.relationship("League", backref="season", lazy="dynamic")

    __table_args__ = (db.Index("idx_season_active", "is_active", "year"),)

    def __repr__(self):
        return f"<Season {self.year}>"

    @staticmethod
    def get_current_season(pinned_id=None):
        """
        Resolve the current season.

        The active season with the highest year wins; several active rows for
        the same year resolve to the highest id. A pinned id short-circuits the
        lookup. Never falls back to an inactive season.

        Raises:
            SeasonNotResolved: no active season (or the pinned id is unknown)
        """
        if pinned_id is not None:
            season = db.session.get(Season, pinned_id)
            if not season:
                raise SeasonNotResolved(f"Pinned season {pinned_id} does not exist")
            return season

        season = (
            Season.query.filter_by(is_active=True)
            .order_by(Season.year.desc(), Season.id.desc())
            .first()
        )
        if not season:
            raise SeasonNotResolved(
                "No active season found. Activate a season or set SEASON_ID."
            )
        return season

    @staticmethod
    def create_season(year):
        """Create a new season"""
        season = Season(year=year, name=f"{year} NFL Season")
        db.session.add(season)
        return season

    def activate(self):
        """Activate this season (deactivates all others)"""
        Season.query.filter(Season.id != self.id).update({"is_active": False})
        self.is_active = True

    def get_weeks_with_final_games(self):
        """Sorted list of weeks that have at least one final game"""
        from .game import Game, GameStatus

        rows = (
            db.session.query(Game.week)
            .filter(Game.season_id == self.id, Game.status == GameStatus.FINAL)
            .distinct()
            .order_by(Game.week)
            .all()
        )
        return [row[0] for row in rows]

    def to_dict(self):
        """Convert season to dictionary for API responses"""
        return {
            "id": self.id,
            "year": self.year,
            "name": self.name,
            "is_active": self.is_active,
        }
