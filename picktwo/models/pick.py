from datetime import datetime, timezone

from picktwo import db
from picktwo.utils.pick_rules import ByeMarker, TeamPick


class Pick(db.Model):
    """
    One weekly selection of a league member: either a bye marker or a team
    pick bound to that team's game in one of the two weekly slots.
    """

    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)

    # Pick identification
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)

    # Pick details
    is_bye = db.Column(db.Boolean, nullable=False, default=False)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"))
    picked_team_id = db.Column(db.Integer, db.ForeignKey("teams.id"))
    slot_number = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    game = db.relationship("Game", foreign_keys=[game_id])
    picked_team = db.relationship("Team", foreign_keys=[picked_team_id])
    user = db.relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        db.CheckConstraint(
            "(is_bye AND game_id IS NULL AND picked_team_id IS NULL AND slot_number IS NULL) OR "
            "(NOT is_bye AND game_id IS NOT NULL AND picked_team_id IS NOT NULL "
            "AND slot_number IN (1, 2))",
            name="pick_bye_or_team",
        ),
        db.UniqueConstraint(
            "league_id", "user_id", "season_id", "week", "slot_number",
            name="unique_pick_week_slot",
        ),
        db.UniqueConstraint(
            "league_id", "user_id", "season_id", "picked_team_id",
            name="unique_pick_team_per_season",
        ),
        db.Index(
            "unique_pick_week_bye",
            "league_id", "user_id", "season_id", "week",
            unique=True,
            sqlite_where=is_bye.is_(True),
            postgresql_where=is_bye.is_(True),
        ),
        db.Index("idx_pick_league_week", "league_id", "season_id", "week"),
        db.Index("idx_pick_game", "game_id"),
    )

    def __repr__(self):
        if self.is_bye:
            return f"<Pick user_id={self.user_id} week={self.week} BYE>"
        return f"<Pick user_id={self.user_id} week={self.week} slot={self.slot_number} team_id={self.picked_team_id}>"

    @property
    def selection(self):
        """The pick as a tagged value: ByeMarker or TeamPick"""
        if self.is_bye:
            return ByeMarker(pick_id=self.id)
        return TeamPick(
            team_id=self.picked_team_id,
            game_id=self.game_id,
            slot=self.slot_number,
            pick_id=self.id,
        )

    @staticmethod
    def bye(league_id, user_id, season_id, week):
        return Pick(
            league_id=league_id,
            user_id=user_id,
            season_id=season_id,
            week=week,
            is_bye=True,
        )

    @staticmethod
    def for_team(league_id, user_id, season_id, week, game, team_id, slot_number):
        return Pick(
            league_id=league_id,
            user_id=user_id,
            season_id=season_id,
            week=week,
            is_bye=False,
            game_id=game.id,
            picked_team_id=team_id,
            slot_number=slot_number,
        )

    @staticmethod
    def get_week_picks(league_id, user_id, season_id, week):
        return (
            Pick.query.filter_by(
                league_id=league_id, user_id=user_id, season_id=season_id, week=week
            )
            .order_by(Pick.is_bye, Pick.slot_number, Pick.id)
            .all()
        )

    @staticmethod
    def get_used_team_ids(league_id, user_id, season_id):
        """Team ids this member has picked in the league season"""
        rows = (
            db.session.query(Pick.picked_team_id)
            .filter(
                Pick.league_id == league_id,
                Pick.user_id == user_id,
                Pick.season_id == season_id,
                Pick.is_bye.is_(False),
            )
            .all()
        )
        return {row[0] for row in rows}

    def outcome(self):
        """``bye``, ``pending``, ``won`` or ``lost``"""
        if self.is_bye:
            return "bye"
        if not self.game or not self.game.is_final:
            return "pending"
        return "won" if self.game.is_team_winner(self.picked_team_id) else "lost"

    def to_dict(self):
        """Convert pick to dictionary for API responses"""
        return {
            "id": self.id,
            "league_id": self.league_id,
            "user_id": self.user_id,
            "season_id": self.season_id,
            "week": self.week,
            "is_bye": self.is_bye,
            "game_id": self.game_id,
            "slot_number": self.slot_number,
            "picked_team": self.picked_team.to_dict() if self.picked_team else None,
            "outcome": self.outcome(),
        }
