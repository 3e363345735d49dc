from datetime import datetime, timezone

from picktwo import db


class Score(db.Model):
    """Persisted weekly points. A cache of the live computation, never the only source."""

    __tablename__ = "scores"

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    week = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)

    computed_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("league_id", "user_id", "week", name="unique_score_week"),
        db.Index("idx_score_league", "league_id"),
    )

    def __repr__(self):
        return f"<Score league={self.league_id} user={self.user_id} week={self.week} points={self.points}>"

    @staticmethod
    def get(league_id, user_id, week):
        return Score.query.filter_by(
            league_id=league_id, user_id=user_id, week=week
        ).first()

    @staticmethod
    def get_for_league(league_id):
        """``{(user_id, week): points}`` for every persisted row of the league"""
        return {
            (score.user_id, score.week): score.points
            for score in Score.query.filter_by(league_id=league_id).all()
        }

    def to_dict(self):
        return {
            "league_id": self.league_id,
            "user_id": self.user_id,
            "week": self.week,
            "points": self.points,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }
