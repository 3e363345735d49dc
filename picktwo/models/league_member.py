from datetime import datetime, timezone

from picktwo import db
from picktwo.errors import ByeCapExceeded, NotFound
from picktwo.utils.pick_rules import MAX_BYES

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


class LeagueMember(db.Model):
    __tablename__ = "league_members"

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    role = db.Column(db.String(10), nullable=False, default=ROLE_MEMBER)

    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("league_id", "user_id", name="unique_league_member"),
        db.CheckConstraint("role IN ('admin', 'member')", name="league_member_role"),
        db.Index("idx_league_members_user", "user_id"),
    )

    def __repr__(self):
        return f"<LeagueMember user_id={self.user_id} league_id={self.league_id}>"

    @property
    def is_owner(self):
        return self.league is not None and self.league.owner_id == self.user_id

    @property
    def is_admin(self):
        return self.is_owner or self.role == ROLE_ADMIN

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "display_name": self.user.full_name if self.user else None,
            "role": "owner" if self.is_owner else self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


class LeagueMemberState(db.Model):
    """Per-member counters. ``byes_used`` always equals the member's bye pick rows."""

    __tablename__ = "league_member_state"

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    byes_used = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("league_id", "user_id", name="unique_league_member_state"),
        db.CheckConstraint(
            f"byes_used BETWEEN 0 AND {MAX_BYES}", name="league_member_state_byes_range"
        ),
    )

    def __repr__(self):
        return f"<LeagueMemberState league={self.league_id} user={self.user_id} byes={self.byes_used}>"

    @staticmethod
    def get_for_update(league_id, user_id):
        """
        Load the member's state row with a row lock. Writers for the same
        member serialize on this lock for the rest of the transaction.
        """
        state = (
            LeagueMemberState.query.filter_by(league_id=league_id, user_id=user_id)
            .with_for_update()
            .first()
        )
        if not state:
            raise NotFound(f"User {user_id} is not a member of league {league_id}")
        return state

    @staticmethod
    def count_bye_picks(league_id, user_id):
        from .league import League
        from .pick import Pick

        league = db.session.get(League, league_id)
        query = Pick.query.filter_by(league_id=league_id, user_id=user_id, is_bye=True)
        if league is not None:
            query = query.filter_by(season_id=league.season_id)
        return query.count()

    @property
    def byes_remaining(self):
        return max(0, MAX_BYES - self.byes_used)

    def consume_bye(self):
        if self.byes_used >= MAX_BYES:
            raise ByeCapExceeded(f"All {MAX_BYES} byes have already been used")
        self.byes_used += 1

    def release_bye(self):
        self.byes_used = max(0, self.byes_used - 1)


def get_byes_used(league_id, user_id):
    """Number of byes a member has used this season (0..MAX_BYES)"""
    state = LeagueMemberState.query.filter_by(
        league_id=league_id, user_id=user_id
    ).first()
    if not state:
        raise NotFound(f"User {user_id} is not a member of league {league_id}")
    return state.byes_used
