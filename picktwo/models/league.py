import logging
import secrets
import string
from datetime import datetime, timezone

from picktwo import db
from picktwo.errors import AlreadyMember, Forbidden, InvalidPointValues, NotFound
from picktwo.utils.pick_rules import MAX_POINTS_VALUE, MIN_POINTS_VALUE

logger = logging.getLogger(__name__)

VISIBILITY_PUBLIC = "public"
VISIBILITY_PRIVATE = "private"
JOIN_CODE_LENGTH = 6
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


class League(db.Model):
    __tablename__ = "leagues"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text)

    visibility = db.Column(db.String(10), nullable=False, default=VISIBILITY_PUBLIC)
    join_code = db.Column(db.String(JOIN_CODE_LENGTH), unique=True, index=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)

    # League rule: custom point values must be distinct across teams
    require_unique_point_values = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    members = db.relationship(
        "LeagueMember", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )
    member_states = db.relationship(
        "LeagueMemberState", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )
    team_values = db.relationship(
        "LeagueTeamValue", backref="league", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("idx_league_owner", "owner_id"),
        db.Index("idx_league_season_visibility", "season_id", "visibility"),
        db.CheckConstraint(
            "visibility IN ('public', 'private')", name="league_visibility_values"
        ),
        db.CheckConstraint(
            "(visibility = 'private' AND join_code IS NOT NULL) OR "
            "(visibility = 'public' AND join_code IS NULL)",
            name="league_join_code_matches_visibility",
        ),
    )

    def __repr__(self):
        return f"<League {self.name}>"

    @property
    def is_private(self):
        return self.visibility == VISIBILITY_PRIVATE

    @staticmethod
    def generate_join_code():
        """Generate a unique 6-character join code"""
        while True:
            code = "".join(
                secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH)
            )
            if not League.query.filter_by(join_code=code).first():
                return code

    @staticmethod
    def create(
        name,
        owner,
        season,
        visibility=VISIBILITY_PUBLIC,
        description=None,
        point_values=None,
        require_unique_point_values=False,
    ):
        """
        Create a league with its owner as an admin member.

        Caller commits. ``point_values`` is an optional ``{team_id: points}``
        override map.
        """
        league = League(
            name=name.strip(),
            description=(description or "").strip() or None,
            visibility=visibility,
            owner_id=owner.id,
            season_id=season.id,
            require_unique_point_values=require_unique_point_values,
            join_code=(
                League.generate_join_code() if visibility == VISIBILITY_PRIVATE else None
            ),
        )
        db.session.add(league)
        db.session.flush()

        league.add_member(owner, role="admin")
        if point_values:
            league.set_point_values(point_values)

        logger.info(f"League {league.id} '{league.name}' created by user {owner.id}")
        return league

    @staticmethod
    def get_or_404(league_id):
        league = db.session.get(League, league_id)
        if not league:
            raise NotFound(f"League {league_id} not found")
        return league

    @staticmethod
    def get_by_join_code(code):
        if not code:
            return None
        return League.query.filter_by(join_code=code.strip().upper()).first()

    @staticmethod
    def get_public(season_id):
        return (
            League.query.filter_by(season_id=season_id, visibility=VISIBILITY_PUBLIC)
            .order_by(League.created_at.desc(), League.id.desc())
            .all()
        )

    # Membership

    def get_member(self, user_id):
        return self.members.filter_by(user_id=user_id).first()

    def is_user_member(self, user_id):
        return self.get_member(user_id) is not None

    def is_user_admin(self, user_id):
        """The owner is always an admin regardless of the membership role"""
        if user_id == self.owner_id:
            return True
        member = self.get_member(user_id)
        return bool(member and member.is_admin)

    def get_members(self):
        """Members ordered by user id"""
        from .league_member import LeagueMember

        return self.members.order_by(LeagueMember.user_id).all()

    def add_member(self, user, role="member"):
        """Add a user and create their member state"""
        from .league_member import LeagueMember, LeagueMemberState

        if self.is_user_member(user.id):
            raise AlreadyMember(f"{user.username} is already a member of {self.name}")

        db.session.add(LeagueMember(league_id=self.id, user_id=user.id, role=role))
        db.session.add(
            LeagueMemberState(
                league_id=self.id,
                user_id=user.id,
                byes_used=LeagueMemberState.count_bye_picks(self.id, user.id),
            )
        )
        db.session.flush()

    def remove_member(self, user_id):
        """Remove a member. Picks are kept for history."""
        from .league_member import LeagueMemberState

        if user_id == self.owner_id:
            raise Forbidden("The league owner cannot be removed")

        member = self.get_member(user_id)
        if not member:
            raise NotFound(f"User {user_id} is not a member of this league")

        db.session.delete(member)
        LeagueMemberState.query.filter_by(league_id=self.id, user_id=user_id).delete()
        logger.info(f"User {user_id} removed from league {self.id}")

    def transfer_ownership(self, new_owner_id):
        """Hand the league to another member; the old owner becomes a member"""
        new_owner = self.get_member(new_owner_id)
        if not new_owner:
            raise NotFound(f"User {new_owner_id} is not a member of this league")

        old_owner = self.get_member(self.owner_id)
        if old_owner:
            old_owner.role = "member"
        new_owner.role = "admin"
        self.owner_id = new_owner_id

    def regenerate_join_code(self):
        if not self.is_private:
            raise Forbidden("Public leagues do not use join codes")
        self.join_code = League.generate_join_code()
        return self.join_code

    def set_visibility(self, visibility):
        if visibility == self.visibility:
            return
        self.visibility = visibility
        self.join_code = (
            League.generate_join_code() if visibility == VISIBILITY_PRIVATE else None
        )

    # Point values

    def validate_point_values(self, point_values):
        """
        Check a ``{team_id: points}`` override map against the league rules.

        Raises:
            InvalidPointValues
        """
        from .team import Team

        values = list(point_values.values())
        out_of_range = [
            value
            for value in values
            if not isinstance(value, int) or not MIN_POINTS_VALUE <= value <= MAX_POINTS_VALUE
        ]
        if out_of_range:
            raise InvalidPointValues(
                f"Point values must be between {MIN_POINTS_VALUE} and {MAX_POINTS_VALUE}"
            )

        known_ids = {
            row[0]
            for row in db.session.query(Team.id)
            .filter(Team.id.in_(list(point_values.keys())))
            .all()
        }
        unknown = sorted(set(point_values.keys()) - known_ids)
        if unknown:
            raise NotFound(f"Unknown team ids: {unknown}")

        if self.require_unique_point_values and len(set(values)) != len(values):
            raise InvalidPointValues("All custom point values must be unique")

    def set_point_values(self, point_values):
        """Replace all overrides with ``point_values``; an empty map resets to defaults"""
        point_values = {int(team_id): value for team_id, value in point_values.items()}
        self.validate_point_values(point_values)

        LeagueTeamValue.query.filter_by(league_id=self.id).delete()
        for team_id, points in point_values.items():
            db.session.add(
                LeagueTeamValue(league_id=self.id, team_id=team_id, points_value=points)
            )
        db.session.flush()

    def to_dict(self, include_members=False, viewer_id=None):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "visibility": self.visibility,
            "owner_id": self.owner_id,
            "season_id": self.season_id,
            "require_unique_point_values": self.require_unique_point_values,
            "member_count": self.members.count(),
        }
        # Join codes are only shown to admins
        if viewer_id is not None and self.is_user_admin(viewer_id):
            data["join_code"] = self.join_code

        if include_members:
            data["members"] = [member.to_dict() for member in self.get_members()]

        return data


class LeagueTeamValue(db.Model):
    __tablename__ = "league_team_values"

    id = db.Column(db.Integer, primary_key=True)
    league_id = db.Column(db.Integer, db.ForeignKey("leagues.id"), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    points_value = db.Column(db.Integer, nullable=False)

    team = db.relationship("Team")

    __table_args__ = (
        db.UniqueConstraint("league_id", "team_id", name="unique_league_team_value"),
        db.CheckConstraint(
            f"points_value BETWEEN {MIN_POINTS_VALUE} AND {MAX_POINTS_VALUE}",
            name="league_team_value_range",
        ),
    )

    def __repr__(self):
        return f"<LeagueTeamValue league={self.league_id} team={self.team_id} points={self.points_value}>"
