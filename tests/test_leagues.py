import pytest

from picktwo.errors import AlreadyMember, Forbidden, InvalidPointValues, NotFound
from picktwo.models import League, LeagueMemberState
from picktwo.models.league import JOIN_CODE_LENGTH, LeagueTeamValue
from picktwo.models.league_member import get_byes_used
from picktwo.services.pick_ledger import submit_week
from picktwo.utils.pick_rules import ByeSelection
from picktwo.utils.team_values import (
    get_point_value_table,
    get_team_values,
    resolve_team_value,
)
from tests.helpers import NOW


class TestCreate:
    def test_owner_is_an_admin_member(self, league, alice, bob):
        assert league.owner_id == alice.id
        assert league.is_user_admin(alice.id)
        assert league.is_user_member(bob.id)
        assert not league.is_user_admin(bob.id)
        assert league.members.count() == 2

    def test_members_start_with_no_byes(self, league, alice, bob):
        assert get_byes_used(league.id, alice.id) == 0
        assert get_byes_used(league.id, bob.id) == 0

    def test_public_league_has_no_join_code(self, league):
        assert league.visibility == "public"
        assert league.join_code is None

    def test_private_league_gets_a_join_code(self, make_league, alice, season):
        private = make_league(alice, season, visibility="private")
        assert len(private.join_code) == JOIN_CODE_LENGTH
        assert League.get_by_join_code(private.join_code.lower()).id == private.id

    def test_initial_point_values(self, db, alice, season, teams):
        league = League.create(
            "Values", alice, season, point_values={teams["KC"].id: 20}
        )
        db.session.commit()
        assert resolve_team_value(league.id, teams["KC"].id) == 20

    def test_public_listing(self, league, make_league, alice, season):
        make_league(alice, season, name="Hidden", visibility="private")
        assert [row.id for row in League.get_public(season.id)] == [league.id]


class TestMembership:
    def test_join_twice(self, league, bob):
        with pytest.raises(AlreadyMember):
            league.add_member(bob)

    def test_owner_cannot_be_removed(self, league, alice):
        with pytest.raises(Forbidden):
            league.remove_member(alice.id)

    def test_remove_unknown_member(self, league, make_user):
        carol = make_user("carol")
        with pytest.raises(NotFound):
            league.remove_member(carol.id)

    def test_rejoin_restores_bye_count(self, db, league, bob):
        for week in (1, 2):
            submit_week(league.id, bob.id, league.season_id, week, ByeSelection(), now=NOW)

        league.remove_member(bob.id)
        db.session.commit()
        assert not league.is_user_member(bob.id)
        assert LeagueMemberState.query.filter_by(league_id=league.id, user_id=bob.id).count() == 0

        league.add_member(bob)
        db.session.commit()
        assert get_byes_used(league.id, bob.id) == 2

    def test_byes_used_for_non_member(self, league, make_user):
        carol = make_user("carol")
        with pytest.raises(NotFound):
            get_byes_used(league.id, carol.id)

    def test_transfer_ownership(self, db, league, alice, bob):
        league.transfer_ownership(bob.id)
        db.session.commit()

        assert league.owner_id == bob.id
        assert league.is_user_admin(bob.id)
        assert not league.is_user_admin(alice.id)
        assert league.is_user_member(alice.id)

    def test_transfer_to_non_member(self, league, make_user):
        carol = make_user("carol")
        with pytest.raises(NotFound):
            league.transfer_ownership(carol.id)


class TestVisibility:
    def test_regenerate_join_code(self, db, make_league, alice, season):
        private = make_league(alice, season, visibility="private")
        old_code = private.join_code

        new_code = private.regenerate_join_code()
        db.session.commit()

        assert new_code != old_code
        assert League.get_by_join_code(old_code) is None

    def test_public_league_has_no_code_to_regenerate(self, league):
        with pytest.raises(Forbidden):
            league.regenerate_join_code()

    def test_switching_visibility(self, db, league):
        league.set_visibility("private")
        db.session.commit()
        assert league.join_code is not None

        league.set_visibility("public")
        db.session.commit()
        assert league.join_code is None


class TestPointValues:
    def test_defaults_apply_without_overrides(self, league, teams):
        assert resolve_team_value(league.id, teams["MIA"].id) == 12

    def test_override(self, db, league, teams):
        league.set_point_values({teams["MIA"].id: 30})
        db.session.commit()

        assert resolve_team_value(league.id, teams["MIA"].id) == 30
        assert get_team_values(league.id)[teams["MIA"].id] == 30
        assert get_team_values(league.id)[teams["KC"].id] == 1

    def test_overrides_are_per_league(self, db, league, teams, make_league, alice, season):
        other = make_league(alice, season, name="Other")
        league.set_point_values({teams["MIA"].id: 30})
        db.session.commit()

        assert resolve_team_value(other.id, teams["MIA"].id) == 12

    def test_empty_map_resets_to_defaults(self, db, league, teams):
        league.set_point_values({teams["MIA"].id: 30})
        league.set_point_values({})
        db.session.commit()

        assert LeagueTeamValue.query.filter_by(league_id=league.id).count() == 0
        assert resolve_team_value(league.id, teams["MIA"].id) == 12

    @pytest.mark.parametrize("points", [0, 33, "12"])
    def test_out_of_range(self, league, teams, points):
        with pytest.raises(InvalidPointValues):
            league.set_point_values({teams["MIA"].id: points})

    def test_unknown_team(self, league, teams):
        with pytest.raises(NotFound):
            league.set_point_values({9999: 10})

    def test_resolve_unknown_team(self, league):
        with pytest.raises(NotFound):
            resolve_team_value(league.id, 9999)

    def test_duplicates_allowed_by_default(self, db, league, teams):
        league.set_point_values({teams["KC"].id: 20, teams["BUF"].id: 20})
        db.session.commit()
        assert resolve_team_value(league.id, teams["BUF"].id) == 20

    def test_unique_values_rule(self, make_league, alice, season, teams):
        strict = make_league(alice, season, name="Strict", require_unique_point_values=True)

        with pytest.raises(InvalidPointValues):
            strict.set_point_values({teams["KC"].id: 20, teams["BUF"].id: 20})

        strict.set_point_values({teams["KC"].id: 20, teams["BUF"].id: 21})

    def test_value_table(self, db, league, teams):
        league.set_point_values({teams["KC"].id: 32})
        db.session.commit()

        table = get_point_value_table(league.id)

        assert len(table) == 32
        assert [row["code"] for row in table[:2]] == ["CAR", "KC"]
        kc = table[1]
        assert kc["default_points_value"] == 1
        assert kc["points_value"] == 32
        assert kc["is_override"] is True
        assert table[0]["is_override"] is False
