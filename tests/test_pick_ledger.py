from datetime import timedelta

import pytest

from picktwo.errors import (
    ByeCapExceeded,
    ByeConflictsWithLockedPick,
    InvalidSelection,
    InvalidTeamForGame,
    NoEditableCapacity,
    NotFound,
    SeasonNotResolved,
    TeamAlreadyUsedThisSeason,
)
from picktwo.models import Game, GameStatus, LeagueMemberState, Pick, Season
from picktwo.services.pick_ledger import (
    get_current_season,
    get_week_state,
    lock_started_games,
    submit_week,
)
from picktwo.utils.pick_rules import ByeSelection, TeamSelection
from picktwo.utils.scoring import get_score
from picktwo.utils.team_values import resolve_team_value
from tests.helpers import NOW, finish


@pytest.fixture
def week5(season, teams, make_game):
    """Three week-5 games kicking off after NOW"""
    return {
        "a": make_game(season, 5, teams["KC"], teams["BUF"], kickoff=NOW + timedelta(hours=3)),
        "b": make_game(season, 5, teams["PHI"], teams["DAL"], kickoff=NOW + timedelta(hours=6)),
        "c": make_game(season, 5, teams["SF"], teams["SEA"], kickoff=NOW + timedelta(hours=9)),
    }


def submit(league, user, week, selection, now=NOW):
    return submit_week(league.id, user.id, league.season_id, week, selection, now=now)


def teams_of(state):
    return sorted(pick["team_id"] for pick in state["picks"] if not pick["is_bye"])


def byes_used(league, user):
    return LeagueMemberState.query.filter_by(league_id=league.id, user_id=user.id).one().byes_used


class TestWeekState:
    def test_empty_week(self, league, alice, week5):
        state = get_week_state(league.id, alice.id, league.season_id, 5, now=NOW)

        assert state["picks"] == []
        assert state["locked_picks"] == []
        assert state["bye_present"] is False
        assert state["editable_capacity"] == 2
        assert state["byes_used"] == 0
        assert state["byes_remaining"] == 4
        assert state["used_team_ids"] == []
        assert [game["id"] for game in state["games"]] == [
            week5["a"].id,
            week5["b"].id,
            week5["c"].id,
        ]
        assert not any(game["is_locked"] for game in state["games"])

    def test_games_lock_once_kickoff_has_passed(self, league, alice, week5):
        kickoff = NOW + timedelta(hours=3)

        at_kickoff = get_week_state(league.id, alice.id, league.season_id, 5, now=kickoff)
        after = get_week_state(
            league.id, alice.id, league.season_id, 5, now=kickoff + timedelta(seconds=1)
        )

        assert not any(game["is_locked"] for game in at_kickoff["games"])
        locked = {game["id"]: game["is_locked"] for game in after["games"]}
        assert locked[week5["a"].id] is True
        assert locked[week5["b"].id] is False

    def test_pick_is_editable_at_the_kickoff_instant(self, league, alice, teams, week5):
        kickoff = NOW + timedelta(hours=3)
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

        state = submit(league, alice, 5, TeamSelection((teams["BUF"].id,)), now=kickoff)
        assert teams_of(state) == [teams["BUF"].id]

    def test_non_member(self, league, make_user, week5):
        carol = make_user("carol")
        with pytest.raises(NotFound):
            get_week_state(league.id, carol.id, league.season_id, 5, now=NOW)

    @pytest.mark.parametrize("week", [0, 19])
    def test_week_out_of_range(self, league, alice, week):
        with pytest.raises(InvalidSelection):
            get_week_state(league.id, alice.id, league.season_id, week, now=NOW)


class TestSubmitTeams:
    def test_two_teams_fill_both_slots(self, league, alice, teams, week5):
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["PHI"].id)))

        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])
        assert sorted(pick["slot_number"] for pick in state["picks"]) == [1, 2]
        assert state["editable_capacity"] == 2
        assert state["used_team_ids"] == sorted([teams["KC"].id, teams["PHI"].id])

    def test_picks_bind_to_the_teams_game(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["DAL"].id,)))

        pick = Pick.query.filter_by(league_id=league.id, user_id=alice.id).one()
        assert pick.game_id == week5["b"].id
        assert pick.picked_team_id == teams["DAL"].id

    def test_resubmission_replaces_unlocked_picks(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["PHI"].id)))
        state = submit(league, alice, 5, TeamSelection((teams["SF"].id,)))

        assert teams_of(state) == [teams["SF"].id]
        assert state["used_team_ids"] == [teams["SF"].id]

    def test_resubmitting_the_same_team_is_allowed(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id,)))
        assert teams_of(state) == [teams["KC"].id]

    def test_duplicate_ids_count_once(self, league, alice, teams, week5):
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["KC"].id)))
        assert teams_of(state) == [teams["KC"].id]

    def test_extra_teams_beyond_two_are_dropped(self, league, alice, teams, week5):
        selection = TeamSelection((teams["KC"].id, teams["PHI"].id, teams["SF"].id))
        state = submit(league, alice, 5, selection)

        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])
        assert Pick.query.count() == 2

    def test_team_without_a_game_this_week(self, league, alice, teams, week5):
        with pytest.raises(InvalidTeamForGame):
            submit(league, alice, 5, TeamSelection((teams["CAR"].id,)))

    def test_team_already_used_in_an_earlier_week(
        self, league, alice, season, teams, make_game, week5
    ):
        make_game(season, 4, teams["KC"], teams["NYG"], kickoff=NOW - timedelta(days=6))
        submit(league, alice, 4, TeamSelection((teams["KC"].id,)), now=NOW - timedelta(days=7))

        with pytest.raises(TeamAlreadyUsedThisSeason):
            submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

    def test_team_reuse_is_tracked_per_league(
        self, league, alice, season, teams, make_league, week5
    ):
        other = make_league(alice, season, name="Office Pool")
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

        state = submit(other, alice, 5, TeamSelection((teams["KC"].id,)))
        assert teams_of(state) == [teams["KC"].id]

    def test_started_game_is_skipped(self, league, alice, teams, week5):
        state = submit(
            league,
            alice,
            5,
            TeamSelection((teams["KC"].id, teams["PHI"].id)),
            now=NOW + timedelta(hours=4),
        )
        assert teams_of(state) == [teams["PHI"].id]

    def test_empty_submission_clears_open_picks(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))
        state = submit(league, alice, 5, TeamSelection(()))
        assert state["picks"] == []


class TestLockedPicks:
    @pytest.fixture
    def locked_kc(self, league, alice, teams, week5):
        """KC picked before week5['a'] kicked off; evaluated after kickoff"""
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))
        return NOW + timedelta(hours=4)

    def test_locked_pick_survives_resubmission(self, league, alice, teams, locked_kc):
        state = submit(league, alice, 5, TeamSelection(()), now=locked_kc)

        assert teams_of(state) == [teams["KC"].id]
        assert len(state["locked_picks"]) == 1
        assert state["editable_capacity"] == 1

    def test_second_slot_stays_editable(self, league, alice, teams, locked_kc):
        state = submit(league, alice, 5, TeamSelection((teams["PHI"].id,)), now=locked_kc)
        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])

        state = submit(league, alice, 5, TeamSelection((teams["SF"].id,)), now=locked_kc)
        assert teams_of(state) == sorted([teams["KC"].id, teams["SF"].id])

        kc_pick = next(p for p in state["picks"] if p["team_id"] == teams["KC"].id)
        sf_pick = next(p for p in state["picks"] if p["team_id"] == teams["SF"].id)
        assert kc_pick["slot_number"] == 1
        assert sf_pick["slot_number"] == 2

    def test_echoing_the_locked_team_is_ignored(self, league, alice, teams, locked_kc):
        state = submit(
            league,
            alice,
            5,
            TeamSelection((teams["KC"].id, teams["PHI"].id)),
            now=locked_kc,
        )
        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])

    def test_capacity_limits_new_teams(self, league, alice, teams, locked_kc):
        state = submit(
            league,
            alice,
            5,
            TeamSelection((teams["PHI"].id, teams["SF"].id)),
            now=locked_kc,
        )
        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])

    def test_no_capacity_left(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["PHI"].id)))

        with pytest.raises(NoEditableCapacity):
            submit(
                league, alice, 5, TeamSelection((teams["SF"].id,)), now=NOW + timedelta(hours=7)
            )

    def test_locked_second_slot_leaves_the_first_slot_free(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["PHI"].id, teams["KC"].id)))
        after_kc_kickoff = NOW + timedelta(hours=4)

        state = submit(league, alice, 5, TeamSelection((teams["SF"].id,)), now=after_kc_kickoff)

        slots = {pick["team_id"]: pick["slot_number"] for pick in state["picks"]}
        assert slots == {teams["KC"].id: 2, teams["SF"].id: 1}
        assert [pick["slot_number"] for pick in state["locked_picks"]] == [2]

    def test_bye_rejected_once_a_pick_locked(self, league, alice, teams, locked_kc):
        with pytest.raises(ByeConflictsWithLockedPick):
            submit(league, alice, 5, ByeSelection(), now=locked_kc)
        assert byes_used(league, alice) == 0

    def test_week_five_scenario(self, db, league, alice, teams, week5):
        """A locked Z pick stays while X fills the other slot and both score"""
        game_b = week5["b"]
        game_b.kickoff_ts = NOW - timedelta(hours=1)
        db.session.commit()

        submit(league, alice, 5, TeamSelection((teams["PHI"].id,)), now=NOW - timedelta(hours=2))
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

        by_team = {pick["team_id"]: pick for pick in state["picks"]}
        assert set(by_team) == {teams["PHI"].id, teams["KC"].id}
        assert by_team[teams["PHI"].id]["game_id"] == game_b.id
        assert by_team[teams["KC"].id]["game_id"] == week5["a"].id
        assert {pick["slot_number"] for pick in state["picks"]} == {1, 2}

        finish(db, db.session.get(Game, game_b.id), teams["PHI"])
        finish(db, db.session.get(Game, week5["a"].id), teams["KC"])

        expected = resolve_team_value(league.id, teams["PHI"].id) + resolve_team_value(
            league.id, teams["KC"].id
        )
        assert get_score(league.id, alice.id, 5) == expected


class TestByes:
    def test_bye_consumes_budget(self, league, alice, week5):
        state = submit(league, alice, 5, ByeSelection())

        assert state["bye_present"] is True
        assert state["byes_used"] == 1
        assert state["byes_remaining"] == 3
        assert state["editable_capacity"] == 1
        assert state["picks"] == [{"id": state["picks"][0]["id"], "is_bye": True}]

    def test_repeating_a_bye_is_a_no_op(self, league, alice, week5):
        submit(league, alice, 5, ByeSelection())
        state = submit(league, alice, 5, ByeSelection())
        assert state["byes_used"] == 1
        assert Pick.query.filter_by(is_bye=True).count() == 1

    def test_bye_replaces_open_team_picks(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))
        state = submit(league, alice, 5, ByeSelection())

        assert state["bye_present"] is True
        assert teams_of(state) == []
        assert state["used_team_ids"] == []

    def test_teams_release_the_bye(self, league, alice, teams, week5):
        submit(league, alice, 5, ByeSelection())
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

        assert state["bye_present"] is False
        assert state["byes_used"] == 0
        assert teams_of(state) == [teams["KC"].id]

    def test_two_teams_while_a_bye_is_held(self, league, alice, teams, week5):
        submit(league, alice, 5, ByeSelection())
        state = submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["PHI"].id)))

        assert teams_of(state) == [teams["KC"].id]
        assert state["bye_present"] is False
        assert byes_used(league, alice) == 0

    def test_empty_teams_clears_the_bye(self, league, alice, week5):
        submit(league, alice, 5, ByeSelection())
        state = submit(league, alice, 5, TeamSelection(()))
        assert state["bye_present"] is False
        assert state["byes_used"] == 0

    def test_fifth_bye_fails_and_leaves_the_week_unchanged(
        self, league, alice, teams, week5
    ):
        for week in range(1, 5):
            submit(league, alice, week, ByeSelection())
        submit(league, alice, 5, TeamSelection((teams["KC"].id,)))

        with pytest.raises(ByeCapExceeded):
            submit(league, alice, 5, ByeSelection())

        state = get_week_state(league.id, alice.id, league.season_id, 5, now=NOW)
        assert teams_of(state) == [teams["KC"].id]
        assert state["bye_present"] is False
        assert state["byes_used"] == 4
        assert state["byes_remaining"] == 0

    def test_byes_are_counted_per_member(self, league, alice, bob, week5):
        submit(league, alice, 5, ByeSelection())
        assert byes_used(league, alice) == 1
        assert byes_used(league, bob) == 0


class TestSubmissionGuards:
    def test_non_member(self, league, make_user, teams, week5):
        carol = make_user("carol")
        with pytest.raises(NotFound):
            submit(league, carol, 5, ByeSelection())

    def test_season_mismatch(self, league, alice, week5):
        with pytest.raises(NotFound):
            submit_week(league.id, alice.id, league.season_id + 1, 5, ByeSelection(), now=NOW)

    def test_malformed_selection(self, league, alice, week5):
        with pytest.raises(InvalidSelection):
            submit(league, alice, 5, {"mode": "bye"})

    def test_failure_rolls_back_the_whole_submission(self, league, alice, teams, week5):
        submit(league, alice, 5, TeamSelection((teams["KC"].id, teams["PHI"].id)))

        with pytest.raises(InvalidTeamForGame):
            submit(league, alice, 5, TeamSelection((teams["SF"].id, teams["CAR"].id)))

        state = get_week_state(league.id, alice.id, league.season_id, 5, now=NOW)
        assert teams_of(state) == sorted([teams["KC"].id, teams["PHI"].id])


def test_lock_started_games(db, season, teams, make_game):
    started = make_game(season, 5, teams["KC"], teams["BUF"], kickoff=NOW - timedelta(minutes=5))
    upcoming = make_game(season, 5, teams["PHI"], teams["DAL"], kickoff=NOW + timedelta(hours=1))
    done = make_game(
        season,
        4,
        teams["SF"],
        teams["SEA"],
        kickoff=NOW - timedelta(days=7),
        status=GameStatus.FINAL,
        winner=teams["SF"],
    )

    assert lock_started_games(now=NOW) == 1
    assert lock_started_games(now=NOW) == 0

    assert db.session.get(Game, started.id).status == GameStatus.LIVE
    assert db.session.get(Game, upcoming.id).status == GameStatus.SCHEDULED
    assert db.session.get(Game, done.id).status == GameStatus.FINAL


def test_game_at_kickoff_goes_live_before_it_locks(db, season, teams, make_game):
    game = make_game(season, 5, teams["KC"], teams["BUF"], kickoff=NOW)

    assert lock_started_games(now=NOW) == 1
    assert db.session.get(Game, game.id).status == GameStatus.LIVE
    assert game.has_started(NOW) is False
    assert game.has_started(NOW + timedelta(seconds=1)) is True


class TestCurrentSeason:
    def test_no_active_season(self, app, db):
        Season.create_season(2025)
        db.session.commit()

        with app.app_context():
            with pytest.raises(SeasonNotResolved):
                get_current_season()

    def test_highest_active_year_wins(self, app, db):
        old = Season.create_season(2024)
        new = Season.create_season(2025)
        old.is_active = True
        new.is_active = True
        db.session.commit()

        with app.app_context():
            assert get_current_season().year == 2025

    def test_pinned_season(self, app, db, season):
        old = Season.create_season(2024)
        db.session.commit()
        app.config["SEASON_ID"] = old.id

        with app.app_context():
            assert get_current_season().id == old.id

    def test_unknown_pinned_season(self, app, season):
        app.config["SEASON_ID"] = 999

        with app.app_context():
            with pytest.raises(SeasonNotResolved):
                get_current_season()

    def test_resolved_once_per_context(self, app, db, season):
        with app.app_context():
            first = get_current_season()
            newer = Season.create_season(2026)
            db.session.flush()
            newer.activate()
            db.session.commit()

            assert get_current_season().id == first.id

        with app.app_context():
            assert get_current_season().year == 2026
