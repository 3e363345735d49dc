from datetime import timedelta

import pytest

from picktwo.models import Game, GameStatus, Pick, Score
from picktwo.utils.pick_rules import TeamPick
from picktwo.utils.scoring import (
    calculate_pick_score,
    compute_live,
    get_score,
    persist_final_weeks,
    persist_week,
)
from tests.helpers import NOW, finish


@pytest.fixture
def add_pick(db):
    def factory(league, user, game, team, slot=1):
        pick = Pick.for_team(
            league.id, user.id, league.season_id, game.week, game, team.id, slot
        )
        db.session.add(pick)
        db.session.commit()
        return pick

    return factory


@pytest.fixture
def week3(season, teams, make_game):
    return {
        "kc_buf": make_game(season, 3, teams["KC"], teams["BUF"], kickoff=NOW - timedelta(days=2)),
        "phi_dal": make_game(season, 3, teams["PHI"], teams["DAL"], kickoff=NOW - timedelta(days=2)),
    }


class TestCalculatePickScore:
    values = {1: 10, 2: 20}

    def _game(self, status=GameStatus.FINAL, winner=1):
        return Game(
            home_team_id=1,
            away_team_id=2,
            status=status,
            winner_team_id=winner,
            week=1,
        )

    def test_winning_pick(self):
        pick = TeamPick(team_id=1, game_id=5, slot=1)
        assert calculate_pick_score(pick, self._game(), self.values) == 10

    def test_losing_pick(self):
        pick = TeamPick(team_id=2, game_id=5, slot=1)
        assert calculate_pick_score(pick, self._game(), self.values) == 0

    def test_pending_game(self):
        pick = TeamPick(team_id=1, game_id=5, slot=1)
        assert calculate_pick_score(pick, self._game(GameStatus.LIVE, None), self.values) == 0

    def test_final_without_winner(self):
        pick = TeamPick(team_id=1, game_id=5, slot=1)
        assert calculate_pick_score(pick, self._game(winner=None), self.values) == 0

    def test_missing_game(self):
        pick = TeamPick(team_id=1, game_id=5, slot=1)
        assert calculate_pick_score(pick, None, self.values) == 0

    def test_team_not_in_game(self):
        pick = TeamPick(team_id=3, game_id=5, slot=1)
        game = self._game(winner=3)
        assert calculate_pick_score(pick, game, {3: 7}) == 0


class TestLiveScore:
    def test_sums_winning_picks(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["kc_buf"], teams["KC"], slot=1)
        add_pick(league, alice, week3["phi_dal"], teams["PHI"], slot=2)
        finish(db, week3["kc_buf"], teams["KC"])
        finish(db, week3["phi_dal"], teams["PHI"])

        assert compute_live(league.id, alice.id, 3) == 1 + 2

    def test_only_winners_count(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["kc_buf"], teams["KC"], slot=1)
        add_pick(league, alice, week3["phi_dal"], teams["PHI"], slot=2)
        finish(db, week3["kc_buf"], teams["BUF"])
        finish(db, week3["phi_dal"], teams["PHI"])

        assert compute_live(league.id, alice.id, 3) == 2

    def test_no_picks(self, league, alice, week3):
        assert compute_live(league.id, alice.id, 3) == 0

    def test_override_beats_default(self, db, league, alice, teams, week3, add_pick):
        """Override 30 for a team whose default is 12"""
        teams["MIA"].default_points_value = 12
        db.session.commit()
        game = week3["kc_buf"]
        game.home_team_id = teams["MIA"].id
        db.session.commit()

        league.set_point_values({teams["MIA"].id: 30})
        db.session.commit()

        add_pick(league, alice, game, teams["MIA"])
        finish(db, game, teams["MIA"])

        assert compute_live(league.id, alice.id, 3) == 30
        assert get_score(league.id, alice.id, 3) == 30


class TestPersistedScores:
    def test_persist_week_upserts(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["kc_buf"], teams["KC"])
        finish(db, week3["kc_buf"], teams["KC"])

        persist_week(league.id, alice.id, 3)
        persist_week(league.id, alice.id, 3)

        rows = Score.query.filter_by(league_id=league.id, user_id=alice.id, week=3).all()
        assert len(rows) == 1
        assert rows[0].points == 1

    def test_persist_overwrites_stale_rows(self, db, league, alice, teams, week3, add_pick):
        db.session.add(Score(league_id=league.id, user_id=alice.id, week=3, points=99))
        db.session.commit()
        add_pick(league, alice, week3["kc_buf"], teams["KC"])
        finish(db, week3["kc_buf"], teams["KC"])

        persist_week(league.id, alice.id, 3)

        assert Score.get(league.id, alice.id, 3).points == 1

    def test_persisted_row_takes_precedence(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["kc_buf"], teams["KC"])
        finish(db, week3["kc_buf"], teams["KC"])
        db.session.add(Score(league_id=league.id, user_id=alice.id, week=3, points=7))
        db.session.commit()

        assert compute_live(league.id, alice.id, 3) == 1
        assert get_score(league.id, alice.id, 3) == 7

    def test_live_fallback_without_row(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["phi_dal"], teams["DAL"])
        finish(db, week3["phi_dal"], teams["DAL"])

        assert Score.get(league.id, alice.id, 3) is None
        assert get_score(league.id, alice.id, 3) == teams["DAL"].default_points_value


class TestPersistFinalWeeks:
    def test_scores_every_member_for_final_weeks(
        self, db, league, alice, bob, teams, week3, add_pick
    ):
        add_pick(league, alice, week3["kc_buf"], teams["KC"])
        add_pick(league, bob, week3["kc_buf"], teams["BUF"])
        finish(db, week3["kc_buf"], teams["BUF"])

        written = persist_final_weeks(league.season_id)

        assert written == 2
        assert Score.get(league.id, alice.id, 3).points == 0
        assert Score.get(league.id, bob.id, 3).points == teams["BUF"].default_points_value

    def test_idempotent(self, db, league, alice, teams, week3, add_pick):
        add_pick(league, alice, week3["kc_buf"], teams["KC"])
        finish(db, week3["kc_buf"], teams["KC"])

        persist_final_weeks(league.season_id)
        persist_final_weeks(league.season_id)

        assert Score.query.filter_by(league_id=league.id).count() == 2

    def test_nothing_final(self, league, week3):
        assert persist_final_weeks(league.season_id) == 0
        assert Score.query.count() == 0

    def test_explicit_weeks(self, db, league, week3):
        assert persist_final_weeks(league.season_id, weeks=[3, 4]) == 4
        assert {row.week for row in Score.query.all()} == {3, 4}
