"""
Pick Ledger

Authoritative reads and writes of a member's weekly picks. The week state shown
to clients and the checks made on submission both come from
``project_week_state`` so the two can never disagree.
"""

import logging

from flask import current_app, g, has_app_context

from picktwo import db
from picktwo.errors import (
    ByeConflictsWithLockedPick,
    InvalidSelection,
    InvalidTeamForGame,
    NoEditableCapacity,
    NotFound,
    PickemError,
    TeamAlreadyUsedThisSeason,
)
from picktwo.models import Game, GameStatus, League, LeagueMemberState, Pick, Season
from picktwo.utils.pick_rules import (
    REGULAR_SEASON_WEEKS,
    ByeSelection,
    TeamSelection,
    free_slots,
    project_week_state,
)
from picktwo.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)


def get_current_season():
    """
    Resolve the current season once per request or job run.

    The result is kept on ``flask.g`` so it lives exactly as long as the
    application context. ``SEASON_ID`` in the config pins the season.

    Raises:
        SeasonNotResolved
    """
    if has_app_context() and "current_season" in g:
        return g.current_season

    pinned_id = current_app.config.get("SEASON_ID") if has_app_context() else None
    season = Season.get_current_season(pinned_id)

    if has_app_context():
        g.current_season = season
    return season


def _check_week(week):
    if not isinstance(week, int) or not 1 <= week <= REGULAR_SEASON_WEEKS:
        raise InvalidSelection(f"Week must be between 1 and {REGULAR_SEASON_WEEKS}")


def _load_week(league_id, user_id, season_id, week, now):
    """Stored pick rows, projected state and the games they touch"""
    rows = Pick.get_week_picks(league_id, user_id, season_id, week)
    week_games = Game.get_games_for_week(season_id, week)

    games_by_id = {game.id: game for game in week_games}
    missing_ids = {
        row.game_id for row in rows if row.game_id and row.game_id not in games_by_id
    }
    if missing_ids:
        for game in Game.query.filter(Game.id.in_(sorted(missing_ids))).all():
            games_by_id[game.id] = game

    locked_game_ids = {
        game_id for game_id, game in games_by_id.items() if game.has_started(now)
    }
    state = project_week_state(
        [row.selection for row in rows], locked_game_ids, set(games_by_id)
    )
    return rows, state, week_games


def get_week_state(league_id, user_id, season_id, week, now=None):
    """
    Current editable state of a member's week.

    Returns:
        dict: ``picks``, ``locked_picks``, ``bye_present`` and
        ``editable_capacity`` plus the member's bye budget, the teams already
        used this season and the week's games with their lock flag
    """
    _check_week(week)
    now = ensure_utc(now) if now else get_utc_time()

    league = League.get_or_404(league_id)
    if not league.is_user_member(user_id):
        raise NotFound(f"User {user_id} is not a member of league {league_id}")

    _, state, week_games = _load_week(league_id, user_id, season_id, week, now)
    member_state = LeagueMemberState.query.filter_by(
        league_id=league_id, user_id=user_id
    ).first()

    data = state.to_dict()
    data.update(
        {
            "league_id": league_id,
            "user_id": user_id,
            "season_id": season_id,
            "week": week,
            "byes_used": member_state.byes_used if member_state else 0,
            "byes_remaining": member_state.byes_remaining if member_state else 0,
            "used_team_ids": sorted(
                Pick.get_used_team_ids(league_id, user_id, season_id)
            ),
            "games": [game.to_dict(now) for game in week_games],
        }
    )
    return data


def submit_week(league_id, user_id, season_id, week, selection, now=None):
    """
    Replace a member's editable picks for one week.

    Locked picks are never touched. The whole submission runs in one
    transaction and is rolled back on any failure.

    Args:
        selection: ByeSelection or TeamSelection
        now: evaluation time, defaults to the current UTC time

    Returns:
        dict: the week state after the submission

    Raises:
        PickValidationError subclasses, NotFound, InvalidSelection
    """
    _check_week(week)
    if not isinstance(selection, (ByeSelection, TeamSelection)):
        raise InvalidSelection("Selection must be a bye or a list of teams")
    now = ensure_utc(now) if now else get_utc_time()

    try:
        # Serializes concurrent submissions of the same member
        member_state = LeagueMemberState.get_for_update(league_id, user_id)
        league = League.get_or_404(league_id)
        if league.season_id != season_id:
            raise NotFound(f"League {league_id} is not part of season {season_id}")

        rows, state, week_games = _load_week(league_id, user_id, season_id, week, now)

        locked_pick_ids = {pick.pick_id for pick in state.locked_picks}
        bye_row = next((row for row in rows if row.is_bye), None)

        for row in rows:
            if not row.is_bye and row.id not in locked_pick_ids:
                db.session.delete(row)
        db.session.flush()

        if isinstance(selection, ByeSelection):
            _apply_bye(league_id, user_id, season_id, week, state, bye_row, member_state)
        else:
            _apply_teams(
                league_id,
                user_id,
                season_id,
                week,
                selection,
                state,
                week_games,
                now,
            )
            if bye_row is not None:
                db.session.delete(bye_row)
                member_state.release_bye()

        db.session.commit()

    except PickemError as e:
        db.session.rollback()
        logger.info(
            f"Rejected week {week} submission for user {user_id} in league {league_id}: {e.code}"
        )
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(
            f"Week {week} submission failed for user {user_id} in league {league_id}: {e}",
            exc_info=True,
        )
        raise

    logger.info(
        f"User {user_id} submitted week {week} in league {league_id} ({selection.mode})"
    )
    return get_week_state(league_id, user_id, season_id, week, now=now)


def _apply_bye(league_id, user_id, season_id, week, state, bye_row, member_state):
    if bye_row is not None:
        return

    if state.locked_picks:
        raise ByeConflictsWithLockedPick(
            "A team pick for this week has already locked", week=week
        )
    if state.editable_capacity == 0:
        raise NoEditableCapacity("No editable pick slots remain this week", week=week)

    member_state.consume_bye()
    db.session.add(Pick.bye(league_id, user_id, season_id, week))
    db.session.flush()


def _apply_teams(league_id, user_id, season_id, week, selection, state, week_games, now):
    games_by_team = {}
    for game in week_games:
        for team_id in game.team_ids:
            games_by_team[team_id] = game

    used_team_ids = Pick.get_used_team_ids(league_id, user_id, season_id)
    locked_team_ids = state.locked_team_ids

    to_insert = []
    for team_id in selection.unique_team_ids():
        # Clients resend the whole week, locked picks included
        if team_id in locked_team_ids:
            continue

        game = games_by_team.get(team_id)
        if game is None:
            raise InvalidTeamForGame(
                f"Team {team_id} has no game in week {week}", team_id=team_id
            )
        if game.has_started(now):
            logger.info(f"Skipping team {team_id}: week {week} game {game.id} has started")
            continue
        if team_id in used_team_ids:
            raise TeamAlreadyUsedThisSeason(
                f"Team {team_id} has already been picked this season", team_id=team_id
            )
        to_insert.append((team_id, game))

    if to_insert and state.editable_capacity == 0:
        raise NoEditableCapacity(
            "No editable pick slots remain this week",
            requested=len(to_insert),
            editable_capacity=0,
        )
    if len(to_insert) > state.editable_capacity:
        dropped = [team_id for team_id, _ in to_insert[state.editable_capacity :]]
        logger.info(f"Dropping team(s) {dropped} beyond week {week} capacity")
        to_insert = to_insert[: state.editable_capacity]

    for (team_id, game), slot in zip(to_insert, free_slots(state.locked_slots)):
        db.session.add(
            Pick.for_team(league_id, user_id, season_id, week, game, team_id, slot)
        )
    db.session.flush()


def lock_started_games(now=None, commit=True):
    """
    Move scheduled games whose kickoff time has been reached to ``live``.

    Pick locking is derived from kickoff times; this only advances the game
    status for downstream consumers.

    Returns:
        int: number of games moved
    """
    now = ensure_utc(now) if now else get_utc_time()

    games = Game.query.filter(Game.status == GameStatus.SCHEDULED).all()
    locked = 0
    for game in games:
        if game.kickoff_ts and ensure_utc(game.kickoff_ts) <= now:
            game.status = GameStatus.LIVE
            locked += 1

    if locked:
        if commit:
            db.session.commit()
        logger.info(f"Locked {locked} started game(s)")
    return locked
