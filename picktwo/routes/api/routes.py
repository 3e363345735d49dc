import logging
from functools import wraps

from flask import jsonify, request
from flask_login import current_user, login_required

from picktwo import db, limiter
from picktwo.errors import Forbidden, InvalidPointValues, NotFound
from picktwo.forms import validate_or_raise
from picktwo.forms.auth import sanitize_input
from picktwo.forms.leagues import (
    CreateLeagueForm,
    JoinLeagueForm,
    LeagueSettingsForm,
    TransferOwnershipForm,
)
from picktwo.forms.picks import WeekPicksForm
from picktwo.models import League, Score, Team
from picktwo.routes.api import bp
from picktwo.services.pick_ledger import get_current_season, get_week_state, submit_week
from picktwo.utils.cache_utils import cached_route, invalidate_league_cache
from picktwo.utils.scoring import get_score
from picktwo.utils.standings import (
    compute_standings,
    points_progression,
    teams_remaining,
    weekly_history,
)
from picktwo.utils.team_values import get_point_value_table

logger = logging.getLogger(__name__)


def add_security_headers(f):
    """Add no-store cache headers to per-user API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, max-age=0"
            )
        return response

    return decorated_function


def _member_league(league_id):
    league = League.get_or_404(league_id)
    if not league.is_user_member(current_user.id):
        raise Forbidden("You are not a member of this league")
    return league


def _admin_league(league_id):
    league = League.get_or_404(league_id)
    if not league.is_user_admin(current_user.id):
        raise Forbidden("League admin rights required")
    return league


def _target_user_id(league):
    """``?user_id=`` when given (must be a member), else the current user

    Views of another member mask their picks until kickoff.
    """
    user_id = request.args.get("user_id", type=int) or current_user.id
    if not league.is_user_member(user_id):
        raise NotFound(f"User {user_id} is not a member of this league")
    return user_id


# Reference data


@bp.route("/seasons/current")
def current_season():
    """Get current active season"""
    return jsonify(get_current_season().to_dict())


@bp.route("/teams")
@cached_route(timeout=3600, key_prefix="teams")
def teams():
    """All teams with their default point values"""
    return [team.to_dict() for team in Team.get_all()]


# Leagues


@bp.route("/leagues")
@login_required
def my_leagues():
    return jsonify(
        [league.to_dict(viewer_id=current_user.id) for league in current_user.get_leagues()]
    )


@bp.route("/leagues/public")
@login_required
def public_leagues():
    season = get_current_season()
    return jsonify(
        [league.to_dict(viewer_id=current_user.id) for league in League.get_public(season.id)]
    )


@bp.route("/leagues", methods=["POST"])
@login_required
@limiter.limit("20 per hour")
def create_league():
    form = validate_or_raise(CreateLeagueForm())
    payload = request.get_json(silent=True) or {}

    league = League.create(
        name=sanitize_input(form.name.data),
        owner=current_user,
        season=get_current_season(),
        visibility=form.visibility.data,
        description=sanitize_input(form.description.data),
        point_values=_parse_point_values(payload.get("point_values") or {}),
        require_unique_point_values=form.require_unique_point_values.data,
    )
    db.session.commit()

    return jsonify(league.to_dict(include_members=True, viewer_id=current_user.id)), 201


@bp.route("/leagues/join", methods=["POST"])
@login_required
@limiter.limit("30 per hour")
def join_league():
    form = validate_or_raise(JoinLeagueForm())

    if form.join_code.data:
        league = League.get_by_join_code(form.join_code.data)
        if not league:
            raise NotFound("No league matches that join code")
    else:
        league = League.get_or_404(form.league_id.data)
        if league.is_private:
            raise Forbidden("Private leagues can only be joined with a join code")

    league.add_member(current_user)
    db.session.commit()
    invalidate_league_cache(league.id)

    logger.info(f"User {current_user.id} joined league {league.id}")
    return jsonify(league.to_dict(viewer_id=current_user.id))


@bp.route("/leagues/<int:league_id>")
@login_required
def league_detail(league_id):
    league = League.get_or_404(league_id)
    if league.is_private and not league.is_user_member(current_user.id):
        raise Forbidden("You are not a member of this league")
    return jsonify(league.to_dict(include_members=True, viewer_id=current_user.id))


@bp.route("/leagues/<int:league_id>", methods=["PATCH"])
@login_required
def update_league(league_id):
    league = _admin_league(league_id)
    form = validate_or_raise(LeagueSettingsForm())

    league.set_visibility(form.visibility.data)
    db.session.commit()
    invalidate_league_cache(league.id)

    return jsonify(league.to_dict(viewer_id=current_user.id))


@bp.route("/leagues/<int:league_id>/join-code", methods=["POST"])
@login_required
def regenerate_join_code(league_id):
    league = _admin_league(league_id)
    code = league.regenerate_join_code()
    db.session.commit()
    return jsonify({"join_code": code})


@bp.route("/leagues/<int:league_id>/members/<int:user_id>", methods=["DELETE"])
@login_required
def remove_member(league_id, user_id):
    """Admins remove members; any member may remove themselves"""
    league = League.get_or_404(league_id)
    if user_id != current_user.id and not league.is_user_admin(current_user.id):
        raise Forbidden("League admin rights required")

    league.remove_member(user_id)
    db.session.commit()
    invalidate_league_cache(league.id)

    return jsonify({"success": True})


@bp.route("/leagues/<int:league_id>/owner", methods=["POST"])
@login_required
def transfer_ownership(league_id):
    league = League.get_or_404(league_id)
    if league.owner_id != current_user.id:
        raise Forbidden("Only the league owner can transfer ownership")

    form = validate_or_raise(TransferOwnershipForm())
    league.transfer_ownership(form.user_id.data)
    db.session.commit()
    invalidate_league_cache(league.id)

    logger.info(f"League {league.id} ownership moved to user {form.user_id.data}")
    return jsonify(league.to_dict(include_members=True, viewer_id=current_user.id))


# Point values


def _parse_point_values(raw):
    if not isinstance(raw, dict):
        raise InvalidPointValues("Point values must be an object of team id to points")
    try:
        return {int(team_id): points for team_id, points in raw.items()}
    except (TypeError, ValueError):
        raise InvalidPointValues("Team ids must be integers")


@bp.route("/leagues/<int:league_id>/point-values")
@login_required
def point_values(league_id):
    league = _member_league(league_id)
    return jsonify(
        {
            "league_id": league.id,
            "require_unique_point_values": league.require_unique_point_values,
            "teams": get_point_value_table(league.id),
        }
    )


@bp.route("/leagues/<int:league_id>/point-values", methods=["PUT"])
@login_required
def update_point_values(league_id):
    """Replace the league's overrides; ``{"values": {}}`` resets to defaults"""
    league = _admin_league(league_id)
    payload = request.get_json(silent=True) or {}

    league.set_point_values(_parse_point_values(payload.get("values", {})))
    db.session.commit()
    invalidate_league_cache(league.id)

    logger.info(f"League {league.id} point values updated by user {current_user.id}")
    return jsonify({"league_id": league.id, "teams": get_point_value_table(league.id)})


# Picks


@bp.route("/leagues/<int:league_id>/weeks/<int:week>/picks")
@login_required
@add_security_headers
def week_picks(league_id, week):
    league = _member_league(league_id)
    return jsonify(get_week_state(league.id, current_user.id, league.season_id, week))


@bp.route("/leagues/<int:league_id>/weeks/<int:week>/picks", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
@add_security_headers
def submit_week_picks(league_id, week):
    league = _member_league(league_id)
    form = validate_or_raise(WeekPicksForm())

    state = submit_week(
        league.id, current_user.id, league.season_id, week, form.to_selection()
    )
    invalidate_league_cache(league.id)
    return jsonify(state)


# Scores and standings


@bp.route("/leagues/<int:league_id>/weeks/<int:week>/score")
@login_required
def week_score(league_id, week):
    league = _member_league(league_id)
    user_id = _target_user_id(league)
    return jsonify(
        {
            "league_id": league.id,
            "user_id": user_id,
            "week": week,
            "points": get_score(league.id, user_id, week),
            "persisted": Score.get(league.id, user_id, week) is not None,
        }
    )


@bp.route("/leagues/<int:league_id>/standings")
@login_required
@cached_route(timeout=120, key_prefix="standings")
def standings(league_id):
    league = _member_league(league_id)
    return {"league_id": league.id, "standings": compute_standings(league.id)}


@bp.route("/leagues/<int:league_id>/progression")
@login_required
@cached_route(timeout=120, key_prefix="progression")
def progression(league_id):
    league = _member_league(league_id)
    return points_progression(league.id)


@bp.route("/leagues/<int:league_id>/history")
@login_required
@cached_route(timeout=120, key_prefix="history")
def history(league_id):
    league = _member_league(league_id)
    user_id = _target_user_id(league)
    data = weekly_history(league.id, user_id, viewer_id=current_user.id)
    data["user_id"] = user_id
    return data


@bp.route("/leagues/<int:league_id>/teams-remaining")
@login_required
def remaining_teams(league_id):
    league = _member_league(league_id)
    user_id = _target_user_id(league)
    return jsonify(
        {
            "user_id": user_id,
            "teams": teams_remaining(league.id, user_id, viewer_id=current_user.id),
        }
    )
