import logging

from flask import jsonify
from flask_login import current_user, login_required, login_user, logout_user

from picktwo import db, limiter, login_manager
from picktwo.errors import Forbidden, InvalidCredentials
from picktwo.forms import validate_or_raise
from picktwo.forms.auth import LoginForm, RegistrationForm
from picktwo.models import User
from picktwo.routes.auth import bp

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@bp.route("/register", methods=["POST"])
@limiter.limit("5 per hour")
def register():
    form = validate_or_raise(RegistrationForm())

    user = User(username=form.username.data, email=form.email.data.lower())
    user.set_display_name(form.display_name.data)
    user.set_password(form.password.data)

    db.session.add(user)
    db.session.commit()

    login_user(user)
    logger.info(f"User {user.id} registered")
    return jsonify(user.to_dict()), 201


@bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    form = validate_or_raise(LoginForm())

    user = User.query.filter_by(username=form.username.data).first()
    if not user or not user.check_password(form.password.data):
        logger.info(f"Failed login for username {form.username.data!r}")
        raise InvalidCredentials()

    if not user.is_active:
        raise Forbidden("Your account has been deactivated")

    login_user(user, remember=form.remember_me.data)
    user.update_last_login()
    db.session.commit()

    return jsonify(user.to_dict())


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route("/me")
@login_required
def me():
    data = current_user.to_dict()
    data["email"] = current_user.email
    data["leagues"] = [
        {"id": league.id, "name": league.name} for league in current_user.get_leagues()
    ]
    return jsonify(data)
