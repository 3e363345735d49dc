from datetime import timedelta

import pytest

from picktwo import create_app
from picktwo import db as _db
from picktwo.models import Game, GameStatus, League, Season, Team, User
from picktwo.utils.team_seed import seed_teams
from tests.helpers import NOW, PASSWORD


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def season(db):
    season = Season.create_season(2025)
    db.session.flush()
    season.activate()
    db.session.commit()
    return season


@pytest.fixture
def teams(db):
    """All 32 teams keyed by code"""
    seed_teams()
    db.session.commit()
    return {team.code: team for team in Team.query.all()}


@pytest.fixture
def make_user(db):
    def factory(username, display_name=None):
        user = User(username=username, email=f"{username}@example.com")
        user.set_display_name(display_name)
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user

    return factory


@pytest.fixture
def make_league(db):
    def factory(owner, season, members=(), **kwargs):
        league = League.create(kwargs.pop("name", "Sunday Crew"), owner, season, **kwargs)
        for member in members:
            league.add_member(member)
        db.session.commit()
        return league

    return factory


@pytest.fixture
def make_game(db):
    counter = {"next": 1}

    def factory(season, week, home, away, kickoff=None, status=GameStatus.SCHEDULED, winner=None):
        game = Game(
            external_id=f"ext-{counter['next']}",
            season_id=season.id,
            week=week,
            home_team_id=home.id,
            away_team_id=away.id,
            kickoff_ts=kickoff or NOW + timedelta(days=1),
            status=status,
            winner_team_id=winner.id if winner else None,
        )
        counter["next"] += 1
        db.session.add(game)
        db.session.commit()
        return game

    return factory


@pytest.fixture
def alice(make_user):
    return make_user("alice", "Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob", "Bob")


@pytest.fixture
def league(make_league, alice, bob, season):
    return make_league(alice, season, members=[bob])

