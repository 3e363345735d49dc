#!/usr/bin/env python3
"""
Pick Two Management CLI

Command-line management for seasons, teams, the game feed, scoring and the
background jobs.
"""

import logging
import os

# The CLI runs jobs on demand; never start the background scheduler here
os.environ.setdefault("SCHEDULER_ENABLED", "False")

import click  # noqa: E402
from flask import current_app  # noqa: E402
from flask.cli import with_appcontext  # noqa: E402
from flask_migrate import migrate, upgrade  # noqa: E402
from sqlalchemy.exc import IntegrityError, SQLAlchemyError  # noqa: E402

from picktwo import create_app, db  # noqa: E402
from picktwo.errors import PickemError  # noqa: E402
from picktwo.models import Game, GameStatus, League, Season, Team, User  # noqa: E402
from picktwo.services.pick_ledger import get_current_season  # noqa: E402
from picktwo.services.scheduler_service import JOBS, SchedulerService  # noqa: E402
from picktwo.utils.data_sync import GameFeedSync  # noqa: E402
from picktwo.utils.pick_rules import MAX_POINTS_VALUE, MIN_POINTS_VALUE  # noqa: E402
from picktwo.utils.scoring import compute_live, get_score, persist_final_weeks  # noqa: E402
from picktwo.utils.standings import compute_standings  # noqa: E402
from picktwo.utils.team_seed import seed_teams  # noqa: E402

app = create_app()


@click.group()
def cli():
    """Pick Two Management CLI"""
    pass


# Season Management Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command()
@click.argument("year", type=int)
@click.option("--activate", is_flag=True, help="Activate this season")
@with_appcontext
def create(year, activate):
    """Create a new season"""
    try:
        if Season.query.filter_by(year=year).first():
            click.echo(f"Season {year} already exists!")
            return

        new_season = Season.create_season(year)
        db.session.flush()
        if activate:
            new_season.activate()

        db.session.commit()
        click.echo(f"✅ Created season {year}")
        if activate:
            click.echo(f"✅ Activated season {year}")

    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ Season {year} already exists!")
        logging.error(f"Season creation failed - integrity error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating season: {str(e)}")
        logging.error(f"Season creation failed - SQL error: {e}")


@season.command()
@click.argument("year", type=int)
@with_appcontext
def activate(year):
    """Activate a season"""
    try:
        target = Season.query.filter_by(year=year).first()
        if not target:
            click.echo(f"❌ Season {year} not found!")
            return

        target.activate()
        db.session.commit()
        click.echo(f"✅ Activated season {year}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error activating season: {str(e)}")
        logging.error(f"Season activation failed - SQL error: {e}")


@season.command("list")
@with_appcontext
def list_seasons():
    """List all seasons"""
    seasons = Season.query.order_by(Season.year.desc()).all()

    if not seasons:
        click.echo("No seasons found.")
        return

    click.echo("Seasons:")
    for s in seasons:
        status = "🟢 ACTIVE" if s.is_active else "⚪ Inactive"
        final_weeks = s.get_weeks_with_final_games()
        click.echo(f"  {s.year} (id {s.id}): {status} - {len(final_weeks)} week(s) with results")


# Team Commands
@cli.group()
def team():
    """Team commands"""
    pass


@team.command()
@with_appcontext
def seed():
    """Create the 32 NFL teams"""
    created = seed_teams()
    db.session.commit()
    click.echo(f"✅ Seeded {created} team(s)")


@team.command("set-default")
@click.argument("code")
@click.argument("points", type=click.IntRange(MIN_POINTS_VALUE, MAX_POINTS_VALUE))
@with_appcontext
def set_default(code, points):
    """Set a team's default point value"""
    target = Team.get_by_code(code)
    if not target:
        click.echo(f"❌ Team {code} not found!")
        return

    target.default_points_value = points
    db.session.commit()
    click.echo(f"✅ {target.code} default value set to {points}")


@team.command("list")
@with_appcontext
def list_teams():
    """List teams with their default values"""
    for t in Team.query.order_by(Team.default_points_value.desc(), Team.code).all():
        click.echo(f"  {t.code:<4} {t.default_points_value:>2}  {t.display_name}")


# Data Sync Commands
@cli.group()
def sync():
    """Data synchronization commands"""
    pass


@sync.command()
@click.option("--year", type=int, help="Season year (default: current season)")
@with_appcontext
def games(year):
    """Fetch games from the feed and upsert them"""
    try:
        if year is None:
            year = get_current_season().year

        click.echo(f"Syncing games for {year} season...")
        feed = GameFeedSync()
        finalized = feed.sync_games(season_year=year)

        stats = feed.last_stats
        click.echo(
            f"✅ {stats.get('created', 0)} created, {stats.get('updated', 0)} updated, "
            f"{stats.get('skipped', 0)} skipped, {len(finalized)} newly final"
        )

    except Exception as e:
        click.echo(f"❌ Error syncing games: {str(e)}")


# Scoring Commands
@cli.group()
def score():
    """Scoring commands"""
    pass


@score.command()
@click.option("--week", "weeks", type=int, multiple=True, help="Week(s) to persist")
@with_appcontext
def persist(weeks):
    """Persist scores for weeks with final games"""
    try:
        current = get_current_season()
        written = persist_final_weeks(current.id, weeks=list(weeks) or None)
        click.echo(f"✅ Wrote {written} score row(s) for season {current.year}")

    except PickemError as e:
        click.echo(f"❌ {e.message}")


@score.command()
@click.argument("league_id", type=int)
@click.argument("user_id", type=int)
@click.argument("week", type=int)
@with_appcontext
def show(league_id, user_id, week):
    """Show a member's week score (persisted and live)"""
    try:
        click.echo(f"Score: {get_score(league_id, user_id, week)}")
        click.echo(f"Live:  {compute_live(league_id, user_id, week)}")
    except PickemError as e:
        click.echo(f"❌ {e.message}")


@cli.command()
@click.argument("league_id", type=int)
@with_appcontext
def standings(league_id):
    """Print a league's standings"""
    try:
        league = League.get_or_404(league_id)
        click.echo(f"Standings for {league.name}:")
        for row in compute_standings(league_id):
            click.echo(
                f"  {row['rank']:>3}. {row['display_name']:<20} {row['total_points']:>4} pts "
                f"({row['wins']}-{row['losses']}, {row['byes_used']} byes)"
            )
    except PickemError as e:
        click.echo(f"❌ {e.message}")


# Scheduler Commands
@cli.group()
def scheduler():
    """Background job commands"""
    pass


@scheduler.command()
@click.argument("job", type=click.Choice(JOBS))
@with_appcontext
def run(job):
    """Run one background job now"""
    service = SchedulerService()
    service.app = current_app._get_current_object()

    success, result = service.force_run(job)
    if success:
        click.echo(f"✅ {job}: {result}")
    else:
        click.echo(f"❌ {result}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 Pick Two Status")
    click.echo("=" * 30)

    try:
        current = get_current_season()
        click.echo(f"✅ Current Season: {current.year}")
    except PickemError:
        current = None
        click.echo("⚠️  Current Season: None active")

    click.echo(f"👥 Active Users: {User.query.filter_by(is_active=True).count()}")
    click.echo(f"🏆 Leagues: {League.query.count()}")

    if current:
        game_count = Game.query.filter_by(season_id=current.id).count()
        final_count = Game.query.filter_by(
            season_id=current.id, status=GameStatus.FINAL
        ).count()
        click.echo(f"🏈 Games: {final_count}/{game_count} final")


if __name__ == "__main__":
    with app.app_context():
        cli()
