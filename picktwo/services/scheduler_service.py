"""
Pick Two Background Scheduler Service

Runs the periodic jobs with APScheduler: game refresh from the feed inside the
polling window, kickoff locking and score persistence.
"""

import atexit
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from picktwo import db
from picktwo.models import Game
from picktwo.services.pick_ledger import get_current_season, lock_started_games
from picktwo.utils.cache_utils import invalidate_all_cache
from picktwo.utils.data_sync import GameFeedSync
from picktwo.utils.scoring import persist_final_weeks

logger = logging.getLogger(__name__)

JOB_REFRESH_GAMES = "refresh_games"
JOB_LOCK_STARTED_GAMES = "lock_started_games"
JOB_PERSIST_SCORES = "persist_scores"
JOBS = (JOB_REFRESH_GAMES, JOB_LOCK_STARTED_GAMES, JOB_PERSIST_SCORES)


def _empty_stats():
    return {
        "last_run": None,
        "total_runs": 0,
        "successful_runs": 0,
        "failed_runs": 0,
        "skipped_runs": 0,
        "last_error": None,
        "last_result": None,
    }


class SchedulerService:
    """Manages the background jobs that keep games and scores current"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.job_stats = {job: _empty_stats() for job in JOBS}

        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Scheduler started successfully")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Scheduler stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        config = self.app.config

        self.scheduler.add_job(
            func=self._refresh_games,
            trigger=IntervalTrigger(minutes=config.get("GAME_SYNC_INTERVAL_MINUTES", 10)),
            id=JOB_REFRESH_GAMES,
            name="Refresh Games From Feed",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )

        self.scheduler.add_job(
            func=self._lock_started_games,
            trigger=IntervalTrigger(minutes=1),
            id=JOB_LOCK_STARTED_GAMES,
            name="Lock Started Games",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
        )

        self.scheduler.add_job(
            func=self._persist_scores,
            trigger=IntervalTrigger(minutes=config.get("SCORE_INTERVAL_MINUTES", 5)),
            id=JOB_PERSIST_SCORES,
            name="Persist Scores For Final Weeks",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )

        logger.info("Core scheduled jobs added")

    def in_sync_window(self, now=None):
        """True when the UTC hour is inside the feed polling window"""
        now = now or datetime.now(timezone.utc)
        start = self.app.config.get("SYNC_WINDOW_START_HOUR", 10)
        end = self.app.config.get("SYNC_WINDOW_END_HOUR", 23)
        return start <= now.hour <= end

    def _run_job(self, job_id, func):
        """Run one job inside an app context with commit/rollback and stats"""
        with self.app.app_context():
            try:
                result = func()
                db.session.commit()
                self._update_stats(job_id, True, result)
                return result

            except Exception as e:
                db.session.rollback()
                self._update_stats(job_id, False, error=e)
                logger.error(f"Error in {job_id}: {e}", exc_info=True)
                return None

    def _refresh_games(self, force=False):
        if not force and not self.in_sync_window():
            self.job_stats[JOB_REFRESH_GAMES]["skipped_runs"] += 1
            return None

        def refresh():
            season = get_current_season()
            finalized = GameFeedSync().sync_games(season_year=season.year)

            scored = 0
            if finalized:
                weeks = sorted(
                    {
                        row[0]
                        for row in db.session.query(Game.week)
                        .filter(Game.id.in_(finalized))
                        .all()
                    }
                )
                scored = persist_final_weeks(season.id, weeks=weeks, commit=False)
                invalidate_all_cache("games finalized")
                logger.info(f"{len(finalized)} game(s) finalized; scored weeks {weeks}")

            return {"finalized_games": len(finalized), "scores_written": scored}

        return self._run_job(JOB_REFRESH_GAMES, refresh)

    def _lock_started_games(self):
        return self._run_job(
            JOB_LOCK_STARTED_GAMES, lambda: {"locked_games": lock_started_games(commit=False)}
        )

    def _persist_scores(self):
        def persist():
            season = get_current_season()
            written = persist_final_weeks(season.id, commit=False)
            if written:
                invalidate_all_cache("scores persisted")
            return {"scores_written": written}

        return self._run_job(JOB_PERSIST_SCORES, persist)

    def _update_stats(self, job_id, success, result=None, error=None):
        stats = self.job_stats[job_id]
        stats["last_run"] = datetime.now(timezone.utc)
        stats["total_runs"] += 1

        if success:
            stats["successful_runs"] += 1
            stats["last_error"] = None
            stats["last_result"] = result
        else:
            stats["failed_runs"] += 1
            stats["last_error"] = str(error)

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler and self.is_running:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = {}
        for job_id, job_stats in self.job_stats.items():
            stats[job_id] = dict(job_stats)
            if job_stats["last_run"]:
                stats[job_id]["last_run"] = job_stats["last_run"].isoformat()

        return {"is_running": self.is_running, "jobs": jobs, "stats": stats}

    def force_run(self, job_id):
        """
        Run a job synchronously, ignoring the polling window

        Returns:
            tuple: (success, result or error message)
        """
        if job_id == JOB_REFRESH_GAMES:
            result = self._refresh_games(force=True)
        elif job_id == JOB_LOCK_STARTED_GAMES:
            result = self._lock_started_games()
        elif job_id == JOB_PERSIST_SCORES:
            result = self._persist_scores()
        else:
            raise ValueError(f"Unknown job: {job_id}")

        last_error = self.job_stats[job_id]["last_error"]
        if last_error:
            return False, f"{job_id} failed: {last_error}"
        return True, result


# Global scheduler instance
scheduler_service = SchedulerService()
