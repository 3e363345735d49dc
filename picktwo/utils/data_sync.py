import logging
import re
import time
from datetime import datetime, timezone
from functools import wraps

import requests
from flask import current_app, has_app_context

from picktwo import db
from picktwo.models import Game, GameStatus, Season, Team
from picktwo.utils.pick_rules import REGULAR_SEASON_WEEKS
from picktwo.utils.timezone_utils import parse_iso_timestamp

logger = logging.getLogger(__name__)

STATUS_MAP = {
    GameStatus.SCHEDULED: {"NS", "TBD", "PST", "NOT STARTED", "SCHEDULED"},
    GameStatus.LIVE: {"1H", "2H", "OT", "LIVE", "INP", "HT", "Q1", "Q2", "Q3", "Q4"},
    GameStatus.FINAL: {"FT", "AOT", "ENDED", "FINAL", "FINISHED"},
}


def map_status(raw):
    """Map a feed status string to scheduled/live/final; unknown values are scheduled"""
    value = str(raw or "").strip().upper()
    for status, vocabulary in STATUS_MAP.items():
        if value in vocabulary:
            return status
    return GameStatus.SCHEDULED


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else None
                    retryable = status_code == 429 or (status_code or 0) >= 500
                    if not retryable or attempt == max_retries - 1:
                        raise

                    delay = base_delay * (backoff_factor**attempt)
                    if status_code == 429:
                        delay = float(e.response.headers.get("Retry-After", delay))
                    logger.warning(
                        f"Feed returned {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    time.sleep(delay)

                except requests.exceptions.RequestException as e:
                    if attempt == max_retries - 1:
                        raise
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    time.sleep(delay)

            raise requests.exceptions.RetryError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def _dig(data, *path):
    """Follow a key path through nested dicts; None when any step is missing"""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _parse_kickoff(raw):
    """Feed dates come as ISO strings or as ``{date, time, timestamp}`` objects"""
    if isinstance(raw, dict):
        if raw.get("timestamp"):
            return datetime.fromtimestamp(int(raw["timestamp"]), tz=timezone.utc)
        if raw.get("date"):
            return parse_iso_timestamp(f"{raw['date']}T{raw.get('time') or '00:00'}:00+00:00")
        return None
    return parse_iso_timestamp(raw)


def _parse_week(raw):
    if raw is None:
        return None
    if isinstance(raw, dict):
        raw = raw.get("number")
    digits = re.sub(r"\D", "", str(raw))
    return int(digits) if digits else None


def normalize_record(raw):
    """
    Flatten one feed record into
    ``{game_id, season_year, week, home_code, away_code, kickoff_ts, status, winner_code}``.

    Several provider shapes are accepted. Returns None when the id, season,
    teams or kickoff are missing.
    """
    game_id = _first(_dig(raw, "game", "id"), raw.get("id"), _dig(raw, "fixture", "id"))
    season_year = _first(
        raw.get("season"), _dig(raw, "league", "season"), _dig(raw, "league", "year")
    )
    week = _parse_week(
        _first(_dig(raw, "game", "week"), raw.get("week"), _dig(raw, "league", "round"))
    )
    # Pre and post season weeks restart at 1
    stage = _dig(raw, "game", "stage")
    if stage and "regular" not in str(stage).lower():
        week = None

    home_code = _first(_dig(raw, "teams", "home", "code"), _dig(raw, "teams", "home", "name"))
    away_code = _first(_dig(raw, "teams", "away", "code"), _dig(raw, "teams", "away", "name"))
    kickoff_ts = _parse_kickoff(
        _first(_dig(raw, "game", "date"), raw.get("date"), _dig(raw, "fixture", "date"))
    )

    status_raw = _first(
        _dig(raw, "game", "status", "short"),
        _dig(raw, "status", "short"),
        raw.get("status") if isinstance(raw.get("status"), str) else None,
        _dig(raw, "fixture", "status", "short"),
        _dig(raw, "fixture", "status", "long"),
    )

    winner_code = None
    home_winner = _first(_dig(raw, "scores", "home", "winner"), _dig(raw, "score", "home", "winner"))
    away_winner = _first(_dig(raw, "scores", "away", "winner"), _dig(raw, "score", "away", "winner"))
    home_points = _first(
        _dig(raw, "scores", "home", "total"),
        _dig(raw, "score", "home") if not isinstance(_dig(raw, "score", "home"), dict) else None,
        _dig(raw, "scores", "home", "points"),
    )
    away_points = _first(
        _dig(raw, "scores", "away", "total"),
        _dig(raw, "score", "away") if not isinstance(_dig(raw, "score", "away"), dict) else None,
        _dig(raw, "scores", "away", "points"),
    )

    if home_winner is True:
        winner_code = home_code
    elif away_winner is True:
        winner_code = away_code
    elif isinstance(home_points, (int, float)) and isinstance(away_points, (int, float)):
        if home_points > away_points:
            winner_code = home_code
        elif away_points > home_points:
            winner_code = away_code

    record = {
        "game_id": str(game_id) if game_id is not None else None,
        "season_year": int(season_year) if season_year else None,
        "week": week,
        "home_code": home_code or None,
        "away_code": away_code or None,
        "kickoff_ts": kickoff_ts,
        "status": map_status(status_raw),
        "winner_code": winner_code,
    }

    required = ("game_id", "season_year", "home_code", "away_code", "kickoff_ts")
    if not all(record[key] for key in required):
        return None
    return record


class GameFeedSync:
    """
    Pulls games from the external feed and upserts them into the Game table
    with rate limiting and retries
    """

    def __init__(self, api_url=None, api_key=None, league=None):
        config = current_app.config if has_app_context() else {}
        self.api_url = api_url or config.get("GAME_FEED_URL")
        self.api_key = api_key or config.get("GAME_FEED_API_KEY")
        self.league = league or config.get("GAME_FEED_LEAGUE")

        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "PickTwo/1.0"})
        if self.api_key:
            self.session.headers.update({"x-apisports-key": self.api_key})

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5
        self.max_requests_per_minute = 10
        self.request_timestamps = []

        self.last_stats = {}

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()
        response = self.session.get(self.api_url, params=params, timeout=30)
        response.raise_for_status()
        return response

    def fetch(self, season_year=None):
        """Fetch and normalize raw feed records"""
        if not self.api_url:
            raise RuntimeError("GAME_FEED_URL is not configured")

        params = {}
        if self.league:
            params["league"] = self.league
        if season_year:
            params["season"] = season_year

        data = self._make_api_request(params=params).json()
        raw_records = data.get("response") if isinstance(data, dict) else None
        if not isinstance(raw_records, list):
            logger.warning("Feed response has no record list")
            return []

        records = [record for record in map(normalize_record, raw_records) if record]
        dropped = len(raw_records) - len(records)
        if dropped:
            logger.info(f"Dropped {dropped} incomplete feed record(s)")
        return records

    def _team_lookup(self):
        lookup = {}
        for team in Team.query.all():
            lookup[team.code.upper()] = team
            lookup[team.display_name.upper()] = team
        return lookup

    def upsert_games(self, records):
        """
        Insert or update games keyed by ``external_id``.

        Records for unknown seasons or teams are skipped. A final game is never
        moved back to a non-final status. Caller commits.

        Returns:
            list: ids of games that became final
        """
        seasons = {season.year: season for season in Season.query.all()}
        teams = self._team_lookup()
        stats = {"created": 0, "updated": 0, "skipped": 0, "finalized": 0}
        became_final = []

        for record in records:
            season = seasons.get(record["season_year"])
            if season is None:
                logger.warning(
                    f"Skipping game {record['game_id']}: unknown season {record['season_year']}"
                )
                stats["skipped"] += 1
                continue

            home = teams.get(str(record["home_code"]).upper())
            away = teams.get(str(record["away_code"]).upper())
            if home is None or away is None:
                logger.warning(
                    f"Skipping game {record['game_id']}: unknown team "
                    f"{record['home_code'] if home is None else record['away_code']}"
                )
                stats["skipped"] += 1
                continue

            week = record["week"]
            if week is None or not 1 <= week <= REGULAR_SEASON_WEEKS:
                logger.debug(f"Skipping game {record['game_id']}: week {week} outside regular season")
                stats["skipped"] += 1
                continue

            game = Game.query.filter_by(external_id=record["game_id"]).first()
            if game is None:
                game = Game(external_id=record["game_id"], status=GameStatus.SCHEDULED)
                db.session.add(game)
                stats["created"] += 1
            elif game.is_final:
                continue
            else:
                stats["updated"] += 1

            game.season_id = season.id
            game.week = week
            game.home_team_id = home.id
            game.away_team_id = away.id
            game.kickoff_ts = record["kickoff_ts"]

            winner_team_id = None
            if record["winner_code"] is not None:
                winner_code = str(record["winner_code"]).upper()
                if winner_code in (home.code.upper(), home.display_name.upper()):
                    winner_team_id = home.id
                elif winner_code in (away.code.upper(), away.display_name.upper()):
                    winner_team_id = away.id

            game.apply_result(record["status"], winner_team_id)
            if game.is_final:
                became_final.append(game)

        db.session.flush()
        stats["finalized"] = len(became_final)
        self.last_stats = stats
        logger.info(
            f"Game upsert: {stats['created']} created, {stats['updated']} updated, "
            f"{stats['skipped']} skipped, {stats['finalized']} finalized"
        )
        return [game.id for game in became_final]

    def sync_games(self, season_year=None):
        """
        Fetch the feed and upsert its games in one transaction.

        Returns:
            list: ids of games that became final

        Raises:
            requests.RequestException on feed failures after retries
        """
        try:
            records = self.fetch(season_year)
            finalized = self.upsert_games(records)
            db.session.commit()
            return finalized
        except Exception as e:
            db.session.rollback()
            logger.error(f"Game sync failed: {e}")
            raise
