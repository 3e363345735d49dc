"""
Cache utilities for Pick Two
Provides the JSON route cache and league-scoped invalidation
"""

import functools

from flask import current_app, jsonify, request
from flask_login import current_user

from picktwo import cache


def make_cache_key(*args, **kwargs):
    """Generate a cache key from request path, query string, viewer and arguments"""
    path = request.path
    query = "_".join(f"{k}_{v}" for k, v in sorted(request.args.items()))
    viewer = current_user.get_id() if current_user.is_authenticated else "anon"
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{path}_{query}_{viewer}_{args_str}_{kwargs_str}".replace("/", "_")


def _league_version_key(league_id):
    return f"league_version_{league_id}"


def get_league_version(league_id):
    return cache.get(_league_version_key(league_id)) or 0


def cached_route(timeout=60, key_prefix="view"):
    """
    Decorator for caching JSON route payloads

    The wrapped view returns a JSON-serializable payload; the decorator caches
    the payload and wraps it with ``jsonify``. Views taking a ``league_id``
    are keyed on that league's cache version so invalidation drops them all.

    Args:
        timeout: Cache timeout in seconds
        key_prefix: Prefix for cache key
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"
            if "league_id" in kwargs:
                cache_key = f"{cache_key}_v{get_league_version(kwargs['league_id'])}"

            payload = cache.get(cache_key)
            if payload is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return jsonify(payload)

            payload = f(*args, **kwargs)
            cache.set(cache_key, payload, timeout=timeout)
            current_app.logger.debug(f"Cache set for key: {cache_key}")

            return jsonify(payload)

        return wrapped

    return decorator


def invalidate_league_cache(league_id):
    """Drop every cached payload of one league"""
    key = _league_version_key(league_id)
    cache.set(key, get_league_version(league_id) + 1, timeout=0)


def invalidate_all_cache(reason="manual"):
    """Clear the whole cache, e.g. after a scoring run touched every league"""
    try:
        cache.clear()
        current_app.logger.info(f"Cache cleared ({reason})")
    except Exception as e:
        current_app.logger.error(f"Failed to clear cache: {e}")
