from datetime import datetime, timezone

from picktwo.models import GameStatus

NOW = datetime(2025, 10, 5, 17, 0, tzinfo=timezone.utc)
PASSWORD = "Passw0rdX"


def finish(db, game, winner):
    """Mark a game final with a winner"""
    game.apply_result(GameStatus.FINAL, winner.id if winner else None)
    db.session.commit()
    return game


def login(client, username="alice", password=PASSWORD):
    return client.post("/auth/login", json={"username": username, "password": password})
