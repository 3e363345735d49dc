"""
Pick Two game rules.

Pure functions and value types shared by the week-state display projection and
the authoritative submission validator in ``picktwo.services.pick_ledger``.
Nothing in this module touches the database.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from picktwo.errors import InvalidSelection

PICKS_PER_WEEK = 2
MAX_BYES = 4
REGULAR_SEASON_WEEKS = 18
MIN_POINTS_VALUE = 1
MAX_POINTS_VALUE = 32
SLOT_NUMBERS = (1, 2)


# Requested selections


@dataclass(frozen=True)
class ByeSelection:
    """Use a bye for the week"""

    mode = "bye"


@dataclass(frozen=True)
class TeamSelection:
    """Pick up to two teams for the week"""

    team_ids: Tuple[int, ...] = ()
    mode = "teams"

    def unique_team_ids(self):
        """Requested ids with duplicates removed, order preserved"""
        seen = []
        for team_id in self.team_ids:
            if team_id not in seen:
                seen.append(team_id)
        return seen


Selection = Union[ByeSelection, TeamSelection]


def parse_selection(mode, team_ids=None):
    """Build a selection from raw request values"""
    if mode == ByeSelection.mode:
        if team_ids:
            raise InvalidSelection("A bye cannot be combined with team picks")
        return ByeSelection()
    if mode == TeamSelection.mode:
        try:
            ids = tuple(int(team_id) for team_id in (team_ids or []))
        except (TypeError, ValueError):
            raise InvalidSelection("team_ids must be integers")
        return TeamSelection(team_ids=ids)
    raise InvalidSelection(f"Unknown selection mode: {mode!r}")


# Stored picks


@dataclass(frozen=True)
class ByeMarker:
    pick_id: Optional[int] = None

    is_bye = True


@dataclass(frozen=True)
class TeamPick:
    team_id: int
    game_id: int
    slot: int
    pick_id: Optional[int] = None

    is_bye = False


StoredPick = Union[ByeMarker, TeamPick]


@dataclass
class WeekState:
    picks: List[StoredPick] = field(default_factory=list)
    locked_picks: List[TeamPick] = field(default_factory=list)
    bye_present: bool = False
    editable_capacity: int = PICKS_PER_WEEK

    @property
    def locked_team_ids(self):
        return {pick.team_id for pick in self.locked_picks}

    @property
    def locked_slots(self):
        return {pick.slot for pick in self.locked_picks}

    def to_dict(self):
        return {
            "picks": [selection_to_dict(pick) for pick in self.picks],
            "locked_picks": [selection_to_dict(pick) for pick in self.locked_picks],
            "bye_present": self.bye_present,
            "editable_capacity": self.editable_capacity,
        }


def selection_to_dict(pick):
    if pick.is_bye:
        return {"id": pick.pick_id, "is_bye": True}
    return {
        "id": pick.pick_id,
        "is_bye": False,
        "team_id": pick.team_id,
        "game_id": pick.game_id,
        "slot_number": pick.slot,
    }


def editable_capacity(locked_count, bye_present):
    return max(0, PICKS_PER_WEEK - locked_count - (1 if bye_present else 0))


def project_week_state(picks: Sequence[StoredPick], locked_game_ids, known_game_ids):
    """
    Project a member's stored picks for one week into its editable state.

    Args:
        picks: the week's stored picks (ByeMarker / TeamPick)
        locked_game_ids: ids of games whose kickoff has passed
        known_game_ids: ids of games that exist; a pick bound to an unknown
            game is treated as locked so it can never be silently dropped

    Returns:
        WeekState
    """
    locked = [
        pick
        for pick in picks
        if not pick.is_bye
        and (pick.game_id in locked_game_ids or pick.game_id not in known_game_ids)
    ]
    bye_present = any(pick.is_bye for pick in picks)
    return WeekState(
        picks=list(picks),
        locked_picks=locked,
        bye_present=bye_present,
        editable_capacity=editable_capacity(len(locked), bye_present),
    )


def free_slots(locked_slots):
    """Slot numbers not held by a locked pick, lowest first"""
    return [slot for slot in SLOT_NUMBERS if slot not in locked_slots]


def dense_rank(rows: List[Dict], key="total_points", tiebreak="user_id"):
    """
    Sort rows by ``key`` descending (ties by ``tiebreak`` ascending) and attach a
    dense ``rank``: equal totals share a rank and the next distinct total gets
    the next integer.
    """
    ordered = sorted(rows, key=lambda row: (-row[key], row[tiebreak]))
    rank = 0
    previous = None
    for row in ordered:
        if row[key] != previous:
            rank += 1
            previous = row[key]
        row["rank"] = rank
    return ordered
