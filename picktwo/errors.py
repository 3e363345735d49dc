"""
Error types raised by the pick/scoring engine and the league layer.

Every error carries a stable ``code`` that API clients can switch on and the
HTTP status the global error handler renders it with.
"""


class PickemError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message=None, **details):
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        data = {"error": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class SeasonNotResolved(PickemError):
    """No active season could be resolved"""

    code = "season_not_resolved"
    status_code = 503


class NotFound(PickemError):
    """Referenced record does not exist"""

    code = "not_found"
    status_code = 404


class Forbidden(PickemError):
    """Not allowed to perform this action"""

    code = "forbidden"
    status_code = 403


class PickValidationError(PickemError):
    """Base for user-correctable pick submission failures"""

    code = "invalid_pick"
    status_code = 409


class InvalidTeamForGame(PickValidationError):
    """Team is not playing in a game this week"""

    code = "invalid_team_for_game"


class TeamAlreadyUsedThisSeason(PickValidationError):
    """Team has already been picked this season"""

    code = "team_already_used"


class ByeCapExceeded(PickValidationError):
    """All byes for the season have been used"""

    code = "bye_cap_exceeded"


class NoEditableCapacity(PickValidationError):
    """No editable pick slots remain this week"""

    code = "no_editable_capacity"


class ByeConflictsWithLockedPick(PickValidationError):
    """A bye cannot be used once a team pick for the week has locked"""

    code = "bye_conflicts_with_locked_pick"


class InvalidSelection(PickemError):
    """Submitted selection is malformed"""

    code = "invalid_selection"


class InvalidPointValues(PickemError):
    """Team point values are invalid"""

    code = "invalid_point_values"


class AlreadyMember(PickemError):
    """User is already a member of this league"""

    code = "already_member"
    status_code = 409


class FormValidationError(PickemError):
    """Request payload failed validation"""

    code = "invalid_request"


class InvalidCredentials(PickemError):
    """Invalid username or password"""

    code = "invalid_credentials"
    status_code = 401
