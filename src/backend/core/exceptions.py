"""
Domain exceptions.

Every error the engine raises derives from TallyError and carries a stable
machine-readable ``code`` plus the HTTP status the API renders it with.
"""


class TallyError(Exception):
    """Base exception for the voting and survey engine."""

    code = "server_error"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotEligibleError(TallyError):
    """Participant may not vote or respond right now."""

    code = "not_eligible"
    status_code = 403
    default_message = "Participation is not allowed at this time"


class AlreadyVotedError(NotEligibleError):
    """Participant has used up their ballots for this debate."""

    code = "already_voted"
    status_code = 409
    default_message = "You have already voted"


class SurveyClosedError(NotEligibleError):
    """Survey is not accepting responses."""

    code = "survey_closed"
    default_message = "This survey is not accepting responses"


class AlreadyRespondedError(TallyError):
    """Participant already has a response on record for this survey."""

    code = "already_responded"
    status_code = 409
    default_message = "You have already responded to this survey"


class InvalidSubmissionError(TallyError):
    """Base for malformed votes and responses."""

    code = "invalid_submission"
    status_code = 400
    default_message = "Invalid submission"


class InvalidChoiceCountError(InvalidSubmissionError):
    code = "invalid_choice_count"
    default_message = "Invalid number of options selected"


class InvalidOptionError(InvalidSubmissionError):
    code = "invalid_option"
    default_message = "Invalid option"


class InvalidAnswersError(InvalidSubmissionError):
    code = "invalid_answers"
    default_message = "Invalid answers"


class NotFoundError(TallyError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class UnauthorizedError(TallyError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


class SurveyLockedError(TallyError):
    """Survey questions cannot change once responses exist."""

    code = "survey_locked"
    status_code = 409
    default_message = "This survey can no longer be edited"


class ServerError(TallyError):
    pass


class ConcurrencyConflictError(ServerError):
    """Optimistic write kept losing to concurrent writers."""

    code = "write_conflict"
    default_message = "The item is busy, please retry"
