"""
Quiz Error Taxonomy

Exceptions raised by the catalog, the question/recommendation adapters and the
adaptive engine. Each carries the HTTP status the backend answers with.
"""


class QuizError(Exception):
    """Base class for all adaptive quiz errors."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class InvalidLevel(QuizError):
    """Bloom's level ordinal must be an integer between 1 and 6."""
    status_code = 422


class InvalidPhase(QuizError):
    """Operation is not valid in the current session phase."""
    status_code = 409


class NoSelection(QuizError):
    """Select an answer before submitting."""
    status_code = 400


class InvalidOption(QuizError):
    """Selected option does not exist on the current question."""
    status_code = 400


class MalformedResponse(QuizError):
    """The AI service returned an incomplete answer. Please try again."""
    status_code = 502


class UpstreamFailure(QuizError):
    """The AI service request failed."""
    status_code = 502


class UpstreamUnavailable(UpstreamFailure):
    """The AI service could not be reached. Please try again."""
    status_code = 503


class UpstreamError(UpstreamFailure):
    """The AI service returned an error. Please try again."""
    status_code = 502


class RateLimited(UpstreamFailure):
    """Rate limit exceeded. Please try again later."""
    status_code = 429


class QuotaExceeded(UpstreamFailure):
    """AI usage limit reached. Please add credits."""
    status_code = 402
