"""
Error taxonomy for the recommendation engine.

Every error carries a stable ``code`` so transport layers can tell
"no recommendations found" apart from a system failure.
"""


class RecommendationError(Exception):
    """Base class for all engine errors."""

    code = "RECOMMENDATION_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"code": self.code, "message": self.message}


class ConfigError(RecommendationError):
    """Feature store empty or malformed at startup."""

    code = "CONFIG_ERROR"


class ValidationError(RecommendationError):
    """Caller input is invalid; the request is rejected with no partial result."""

    code = "VALIDATION_ERROR"


class NotFoundError(RecommendationError):
    code = "NOT_FOUND"


class NoMatchError(RecommendationError):
    """Scoring succeeded but no candidate survived filtering."""

    code = "NO_MATCH"


class CollaboratorError(RecommendationError):
    """A downstream lookup failed."""

    code = "COLLABORATOR_ERROR"


class InternalError(RecommendationError):
    """An engine invariant was violated."""

    code = "INTERNAL_ERROR"
