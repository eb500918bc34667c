"""
Error taxonomy for the transition pipeline.

Routes translate these into HTTP status codes:
  NotFoundError -> 404, StageConflictError -> 409,
  ParseError / UpstreamAPIError -> 500 (stage name in the detail).
"""


class TransitionPipelineError(Exception):
    """Base class for all pipeline errors."""


class UpstreamAPIError(TransitionPipelineError):
    """The search service could not be reached, rejected the call, or
    answered without the expected choices/message envelope."""

    stage = "upstream"


class ParseError(TransitionPipelineError):
    """The search service answered but no parse strategy produced usable content."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"{stage}: {message}")


class AnalysisParseError(ParseError):
    """Skill gap analysis returned content that is neither a JSON array nor JSON."""

    def __init__(self, message: str):
        super().__init__("skill_gap_analysis", message)


class NotFoundError(TransitionPipelineError):
    """Unknown transition, plan or job identifier."""


class StageConflictError(TransitionPipelineError):
    """A stage operation was requested out of order or with a stale stage version."""

    def __init__(self, message: str, current_status: str = "", current_version: int = 0):
        self.current_status = current_status
        self.current_version = current_version
        super().__init__(message)
