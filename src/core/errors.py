"""Error taxonomy for the recommendation engine.

Every failure is local to one request. A scheduler that finds no slot
returns ``ScheduleProposal(conflict=True)`` instead of raising.
"""

from src.core.schemas import ScoredCandidate


class EngineError(Exception):
    """Base class for engine errors."""


class InputError(EngineError, ValueError):
    """Malformed request input: rejected synchronously, never retried."""


class UpstreamUnavailable(EngineError):
    """A collaborator failed or timed out.

    ``last_known`` holds the last ranked list served to the user (possibly
    empty) so callers can degrade instead of showing nothing.
    """

    def __init__(self, message: str, last_known: list[ScoredCandidate] | None = None) -> None:
        super().__init__(message)
        self.last_known: list[ScoredCandidate] = list(last_known or [])


class StaleRefreshState(EngineError):
    """A concurrent refresh committed first; the caller lost the race."""
