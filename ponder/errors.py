"""Exceptions raised inside the ponder package.

Most failures in the thinking loop are recovered where they happen (an
evaluator that times out falls back to a heuristic, an unavailable
repository yields empty results). These exceptions mark the few conditions
a caller has to handle itself.
"""


class PonderError(Exception):
    """Base class for ponder errors."""


class EvaluatorUnavailableError(PonderError):
    """An operation needs the external evaluator but none is configured."""


class PhaseFailedError(PonderError):
    """A consolidation phase could not produce a result."""
