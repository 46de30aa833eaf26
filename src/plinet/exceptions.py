"""
Exception types raised by plinet.

All of them derive from ``ValueError`` so callers that already guard
connectivity calls with ``except ValueError`` keep working.
"""


class ConnectivityError(ValueError):
    """Base class for invalid input to a connectivity computation."""


class EmptyInputError(ConnectivityError):
    """Raised by array-level functions when no trials were supplied."""


class ShapeMismatchError(ConnectivityError):
    """Raised when trial matrices, vertices or spectra have inconsistent shapes."""


class InsufficientTrialsError(ConnectivityError):
    """Raised when a bias-corrected estimate needs more trials than were given."""

    def __init__(self, n_trials: int, required: int = 2):
        self.n_trials = n_trials
        self.required = required
        super().__init__(f"insufficient trials: need >= {required}, got {n_trials}")
