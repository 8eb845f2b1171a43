"""Exception hierarchy for goal and reflection workflows."""

from __future__ import annotations


class GoalTrackError(Exception):
    """Base class for goaltrack errors."""


class MissingBiometricsError(GoalTrackError, ValueError):
    """Required profile or body-weight inputs are missing."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required biometrics: {', '.join(missing)}")


class NoActiveGoalError(GoalTrackError):
    """An operation needs an active goal and there is none."""


class ReflectionSubmitError(GoalTrackError):
    """A reflection could not be committed."""


# Shown to the user for any failed submit; internal detail goes to the log
SUBMIT_ERROR_MESSAGE = "Something went wrong, please try again."
INVALID_WEIGHT_MESSAGE = "Enter a weight greater than zero."
