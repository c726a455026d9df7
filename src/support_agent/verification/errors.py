"""Errors raised inside the verification pipeline.

None of these ever reach the end user. The pipeline turns each one into
a safe reply and records it in the turn diagnostics.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VerificationError(Exception):
    """Base class for verification pipeline errors."""


class StageFailure(VerificationError):
    """A detector, fixer or enhancer raised or returned malformed data.

    The turn carries on without that stage's contribution.
    """

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage}: {detail}")


class VerificationFailure(VerificationError):
    """Confidence could not be computed, usually because of malformed input."""


class CrisisDetectionFailure(VerificationError):
    """Crisis keyword detection itself failed.

    Treated as "crisis present": the crisis check fails closed.
    """


def run_stage(
    name: str,
    fn: Callable[[], T],
    fallback: T,
    failures: list[StageFailure] | None = None,
) -> T:
    """Run one pipeline stage, returning ``fallback`` if it raises.

    Args:
        name: Stage name used in logs and diagnostics.
        fn: Zero-argument callable doing the stage's work.
        fallback: Value meaning "no change from this stage".
        failures: Optional list that collects a StageFailure per error.

    Returns:
        The stage result, or ``fallback`` on error.
    """
    try:
        return fn()
    except Exception as e:  # noqa: BLE001
        failure = StageFailure(name, f"{type(e).__name__}: {e}")
        logger.warning("Stage failed, skipping its contribution: %s", failure)
        if failures is not None:
            failures.append(failure)
        return fallback
