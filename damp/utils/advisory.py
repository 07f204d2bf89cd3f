"""
Best-effort side effects.

Hosts-file edits, reverse proxy syncs and post-install hooks run through
run_advisory(): the outcome is always logged and returned as an
AdvisoryResult, and it never changes the result of the primary operation.
"""

import logging
from typing import Any, Awaitable, Callable, Union

from damp.models.result import AdvisoryResult, OperationResult

AdvisoryAction = Callable[[], Awaitable[Any]]


async def run_advisory(
    name: str,
    action: AdvisoryAction,
    logger: Union[logging.Logger, logging.LoggerAdapter],
) -> AdvisoryResult:
    """
    Run a best-effort action.

    An action may signal failure by raising, or by returning an
    OperationResult / AdvisoryResult with success=False.
    """
    try:
        outcome = await action()
    except Exception as e:
        logger.warning(f"{name} failed (non-fatal): {e}")
        return AdvisoryResult(name=name, success=False, error=str(e))

    if isinstance(outcome, (OperationResult, AdvisoryResult)) and not outcome.success:
        logger.warning(f"{name} failed (non-fatal): {outcome.error}")
        return AdvisoryResult(name=name, success=False, error=outcome.error)

    logger.debug(f"{name} succeeded")
    return AdvisoryResult(name=name, success=True)
