"""
Undo stack for multi-step operations.

Each step that creates something pushes its compensating action. On failure
the stack is unwound in reverse order; a compensation that fails is logged as
a RollbackError and the unwind continues, so the caller can always report the
original error.

Usage:
    undo = UndoStack("create project my-site")
    await docker.create_volume(name)
    undo.push("remove volume", lambda: docker.remove_volume(name))
    ...
    except Exception:
        await undo.unwind()
        raise
"""

from typing import Awaitable, Callable, List, Tuple

from damp.errors import RollbackError
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="Rollback")

Compensation = Callable[[], Awaitable[object]]


class UndoStack:
    """Ordered list of compensating actions, executed last-in first-out."""

    def __init__(self, operation: str):
        self.operation = operation
        self._actions: List[Tuple[str, Compensation]] = []

    def push(self, step: str, action: Compensation) -> None:
        self._actions.append((step, action))

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def steps(self) -> List[str]:
        return [step for step, _ in self._actions]

    def commit(self) -> None:
        """Forget all compensations once the operation has succeeded."""
        self._actions.clear()

    async def unwind(self) -> List[RollbackError]:
        """Run every compensation in reverse. Never raises."""
        failures: List[RollbackError] = []
        if self._actions:
            logger.info(f"Rolling back {self.operation} ({len(self._actions)} steps)")

        while self._actions:
            step, action = self._actions.pop()
            try:
                await action()
                logger.info(f"{self.operation}: undid '{step}'")
            except Exception as e:
                error = RollbackError(step, e)
                logger.warning(f"{self.operation}: {error}")
                failures.append(error)

        return failures
