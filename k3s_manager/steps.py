"""Ordered, cancellable step execution shared by the orchestrators."""

from collections.abc import Callable
from dataclasses import dataclass

from k3s_manager.cancellation import CancellationToken
from k3s_manager.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Step:
    """A single named unit of work in a workflow.

    Attributes:
        name: Stable identifier, used in logs and tests
        description: Human readable progress message
        action: Callable performing the work
        cancellable: Whether a pending cancellation may stop the workflow
            before this step starts
    """

    name: str
    description: str
    action: Callable[[], None]
    cancellable: bool = True


class StepRunner:
    """Runs steps in order, stopping at the first failure.

    Cancellation is checked before each cancellable step; a step that has
    started is always allowed to finish. Nothing is rolled back.
    """

    def __init__(
        self,
        cancellation: CancellationToken | None = None,
        progress: Callable[[str], None] | None = None,
    ):
        self.cancellation = cancellation or CancellationToken()
        self.progress = progress

    def run(self, steps: list[Step]) -> list[str]:
        """Run ``steps`` and return the names of those that completed."""
        completed = []
        for step in steps:
            if step.cancellable:
                self.cancellation.raise_if_cancelled()
            elif self.cancellation.cancelled:
                logger.warning(f"Running {step.name} despite cancellation")

            logger.info(f"Step {step.name}: {step.description}")
            if self.progress:
                self.progress(step.description)

            try:
                step.action()
            except Exception:
                logger.error(f"Step {step.name} failed after {len(completed)} completed steps")
                raise

            completed.append(step.name)
        return completed
