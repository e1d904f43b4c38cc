"""Runner facade for nmt-harness components.

Re-exports the types needed to configure and drive a harness run.
"""

from nmt_runner.engine.coordinator import Coordinator
from nmt_runner.models.config import RunConfig
from nmt_runner.models.types import RunOutcome, TerminationReason

__all__ = ["Coordinator", "RunConfig", "RunOutcome", "TerminationReason"]
