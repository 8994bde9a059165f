"""
Env reconciliation data models.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ReconcileState(str, Enum):
    """Steps of a recreate-with-new-env run."""

    CURRENT = "current"
    STOPPING = "stopping"
    REMOVING = "removing"
    CREATING = "creating"
    STARTING = "starting"
    DONE = "done"
    FAILED = "failed"


class EnvReconciliation(BaseModel):
    """
    Record of one reconciliation.

    ``failed_step`` names the step that was running when a failure
    happened; after a failure past REMOVING the original container is gone.
    """

    host: str
    container_id: str
    container_name: str = ""
    state: ReconcileState = ReconcileState.CURRENT
    history: List[ReconcileState] = Field(default_factory=lambda: [ReconcileState.CURRENT])
    env: List[str] = Field(default_factory=list, description="Environment applied to the new container")
    new_container_id: Optional[str] = None
    failed_step: Optional[ReconcileState] = None
    error: Optional[str] = None

    def transition(self, state: ReconcileState) -> None:
        self.state = state
        self.history.append(state)

    @property
    def original_removed(self) -> bool:
        """Whether the original container no longer exists."""
        return ReconcileState.CREATING in self.history
