# aimtrack/goals.py

"""Call shape used to hand new runs to goal tracking, which lives outside this package."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GoalProgressUpdate:
    task_name: str
    accuracy: Optional[float]
    score: Optional[float]
    duration: Optional[float]
    played_at: str


class GoalCollaborator:
    """Default collaborator: accepts every call and does nothing."""

    def update_progress(self, update: GoalProgressUpdate) -> None:
        return None

    def generate_goals(self) -> int:
        """Create initial goals from imported history; returns how many were made."""
        return 0

