"""Background pattern sweep for the learning system."""

from routewise.core.periodic import PeriodicTask
from routewise.learning.learning_system import LearningSystem


class PatternSweeper(PeriodicTask):
    """Run `LearningSystem.sweep` on a fixed interval."""

    def __init__(self, learning: LearningSystem, interval: float | None = None):
        super().__init__(
            name="learning-pattern-sweeper",
            interval=interval or learning.settings.sweep_interval_seconds,
            callback=learning.sweep,
        )
        self.learning = learning
