from gitfarm.core.runner.service import RunSummary, TaskOutcome, TaskRunner, trigger_runner

__all__ = ["RunSummary", "TaskOutcome", "TaskRunner", "trigger_runner"]
