from .runner import ScheduledTask, TaskRunner
from .tasks import (
    run_auto_apply,
    run_auto_search,
    select_eligible_jobs,
    should_run_search,
)

__all__ = [
    "ScheduledTask", "TaskRunner", "run_auto_apply", "run_auto_search",
    "select_eligible_jobs", "should_run_search",
]
