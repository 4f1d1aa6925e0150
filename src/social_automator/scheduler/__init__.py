"""Post queue and the background scheduler that drains it."""

from .queue import dispatch, process_due_queue, publish_now, schedule_post, summarize
from .runner import QueueScheduler

__all__ = [
    "dispatch",
    "process_due_queue",
    "publish_now",
    "schedule_post",
    "summarize",
    "QueueScheduler",
]
