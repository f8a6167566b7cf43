from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple
import asyncio

from pydantic import Field
import structlog

from domain.models.agent_state import CamelModel, generate_id, utc_now

logger = structlog.get_logger(__name__)


class ScheduleType(str, Enum):
    SCHEDULED = "scheduled"
    DELAYED = "delayed"
    NO_SCHEDULE = "no-schedule"


class ScheduledTask(CamelModel):
    """A deferred task registered with the scheduler"""
    id: str = Field(default_factory=generate_id)
    description: str
    type: ScheduleType
    run_at: datetime
    created_at: datetime = Field(default_factory=utc_now)


TaskCallback = Callable[[str, ScheduledTask], Awaitable[None]]


class TaskScheduler(ABC):
    """Timer subsystem that triggers deferred task execution"""

    @abstractmethod
    async def schedule(self, description: str, run_at: datetime, schedule_type: ScheduleType) -> ScheduledTask:
        """Register a task to fire at run_at"""

    @abstractmethod
    async def list_tasks(self) -> List[ScheduledTask]:
        """Tasks that have not fired yet, soonest first"""

    @abstractmethod
    async def cancel(self, task_id: str) -> bool:
        """Cancel a task; False if it does not exist"""

    def prompt_fragment(self, now: Optional[datetime] = None) -> str:
        """Scheduling instructions embedded in the system prompt"""

        now = now or utc_now()
        return (
            "## Task Scheduling\n"
            f"Current time: {now.isoformat()}\n"
            "- If the user asks to schedule something, call scheduleTask with a description and `when`:\n"
            "  - {\"type\": \"scheduled\", \"date\": <ISO 8601 datetime>} for a specific time\n"
            "  - {\"type\": \"delayed\", \"delayInSeconds\": <seconds>} for \"in N minutes/hours\"\n"
            "  - {\"type\": \"no-schedule\"} if no time was given, then ask the user when\n"
            "- Use getScheduledTasks to list pending tasks and cancelScheduledTask to cancel one."
        )


class AsyncioTaskScheduler(TaskScheduler):
    """In-process scheduler built on the running event loop's timers"""

    def __init__(self, callback: TaskCallback):
        self.callback = callback
        self._tasks: Dict[str, Tuple[ScheduledTask, asyncio.TimerHandle]] = {}
        self._running: Set[asyncio.Task] = set()

    async def schedule(self, description: str, run_at: datetime, schedule_type: ScheduleType) -> ScheduledTask:
        task = ScheduledTask(description=description, type=schedule_type, run_at=run_at)
        delay = max((run_at - utc_now()).total_seconds(), 0.0)

        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._fire, task.id)
        self._tasks[task.id] = (task, handle)

        logger.info("Task scheduled", task_id=task.id, run_at=run_at.isoformat(), delay_seconds=round(delay, 1))
        return task

    async def list_tasks(self) -> List[ScheduledTask]:
        return sorted((task for task, _ in self._tasks.values()), key=lambda t: t.run_at)

    async def cancel(self, task_id: str) -> bool:
        entry = self._tasks.pop(task_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        logger.info("Task cancelled", task_id=task_id)
        return True

    def _fire(self, task_id: str):
        entry = self._tasks.pop(task_id, None)
        if entry is None:
            return
        running = asyncio.ensure_future(self._run(entry[0]))
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    async def _run(self, task: ScheduledTask):
        logger.info("Running scheduled task", task_id=task.id)
        try:
            await self.callback(task.description, task)
        except Exception as e:
            logger.error("Scheduled task failed", task_id=task.id, error=str(e))

    @property
    def has_pending(self) -> bool:
        """True while a timer is armed or a fired task is still running"""
        return bool(self._tasks or self._running)

    async def shutdown(self):
        """Cancel pending timers and wait for tasks already firing"""

        for _, handle in self._tasks.values():
            handle.cancel()
        self._tasks.clear()
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)
