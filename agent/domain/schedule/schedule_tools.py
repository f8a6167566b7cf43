from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import Field

from domain.errors import ToolExecutionFailure
from domain.models.agent_state import CamelModel, utc_now
from domain.tool.tool_registry import NoArgs, ToolDefinition
from .task_scheduler import ScheduledTask, ScheduleType, TaskScheduler


class ScheduleWhen(CamelModel):
    type: ScheduleType
    date: Optional[datetime] = Field(None, description="Absolute time for 'scheduled'")
    delay_in_seconds: Optional[int] = Field(None, ge=0, description="Delay for 'delayed'")


class ScheduleTaskArgs(CamelModel):
    description: str = Field(min_length=1, description="What to do when the task fires")
    when: ScheduleWhen


class CancelScheduledTaskArgs(CamelModel):
    task_id: str = Field(description="Id returned by scheduleTask or getScheduledTasks")


def resolve_run_at(when: ScheduleWhen) -> datetime:
    if when.type == ScheduleType.SCHEDULED:
        if when.date is None:
            raise ToolExecutionFailure("scheduleTask", "A 'scheduled' task needs a date")
        if when.date.tzinfo is None:
            return when.date.replace(tzinfo=timezone.utc)
        return when.date
    if when.type == ScheduleType.DELAYED:
        if when.delay_in_seconds is None:
            raise ToolExecutionFailure("scheduleTask", "A 'delayed' task needs delayInSeconds")
        return utc_now() + timedelta(seconds=when.delay_in_seconds)
    raise ToolExecutionFailure("scheduleTask", "Not a valid schedule input")


def build_schedule_tools(scheduler: TaskScheduler) -> List[ToolDefinition]:
    """Scheduling tools delegating to an external scheduler"""

    async def schedule_task(args: ScheduleTaskArgs) -> Dict[str, Any]:
        run_at = resolve_run_at(args.when)
        task = await scheduler.schedule(args.description, run_at, args.when.type)
        return {"message": f"Task scheduled for {run_at.isoformat()}: {args.description}", "task": task}

    async def get_scheduled_tasks(args: NoArgs) -> List[ScheduledTask]:
        return await scheduler.list_tasks()

    async def cancel_scheduled_task(args: CancelScheduledTaskArgs) -> Dict[str, Any]:
        if not await scheduler.cancel(args.task_id):
            raise ToolExecutionFailure("cancelScheduledTask", f"No scheduled task with id {args.task_id}")
        return {"cancelled": True, "taskId": args.task_id}

    return [
        ToolDefinition(
            name="scheduleTask",
            description="Schedule a task to run later, at a given time or after a delay.",
            args_model=ScheduleTaskArgs,
            handler=schedule_task,
            category="schedule",
        ),
        ToolDefinition(
            name="getScheduledTasks",
            description="List scheduled tasks that have not run yet.",
            args_model=NoArgs,
            handler=get_scheduled_tasks,
            category="schedule",
        ),
        ToolDefinition(
            name="cancelScheduledTask",
            description="Cancel a scheduled task by id.",
            args_model=CancelScheduledTaskArgs,
            handler=cancel_scheduled_task,
            category="schedule",
        ),
    ]
