"""Background reconciliation of call intents that never completed.

A meeting's call intent stays pending or failed when the platform call
could not be created during meetings.create (or the process died between
the insert and the call). The reconciler periodically retries those
intents until they complete or exhaust their attempts.

The sweep is a plain coroutine so tests can run it directly; the loop
wrapper is started and cancelled by the application lifespan.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.buddy.meetings.provisioning import CallProvisioner

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0


class CallReconciler:
    """Retries due call intents through the CallProvisioner.

    Args:
        meetings: MeetingRepository.
        agents: AgentRepository.
        provisioner: CallProvisioner shared with meetings.create.
        grace_seconds: Minimum age of an intent before it is retried.
        max_attempts: Intents at this many failed attempts are left alone.
        batch_size: Maximum intents handled per sweep.
    """

    def __init__(
        self,
        meetings,
        agents,
        provisioner: CallProvisioner,
        grace_seconds: int = 30,
        max_attempts: int = 5,
        batch_size: int = 50,
    ) -> None:
        self._meetings = meetings
        self._agents = agents
        self._provisioner = provisioner
        self._grace = timedelta(seconds=grace_seconds)
        self._max_attempts = max_attempts
        self._batch_size = batch_size

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Retry every due intent once. One failing intent never stops the sweep."""
        now = now or datetime.now(timezone.utc)
        intents = await self._meetings.list_due_intents(
            older_than=now - self._grace,
            max_attempts=self._max_attempts,
            limit=self._batch_size,
        )
        result = SweepResult(scanned=len(intents))

        for intent in intents:
            try:
                meeting = await self._meetings.get_meeting_by_id(intent.meeting_id)
                agents = (
                    await self._agents.get_agents_by_ids([meeting.agent_id])
                    if meeting is not None
                    else []
                )
                if meeting is None or not agents:
                    # Meeting or agent removed since; cascades normally clear the intent
                    result.skipped += 1
                    continue
                if await self._provisioner.run_intent(intent, meeting, agents[0], source="reconciler"):
                    result.completed += 1
                else:
                    result.failed += 1
            except Exception:
                result.failed += 1
                logger.warning(
                    "reconciler.intent_error",
                    intent_id=intent.id,
                    meeting_id=intent.meeting_id,
                    exc_info=True,
                )

        if intents:
            logger.info(
                "reconciler.sweep_finished",
                scanned=result.scanned,
                completed=result.completed,
                failed=result.failed,
                skipped=result.skipped,
            )
        return result


def start_reconciler_background(
    reconciler: CallReconciler, interval_seconds: int, app_state: Any
) -> asyncio.Task:
    """Run reconciler sweeps every interval_seconds as an asyncio task.

    The task is stored as app_state.call_reconciler_task for shutdown.
    """

    async def _loop() -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                await reconciler.sweep()
            except asyncio.CancelledError:
                logger.info("reconciler.task_cancelled")
                break
            except Exception:
                logger.warning("reconciler.task_loop_error", exc_info=True)

    task = asyncio.create_task(_loop(), name="call_reconciler")
    app_state.call_reconciler_task = task
    logger.info("reconciler.background_task_started", interval_seconds=interval_seconds)
    return task
