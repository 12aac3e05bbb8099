"""Async driver for the ingestion pipeline.

Owns the single current :class:`PipelineState`, feeds events through the
pure reducer, and runs each entry effect as an asyncio task.  Effects
dispatch their outcomes through a callable stamped with the generation
they were started under; once a cancel, reset or resubmission has moved
the generation on, those late events are dropped here instead of leaking
into the new run.

Usage::

    orchestrator = ProjectOrchestrator(Collaborators(analyzer=client), on_success=save)
    orchestrator.submit_files(files)
    state = await orchestrator.wait_until_settled()
    if state.value is Lifecycle.AWAITING_REVIEW:
        orchestrator.confirm_review(auto_approve(state.context.analysis_payload.image_data))
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Coroutine, Iterable, Sequence
from typing import Any

from projsynth.models import SourceFile
from projsynth.pipeline import effects
from projsynth.pipeline.effects import Collaborators
from projsynth.pipeline.events import Cancel, ConfirmReview, Event, Reset, SetError, SubmitFiles
from projsynth.pipeline.lifecycle import Lifecycle
from projsynth.pipeline.reducer import Effect, step
from projsynth.pipeline.state import PipelineContext, PipelineState, initial_state
from projsynth.project import Project, ProjectImage

logger = logging.getLogger(__name__)

Listener = Callable[[PipelineState], None]

SETTLED_STATES = frozenset({
    Lifecycle.IDLE,
    Lifecycle.AWAITING_REVIEW,
    Lifecycle.COMPLETE,
    Lifecycle.ERROR,
})

_EFFECT_PROCEDURES = {
    Effect.VALIDATE: effects.run_validation,
    Effect.CONVERT_PDFS: effects.run_pdf_conversion,
    Effect.ANALYZE: effects.run_analysis,
    Effect.ROUTE_RESULTS: effects.run_route_results,
    Effect.CREATE_PROJECT: effects.run_project_creation,
}


class ProjectOrchestrator:
    """Drive one pipeline at a time from submission to a created project.

    Args:
        collaborators: External services used by the entry effects.
        on_success: Called exactly once with the project of every run
            that reaches ``complete``.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        on_success: Callable[[Project], Any] | None = None,
    ) -> None:
        self._collaborators = collaborators
        self._on_success = on_success
        self._state = initial_state()
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        self._waiters: list[tuple[frozenset[Lifecycle], asyncio.Future]] = []
        self._notified_generation: int | None = None
        self.history: list[Lifecycle] = [self._state.value]

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def context(self) -> PipelineContext:
        return self._state.context

    # ------------------------------------------------------------------
    # Public actions
    # ------------------------------------------------------------------

    def submit_files(self, files: Iterable[SourceFile]) -> PipelineState:
        return self.dispatch(SubmitFiles(tuple(files)))

    def confirm_review(self, images: Sequence[ProjectImage]) -> PipelineState:
        return self.dispatch(ConfirmReview(tuple(images)))

    def cancel(self) -> PipelineState:
        return self.dispatch(Cancel())

    def reset(self) -> PipelineState:
        return self.dispatch(Reset())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every new state.  Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def dispatch(self, event: Event, generation: int | None = None) -> PipelineState:
        """Apply *event*, start any entry effects, and notify listeners.

        Events carrying a *generation* other than the current one are
        dropped.
        """
        if generation is not None and generation != self._state.generation:
            logger.debug(
                "Dropping stale %s from generation %d (current %d)",
                event.name,
                generation,
                self._state.generation,
            )
            return self._state

        previous = self._state
        new_state, entry_effects = step(previous, event)
        if new_state is previous:
            return previous

        self._state = new_state
        if new_state.value is not previous.value:
            logger.info("Pipeline %s -> %s", previous.value.value, new_state.value.value)
            self.history.append(new_state.value)

        for effect in entry_effects:
            self._start_effect(effect, new_state)

        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception:
                logger.exception("State listener %r failed", listener)
        self._wake_waiters(new_state)
        return new_state

    def _start_effect(self, effect: Effect, state: PipelineState) -> None:
        if effect is Effect.NOTIFY_COMPLETE:
            self._notify_complete(state)
            return

        dispatch = functools.partial(self.dispatch, generation=state.generation)
        procedure = _EFFECT_PROCEDURES[effect]
        self._spawn(procedure(state.context, dispatch, self._collaborators), effect, state.generation)

    def _spawn(self, coro: Coroutine[Any, Any, None], effect: Effect, generation: int) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=f"projsynth-{effect.value}")
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_task_done, generation=generation))

    def _on_task_done(self, task: asyncio.Task, generation: int) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Pipeline effect %s failed", task.get_name(), exc_info=exc)
            # Only legal while a stage is still working; otherwise a no-op.
            self.dispatch(SetError(f"Pipeline step failed: {exc}"), generation=generation)

    def _notify_complete(self, state: PipelineState) -> None:
        project = state.context.newly_created_project
        if project is None or self._notified_generation == state.generation:
            return
        self._notified_generation = state.generation
        if self._on_success is not None:
            self._on_success(project)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def _wake_waiters(self, state: PipelineState) -> None:
        remaining = []
        for values, future in self._waiters:
            if future.done():
                continue
            if state.value in values:
                future.set_result(state)
            else:
                remaining.append((values, future))
        self._waiters = remaining

    async def wait_for(self, *values: Lifecycle) -> PipelineState:
        """Wait until the pipeline enters one of *values* (or is already there)."""
        targets = frozenset(values)
        if self._state.value in targets:
            return self._state
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.append((targets, future))
        return await future

    async def wait_until_settled(self) -> PipelineState:
        """Wait until the pipeline needs input or has finished."""
        return await self.wait_for(*SETTLED_STATES)

    async def drain(self) -> None:
        """Wait for every running effect task, including stale ones."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
