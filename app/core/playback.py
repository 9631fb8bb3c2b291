"""
Playback state and the headless playback driver.

PlaybackState is a value object with pure transitions. It knows nothing
about analytics, so a broken tracker can never stall the player.

PlaybackDriver runs one viewer session on the event loop:
  - step timer  -> advances while playing (part of playback)
  - heartbeat   -> best-effort progress write every N seconds
Both timers are owned by the driver's `async with` block and are cancelled
together on exit, before the final (best-effort, time-boxed) close write.
"""

import asyncio
from dataclasses import dataclass, replace
from uuid import UUID

from app.config import get_settings
from app.core.view_session import ViewSession

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class PlaybackState:
    step_index: int = 0
    is_playing: bool = False
    total_steps: int = 0
    furthest_step: int = 0

    @property
    def at_end(self) -> bool:
        return self.total_steps == 0 or self.step_index >= self.total_steps - 1

    @property
    def completed_steps(self) -> int:
        """Furthest step reached, 1-based. This is what gets reported."""
        if self.total_steps == 0:
            return 0
        return min(self.furthest_step + 1, self.total_steps)


def advance(state: PlaybackState) -> PlaybackState:
    if state.at_end:
        return replace(state, is_playing=False)
    step = state.step_index + 1
    return replace(state, step_index=step, furthest_step=max(state.furthest_step, step))


def retreat(state: PlaybackState) -> PlaybackState:
    if state.step_index <= 0:
        return state
    return replace(state, step_index=state.step_index - 1)


def restart(state: PlaybackState) -> PlaybackState:
    return replace(state, step_index=0, is_playing=False)


def toggle_play(state: PlaybackState) -> PlaybackState:
    # Paused on the last step: the player shows "Finished", nothing to play.
    if not state.is_playing and state.at_end:
        return state
    return replace(state, is_playing=not state.is_playing)


def jump_to(state: PlaybackState, index: int) -> PlaybackState:
    if state.total_steps == 0:
        return state
    step = min(max(index, 0), state.total_steps - 1)
    return replace(state, step_index=step, furthest_step=max(state.furthest_step, step))


class PlaybackDriver:
    def __init__(
        self,
        tracker: ViewSession,
        demo_id: UUID,
        total_steps: int,
        share_link_id: UUID | None = None,
        viewer_ip: str | None = None,
        autoplay: bool = False,
        step_interval: float | None = None,
        heartbeat_interval: float | None = None,
        final_update_timeout: float | None = None,
    ):
        settings = get_settings()
        self.tracker = tracker
        self.demo_id = demo_id
        self.share_link_id = share_link_id
        self.viewer_ip = viewer_ip
        self.step_interval = step_interval or settings.step_advance_seconds
        self.heartbeat_interval = heartbeat_interval or settings.progress_heartbeat_seconds
        self.final_update_timeout = final_update_timeout or settings.final_update_timeout_seconds

        self.state = PlaybackState(total_steps=total_steps, is_playing=autoplay and total_steps > 1)
        self.view_id: UUID | None = None

        self._open_task: asyncio.Task | None = None
        self._timers: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._started_at = 0.0
        self._completion_reported = False

    # --- lifecycle ---

    async def __aenter__(self) -> "PlaybackDriver":
        self._started_at = asyncio.get_running_loop().time()
        self._open_task = asyncio.create_task(self._open_session())
        self._timers = [
            asyncio.create_task(self._step_timer()),
            asyncio.create_task(self._heartbeat()),
        ]
        return self

    async def __aexit__(self, exc_type, exc, tb):
        for task in self._timers:
            task.cancel()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers = []

        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)

        await self._final_update()
        return False

    @property
    def timers_running(self) -> bool:
        return any(not t.done() for t in self._timers)

    @property
    def elapsed_seconds(self) -> int:
        return int(asyncio.get_running_loop().time() - self._started_at)

    # --- controls ---

    def toggle_play(self):
        self._apply(toggle_play(self.state))

    def next(self):
        self._apply(advance(self.state), track=True)

    def previous(self):
        self._apply(retreat(self.state), track=True)

    def restart(self):
        self._started_at = asyncio.get_running_loop().time()
        self._apply(restart(self.state), track=True)

    def jump_to(self, index: int):
        self._apply(jump_to(self.state, index), track=True)

    # --- internals ---

    def _apply(self, new_state: PlaybackState, track: bool = False):
        self.state = new_state
        if new_state.at_end and new_state.total_steps > 0 and not self._completion_reported:
            self._completion_reported = True
            self._spawn(self._push_progress())
        elif track:
            self._spawn(self._push_progress())

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _open_session(self):
        try:
            view = await self.tracker.open(
                self.demo_id,
                share_link_id=self.share_link_id,
                total_steps=self.state.total_steps,
                viewer_ip=self.viewer_ip,
            )
        except Exception as exc:
            logger.warning("view_track_failed", demo_id=str(self.demo_id),
                           error=str(exc) or repr(exc), error_type=type(exc).__name__)
            return
        self.view_id = view.id if view is not None else None

    async def _step_timer(self):
        while True:
            await asyncio.sleep(self.step_interval)
            if self.state.is_playing:
                self._apply(advance(self.state))

    async def _heartbeat(self):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self._push_progress()

    async def _push_progress(self):
        if self.view_id is None:
            return
        try:
            await self.tracker.update_progress(self.view_id, self.elapsed_seconds, self.state.completed_steps)
        except Exception as exc:
            logger.warning("view_progress_failed", view_id=str(self.view_id),
                           error=str(exc) or repr(exc), error_type=type(exc).__name__)

    async def _final_update(self):
        """Last write on teardown. May be lost; that is accepted."""
        try:
            if self._open_task is not None and not self._open_task.done():
                await asyncio.wait_for(self._open_task, self.final_update_timeout)
            if self.view_id is None:
                return
            await asyncio.wait_for(
                self.tracker.close(self.view_id, self.elapsed_seconds, self.state.completed_steps),
                self.final_update_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("view_final_update_lost",
                           demo_id=str(self.demo_id),
                           view_id=str(self.view_id) if self.view_id else None)
        except Exception as exc:
            logger.warning("view_close_failed",
                           demo_id=str(self.demo_id),
                           view_id=str(self.view_id) if self.view_id else None,
                           error=str(exc) or repr(exc), error_type=type(exc).__name__)
