"""
retell.session.controller - Timed phase controller.

Sequences one practice run: Listening → Prep → Speaking → Evaluating →
Result. Each phase is ended by its own timer, never by the narration or
capture adapters, so a narrator that runs long, finishes early or fails
cannot stall or reorder the schedule.

All state for a run lives in a Session owned by the controller. Timer,
narration and capture callbacks carry the Session they were started for
and are ignored once that Session is no longer current, so a restarted
run never sees leftovers from a previous one.

The controller must be driven from a running asyncio event loop.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

from retell.config import RetellConfig
from retell.duration import estimate_for_settings
from retell.exceptions import NotReadyError, PhaseError, UnsupportedCapabilityError
from retell.history import PracticeRecord
from retell.logging import logger
from retell.scoring.match import ScoreResult, score_story
from retell.session.adapters import Capture, CueEmitter, Narrator
from retell.session.phases import Phase, can_transition
from retell.stories import Story, choose_story

PhaseObserver = Callable[[Phase, "Session"], None]
RecordSink = Callable[[PracticeRecord], None]
StoryChooser = Callable[[Sequence[Story]], Story]


@dataclass
class PhaseTimer:
    """The single live timer of a session."""

    phase: Phase
    duration: float
    started_at: float
    handle: asyncio.TimerHandle

    def cancel(self) -> None:
        self.handle.cancel()

    def fraction_elapsed(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return min(1.0, max(0.0, (now - self.started_at) / self.duration))


@dataclass
class Session:
    """State of one practice run, from start to Result or cancellation."""

    story: Story
    listen_seconds: float
    done: asyncio.Future
    phase: Phase = Phase.IDLE
    started_at: datetime = field(default_factory=datetime.now)
    transcript: str = ""
    timer: PhaseTimer | None = None
    narration: asyncio.Task | None = None
    capture_handle: Any = None
    capturing: bool = False
    phase_times: dict[Phase, float] = field(default_factory=dict)
    result: ScoreResult | None = None

    def append_chunk(self, text: str) -> None:
        chunk = text.strip()
        if chunk:
            self.transcript = f"{self.transcript} {chunk}" if self.transcript else chunk


@dataclass
class SessionOutcome:
    """What a completed run produced."""

    story: Story
    transcript: str
    score: ScoreResult
    listen_seconds: float
    started_at: datetime
    finished_at: datetime


class PhaseController:
    """State machine and timer scheduler for listen/prepare/retell/score runs.

    Args:
        narrator: Narration adapter (None: narration unsupported)
        capture: Transcript capture adapter (None: capture unsupported)
        cue: Begin/end cue emitter (optional)
        config: Timings, narration pace and scoring heuristics
        on_phase: Called with (phase, session) on every transition. It may
            cancel the run; the transition then starts no timer or adapter
        on_record: Called once with a PracticeRecord per completed run
        choose: Picks a story from the candidate pool (random by default)
    """

    def __init__(
        self,
        narrator: Narrator | None = None,
        capture: Capture | None = None,
        cue: CueEmitter | None = None,
        config: RetellConfig | None = None,
        *,
        on_phase: PhaseObserver | None = None,
        on_record: RecordSink | None = None,
        choose: StoryChooser | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.narrator = narrator
        self.capture = capture
        self.cue = cue
        self.config = config or RetellConfig()
        self.on_phase = on_phase
        self.on_record = on_record
        self._choose = choose or partial(choose_story, rng=rng)
        self._session: Session | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase if self._session else Phase.IDLE

    def listening_seconds(self, story: Story) -> float:
        """Listening phase length: narration estimate, never below the floor."""
        estimate = estimate_for_settings(story.text, self.config.narration) / 1000.0
        return max(estimate, self.config.durations.listen_floor_seconds)

    def progress(self) -> float:
        """Fraction of the current phase timer that has elapsed (0.0 to 1.0)."""
        session = self._session
        if session is None or session.timer is None:
            return 1.0 if self.phase is Phase.RESULT else 0.0
        return session.timer.fraction_elapsed(asyncio.get_running_loop().time())

    def start(self, stories: Story | Sequence[Story] | None) -> Session:
        """Start a new run with a story chosen from `stories`.

        Raises:
            NotReadyError: If no story is available
            PhaseError: If a run is already in progress
        """
        if self.phase not in (Phase.IDLE, Phase.RESULT):
            raise PhaseError(f"Cannot start while {self.phase.value}")

        if isinstance(stories, Story):
            pool: list[Story] = [stories]
        else:
            pool = list(stories or [])
        if not pool:
            raise NotReadyError("No stories loaded")

        if self.phase is Phase.RESULT:
            self.reset()

        story = self._choose(pool)
        loop = asyncio.get_running_loop()
        session = Session(
            story=story,
            listen_seconds=self.listening_seconds(story),
            done=loop.create_future(),
        )
        self._session = session
        logger.debug("Starting story %s (listen %.1fs)", story.id, session.listen_seconds)

        self._enter(session, Phase.LISTENING)
        if not self._is_current(session, Phase.LISTENING):
            return session
        session.narration = self._start_narration(session)
        self._start_timer(session, session.listen_seconds, self._end_listening)
        return session

    def cancel(self) -> bool:
        """Abort the run in progress and return to Idle.

        Returns:
            True if a run was cancelled, False if none was in progress
        """
        session = self._session
        if session is None or not session.phase.in_progress:
            return False

        self._clear_timer(session)
        self._stop_narration(session)
        self._stop_capture(session)
        self._enter(session, Phase.IDLE)
        self._session = None
        if not session.done.done():
            session.done.set_result(None)
        logger.debug("Cancelled story %s", session.story.id)
        return True

    def reset(self) -> None:
        """Discard a finished run (Result → Idle)."""
        session = self._session
        if session is None:
            return
        if session.phase is not Phase.RESULT:
            raise PhaseError(f"Cannot reset while {session.phase.value}; cancel instead")
        self._enter(session, Phase.IDLE)
        self._session = None

    def skip_narration(self) -> None:
        """Stop narration early. The listening timer still ends the phase."""
        session = self._session
        if session is not None and session.phase is Phase.LISTENING:
            self._stop_narration(session)

    async def wait(self) -> SessionOutcome | None:
        """Wait for the current run; None if it was cancelled or none exists."""
        session = self._session
        if session is None:
            return None
        return await session.done

    async def aclose(self) -> None:
        """Cancel any run in progress and let adapter tasks settle."""
        self.cancel()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # Transitions

    def _end_listening(self, session: Session) -> None:
        if not self._is_current(session, Phase.LISTENING):
            return
        session.timer = None
        self._stop_narration(session)
        self._enter(session, Phase.PREP)
        if not self._is_current(session, Phase.PREP):
            return
        self._start_timer(session, self.config.durations.prep_seconds, self._end_prep)

    def _end_prep(self, session: Session) -> None:
        if not self._is_current(session, Phase.PREP):
            return
        session.timer = None
        self._emit_cue("begin")
        self._enter(session, Phase.SPEAKING)
        if not self._is_current(session, Phase.SPEAKING):
            return
        self._start_capture(session)
        self._start_timer(session, self.config.durations.speak_seconds, self._end_speaking)

    def _end_speaking(self, session: Session) -> None:
        if not self._is_current(session, Phase.SPEAKING):
            return
        session.timer = None
        self._emit_cue("end")
        self._stop_capture(session)
        self._enter(session, Phase.EVALUATING)
        self._evaluate(session)

    def _evaluate(self, session: Session) -> None:
        transcript = session.transcript.strip()
        session.result = score_story(session.story, transcript, self.config.scoring)
        outcome = SessionOutcome(
            story=session.story,
            transcript=transcript,
            score=session.result,
            listen_seconds=session.listen_seconds,
            started_at=session.started_at,
            finished_at=datetime.now(),
        )
        self._enter(session, Phase.RESULT)
        logger.debug(
            "Story %s scored %d%% (%d/%d keywords)",
            session.story.id,
            session.result.percentage,
            len(session.result.matched_keywords),
            session.result.total_keywords,
        )
        self._record(outcome)
        if not session.done.done():
            session.done.set_result(outcome)

    def _enter(self, session: Session, phase: Phase) -> None:
        if not can_transition(session.phase, phase):
            raise PhaseError(f"Illegal transition {session.phase.value} -> {phase.value}")
        session.phase = phase
        session.phase_times[phase] = asyncio.get_running_loop().time()
        logger.debug("Phase -> %s", phase.value)
        if self.on_phase is not None:
            try:
                self.on_phase(phase, session)
            except Exception as e:
                logger.warning("Phase observer failed: %s", e)

    def _is_current(self, session: Session, phase: Phase) -> bool:
        return session is self._session and session.phase is phase

    # Timer

    def _start_timer(
        self,
        session: Session,
        seconds: float,
        callback: Callable[[Session], None],
    ) -> None:
        self._clear_timer(session)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(seconds, callback, session)
        session.timer = PhaseTimer(session.phase, seconds, loop.time(), handle)

    def _clear_timer(self, session: Session) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None

    # Narration

    def _start_narration(self, session: Session) -> asyncio.Task | None:
        if self.narrator is None:
            logger.warning("Narration unsupported; listening phase will run silently")
            return None
        task = asyncio.get_running_loop().create_task(self._narrate(session.story.text))
        self._track(task)
        return task

    async def _narrate(self, text: str) -> None:
        try:
            await self.narrator.speak(text)
        except asyncio.CancelledError:
            raise
        except UnsupportedCapabilityError as e:
            logger.warning("Narration unsupported: %s", e)
        except Exception as e:
            logger.warning("Narration failed: %s", e)

    def _stop_narration(self, session: Session) -> None:
        if self.narrator is not None:
            try:
                self.narrator.cancel()
            except Exception as e:
                logger.warning("Narration cancel failed: %s", e)
        task = session.narration
        if task is not None and not task.done():
            task.cancel()

    # Capture

    def _start_capture(self, session: Session) -> None:
        if self.capture is None:
            logger.warning("Capture unsupported; scoring an empty transcript")
            return
        session.capturing = True
        try:
            handle = self.capture.start(partial(self._on_chunk, session))
        except UnsupportedCapabilityError as e:
            session.capturing = False
            logger.warning("Capture unsupported: %s", e)
            return
        except Exception as e:
            session.capturing = False
            logger.warning("Capture failed to start: %s", e)
            return
        session.capture_handle = handle
        if isinstance(handle, asyncio.Task):
            self._track(handle)

    def _on_chunk(self, session: Session, text: str) -> None:
        if session is not self._session or not session.capturing:
            logger.debug("Ignoring transcript chunk outside of capture")
            return
        session.append_chunk(text)

    def _stop_capture(self, session: Session) -> None:
        if not session.capturing:
            return
        session.capturing = False
        handle, session.capture_handle = session.capture_handle, None
        try:
            self.capture.stop(handle)
        except Exception as e:
            logger.warning("Capture failed to stop: %s", e)

    # Side effects

    def _emit_cue(self, kind: str) -> None:
        if self.cue is None:
            return
        try:
            self.cue.emit(kind)
        except Exception as e:
            logger.warning("Cue %s failed: %s", kind, e)

    def _record(self, outcome: SessionOutcome) -> None:
        if self.on_record is None:
            return
        try:
            self.on_record(PracticeRecord.from_outcome(outcome))
        except Exception as e:
            logger.warning("Could not record practice history: %s", e)

    def _track(self, task: asyncio.Task) -> None:
        self._pending.add(task)
        task.add_done_callback(self._settled)

    def _settled(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Adapter task failed: %s", task.exception())
