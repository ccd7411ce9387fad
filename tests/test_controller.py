"""Tests for retell.session.controller module."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from retell.config import NarrationSettings, PhaseDurations, RetellConfig
from retell.exceptions import (
    AdapterFailureError,
    NotReadyError,
    PhaseError,
    UnsupportedCapabilityError,
)
from retell.history import HistoryStore, PracticeRecord
from retell.session import Phase, PhaseController
from retell.stories import Story

FOX_RETELL = ["a fox jumped", "over a sleeping dog"]


class FakeNarrator:
    def __init__(self, hang: bool = False, fail: bool = False) -> None:
        self.hang = hang
        self.fail = fail
        self.spoken: list[str] = []
        self.cancels = 0

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        if self.fail:
            raise AdapterFailureError("narration", "audio device lost")
        if self.hang:
            await asyncio.sleep(3600)

    def cancel(self) -> None:
        self.cancels += 1


class FakeCapture:
    """Delivers one prepared chunk list per run, on the next loop iteration."""

    def __init__(self, runs: list[list[str]] | None = None, unsupported: bool = False) -> None:
        self.runs = list(runs or [])
        self.unsupported = unsupported
        self.callbacks: list = []
        self.stopped: list[int] = []

    def start(self, on_final_chunk) -> int:
        if self.unsupported:
            raise UnsupportedCapabilityError("capture", "no microphone")
        self.callbacks.append(on_final_chunk)
        chunks = self.runs.pop(0) if self.runs else []
        loop = asyncio.get_running_loop()
        for chunk in chunks:
            loop.call_soon(on_final_chunk, chunk)
        return len(self.callbacks)

    def stop(self, handle: int) -> None:
        self.stopped.append(handle)


class RecordingCue:
    def __init__(self) -> None:
        self.kinds: list[str] = []

    def emit(self, kind: str) -> None:
        self.kinds.append(kind)


def _controller(config: RetellConfig, **kwargs) -> PhaseController:
    kwargs.setdefault("narrator", FakeNarrator())
    kwargs.setdefault("capture", FakeCapture([FOX_RETELL]))
    kwargs.setdefault("cue", RecordingCue())
    return PhaseController(config=config, **kwargs)


class TestFullCycle:
    @pytest.mark.asyncio
    async def test_phase_order_and_outcome(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        phases: list[Phase] = []
        cue = RecordingCue()
        narrator = FakeNarrator()
        controller = _controller(
            fast_config,
            narrator=narrator,
            cue=cue,
            on_phase=lambda phase, session: phases.append(phase),
        )

        controller.start(fox_story)
        outcome = await controller.wait()

        assert phases == [
            Phase.LISTENING,
            Phase.PREP,
            Phase.SPEAKING,
            Phase.EVALUATING,
            Phase.RESULT,
        ]
        assert cue.kinds == ["begin", "end"]
        assert narrator.spoken == [fox_story.text]
        assert controller.phase is Phase.RESULT

        assert outcome is not None
        assert outcome.story == fox_story
        assert outcome.transcript == "a fox jumped over a sleeping dog"
        assert outcome.score.percentage == 71
        assert outcome.score.matched_keywords == ["dog", "fox", "jumped"]
        assert controller.session.result == outcome.score

    @pytest.mark.asyncio
    async def test_capture_stopped_when_speaking_ends(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        capture = FakeCapture([FOX_RETELL])
        controller = _controller(fast_config, capture=capture)

        controller.start(fox_story)
        await controller.wait()

        assert capture.stopped == [1]

    @pytest.mark.asyncio
    async def test_picks_from_pool(
        self, fast_config: RetellConfig, fox_story: Story, plain_story: Story
    ) -> None:
        controller = _controller(fast_config, choose=lambda pool: pool[-1])

        session = controller.start([fox_story, plain_story])

        assert session.story == plain_story
        await controller.aclose()


class TestListeningTimer:
    @pytest.fixture
    def timed_config(self) -> RetellConfig:
        return RetellConfig(
            durations=PhaseDurations(
                listen_floor_seconds=0.05, prep_seconds=1.0, speak_seconds=1.0
            ),
            narration=NarrationSettings(
                words_per_minute=60000,
                sentence_pause_ms=0,
                buffer_ms=0,
                per_word_floor_ms=0,
                minimum_ms=200,
            ),
        )

    def test_listening_seconds_uses_floor(self, fox_story: Story) -> None:
        controller = PhaseController()
        assert controller.listening_seconds(fox_story) == 30.0

    def test_listening_seconds_uses_estimate(self) -> None:
        controller = PhaseController()
        story = Story(id=9, text="word " * 300)
        assert controller.listening_seconds(story) == pytest.approx(122.4)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hang", [True, False])
    async def test_listening_ends_on_estimate_not_narration(
        self, timed_config: RetellConfig, fox_story: Story, hang: bool
    ) -> None:
        controller = _controller(timed_config, narrator=FakeNarrator(hang=hang))

        session = controller.start(fox_story)
        assert session.listen_seconds == pytest.approx(0.2)

        await asyncio.sleep(0.1)
        assert controller.phase is Phase.LISTENING

        await asyncio.sleep(0.25)
        assert controller.phase is Phase.PREP
        elapsed = session.phase_times[Phase.PREP] - session.phase_times[Phase.LISTENING]
        assert elapsed == pytest.approx(0.2, abs=0.05)

        await controller.aclose()

    @pytest.mark.asyncio
    async def test_hanging_narration_cancelled_at_phase_end(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        narrator = FakeNarrator(hang=True)
        controller = _controller(fast_config, narrator=narrator)

        session = controller.start(fox_story)
        await controller.wait()

        assert narrator.cancels >= 1
        assert session.narration.cancelled()

    @pytest.mark.asyncio
    async def test_skip_narration_keeps_timer(
        self, timed_config: RetellConfig, fox_story: Story
    ) -> None:
        narrator = FakeNarrator(hang=True)
        controller = _controller(timed_config, narrator=narrator)

        controller.start(fox_story)
        await asyncio.sleep(0.01)
        controller.skip_narration()
        await asyncio.sleep(0.01)

        assert narrator.cancels == 1
        assert controller.phase is Phase.LISTENING

        await asyncio.sleep(0.3)
        assert controller.phase is Phase.PREP
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_progress(
        self, timed_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(timed_config)
        assert controller.progress() == 0.0

        controller.start(fox_story)
        await asyncio.sleep(0.05)
        assert 0.0 < controller.progress() < 1.0

        await controller.aclose()
        assert controller.progress() == 0.0


class TestDegradedAdapters:
    @pytest.mark.asyncio
    async def test_narrator_failure_does_not_stall(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(fast_config, narrator=FakeNarrator(fail=True))

        controller.start(fox_story)
        outcome = await controller.wait()

        assert controller.phase is Phase.RESULT
        assert outcome.score.percentage == 71

    @pytest.mark.asyncio
    async def test_without_narrator(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(fast_config, narrator=None)

        session = controller.start(fox_story)
        outcome = await controller.wait()

        assert session.narration is None
        assert outcome is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("capture", [None, FakeCapture(unsupported=True)])
    async def test_capture_unavailable_scores_empty_transcript(
        self, fast_config: RetellConfig, fox_story: Story, capture: FakeCapture | None
    ) -> None:
        cue = RecordingCue()
        controller = _controller(fast_config, capture=capture, cue=cue)

        controller.start(fox_story)
        outcome = await controller.wait()

        assert controller.phase is Phase.RESULT
        assert cue.kinds == ["begin", "end"]
        assert outcome.transcript == ""
        assert outcome.score.percentage == 0
        assert outcome.score.missing_keywords == ["dog", "fox", "jumped", "lazy"]

    @pytest.mark.asyncio
    async def test_failing_cue_and_observer(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        class BrokenCue:
            def emit(self, kind: str) -> None:
                raise RuntimeError("no speaker")

        def observer(phase: Phase, session) -> None:
            raise RuntimeError("display gone")

        controller = _controller(fast_config, cue=BrokenCue(), on_phase=observer)

        controller.start(fox_story)
        outcome = await controller.wait()

        assert outcome.score.percentage == 71


class TestSessionIsolation:
    @pytest.mark.asyncio
    async def test_restart_from_result(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        phases: list[Phase] = []
        capture = FakeCapture([["the lazy dog"], ["a fox"]])
        controller = _controller(
            fast_config,
            capture=capture,
            on_phase=lambda phase, session: phases.append(phase),
        )

        first = controller.start(fox_story)
        first_outcome = await controller.wait()
        second = controller.start(fox_story)
        second_outcome = await controller.wait()

        assert second is not first
        assert first_outcome.transcript == "the lazy dog"
        assert second_outcome.transcript == "a fox"
        assert phases[5] is Phase.IDLE
        assert phases[6] is Phase.LISTENING

    @pytest.mark.asyncio
    async def test_stale_chunks_ignored(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        capture = FakeCapture([["the lazy dog"], ["a fox"]])

        def observer(phase: Phase, session) -> None:
            if phase is Phase.SPEAKING and len(capture.callbacks) == 1 and session is not first:
                capture.callbacks[0]("jumped over everything")

        controller = _controller(fast_config, capture=capture, on_phase=observer)

        first = controller.start(fox_story)
        await controller.wait()
        capture.callbacks[0]("late words")
        assert first.transcript == "the lazy dog"

        controller.start(fox_story)
        outcome = await controller.wait()

        assert outcome.transcript == "a fox"
        assert first.transcript == "the lazy dog"

    @pytest.mark.asyncio
    async def test_chunks_accumulate_in_order(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        capture = FakeCapture([["  one ", "", "two", "three  "]])
        controller = _controller(fast_config, capture=capture)

        controller.start(fox_story)
        outcome = await controller.wait()

        assert outcome.transcript == "one two three"


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_when_idle(
        self, fast_config: RetellConfig
    ) -> None:
        controller = _controller(fast_config)
        assert controller.cancel() is False
        assert await controller.wait() is None

    @pytest.mark.asyncio
    async def test_cancel_during_listening(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        narrator = FakeNarrator(hang=True)
        cue = RecordingCue()
        records: list[PracticeRecord] = []
        controller = _controller(fast_config, narrator=narrator, cue=cue, on_record=records.append)

        session = controller.start(fox_story)
        waiter = asyncio.ensure_future(controller.wait())
        await asyncio.sleep(0.01)

        assert controller.cancel() is True
        assert controller.phase is Phase.IDLE
        assert controller.session is None
        assert session.phase is Phase.IDLE
        assert narrator.cancels == 1
        assert await waiter is None

        await asyncio.sleep(0.2)
        assert controller.phase is Phase.IDLE
        assert cue.kinds == []
        assert records == []
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_cancel_during_speaking_stops_capture(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        capture = FakeCapture([FOX_RETELL])
        controller = PhaseController(
            narrator=FakeNarrator(),
            capture=capture,
            config=fast_config.model_copy(
                update={"durations": PhaseDurations(
                    listen_floor_seconds=0.02, prep_seconds=0.02, speak_seconds=5.0
                )}
            ),
        )

        controller.start(fox_story)
        await asyncio.sleep(0.15)
        assert controller.phase is Phase.SPEAKING

        assert controller.cancel() is True
        assert capture.stopped == [1]
        assert controller.phase is Phase.IDLE

    @pytest.mark.asyncio
    async def test_observer_cancel_on_listening_skips_narration(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        narrator = FakeNarrator(hang=True)
        controller = _controller(fast_config, narrator=narrator)

        def cancel_on(phase: Phase, session) -> None:
            if phase is Phase.LISTENING:
                controller.cancel()

        controller.on_phase = cancel_on
        session = controller.start(fox_story)
        await asyncio.sleep(0.01)

        assert session.phase is Phase.IDLE
        assert session.narration is None
        assert session.timer is None
        assert narrator.spoken == []
        await asyncio.wait_for(controller.aclose(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_observer_cancel_on_speaking_skips_capture(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        capture = FakeCapture([FOX_RETELL])
        phases: list[Phase] = []
        controller = _controller(fast_config, capture=capture)

        def cancel_on(phase: Phase, session) -> None:
            phases.append(phase)
            if phase is Phase.SPEAKING:
                controller.cancel()

        controller.on_phase = cancel_on
        session = controller.start(fox_story)
        await asyncio.sleep(0.3)

        assert phases == [Phase.LISTENING, Phase.PREP, Phase.SPEAKING, Phase.IDLE]
        assert capture.callbacks == []
        assert capture.stopped == []
        assert session.timer is None
        assert controller.phase is Phase.IDLE
        await asyncio.wait_for(controller.aclose(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_observer_cannot_cancel_evaluation(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        refused: list[bool] = []
        records: list[PracticeRecord] = []
        controller = _controller(fast_config, on_record=records.append)

        def cancel_on(phase: Phase, session) -> None:
            if phase is Phase.EVALUATING:
                refused.append(controller.cancel())

        controller.on_phase = cancel_on
        controller.start(fox_story)
        outcome = await controller.wait()

        assert refused == [False]
        assert outcome is not None
        assert [r.score for r in records] == [71]
        assert controller.phase is Phase.RESULT

    @pytest.mark.asyncio
    async def test_cancel_after_result_is_noop(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(fast_config)

        controller.start(fox_story)
        await controller.wait()

        assert controller.cancel() is False
        assert controller.phase is Phase.RESULT

    @pytest.mark.asyncio
    async def test_reset(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(fast_config)

        controller.start(fox_story)
        with pytest.raises(PhaseError):
            controller.reset()
        await controller.wait()

        controller.reset()
        assert controller.phase is Phase.IDLE
        assert controller.session is None


class TestStartErrors:
    @pytest.mark.asyncio
    async def test_start_while_running(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        controller = _controller(fast_config)

        controller.start(fox_story)
        with pytest.raises(PhaseError):
            controller.start(fox_story)
        await controller.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stories", [None, []])
    async def test_no_stories(
        self, fast_config: RetellConfig, stories
    ) -> None:
        controller = _controller(fast_config)

        with pytest.raises(NotReadyError):
            controller.start(stories)
        assert controller.phase is Phase.IDLE


class TestRecording:
    @pytest.mark.asyncio
    async def test_record_sink(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        records: list[PracticeRecord] = []
        controller = _controller(fast_config, on_record=records.append)

        controller.start(fox_story)
        await controller.wait()

        assert len(records) == 1
        assert records[0].story_id == 1
        assert records[0].score == 71
        assert records[0].matched == 3

    @pytest.mark.asyncio
    async def test_failing_sink_still_delivers_result(
        self, fast_config: RetellConfig, fox_story: Story
    ) -> None:
        def sink(record: PracticeRecord) -> None:
            raise OSError("disk full")

        controller = _controller(fast_config, on_record=sink)

        controller.start(fox_story)
        outcome = await controller.wait()

        assert controller.phase is Phase.RESULT
        assert outcome.score.percentage == 71

    @pytest.mark.asyncio
    async def test_history_store_sink(
        self, fast_config: RetellConfig, fox_story: Story, tmp_path: Path
    ) -> None:
        store = HistoryStore(tmp_path / "history.json")
        controller = _controller(fast_config, on_record=store)

        controller.start(fox_story)
        await controller.wait()

        assert [r.score for r in store.load()] == [71]
