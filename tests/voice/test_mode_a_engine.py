"""
Mode A engine tests: the AI describes, the player answers by voice.
"""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.voice.fakes import FAST_TIMINGS, make_deck, wait_until
from voicequiz.core.errors import TRANS_005, CompletionRequestError, GamePhaseError, TransportNegotiationError
from voicequiz.game.mode_a import HINT_ERROR_TEXT, ModeAEngine
from voicequiz.game.models import GameMode, GamePhase, Judgment, WordOutcome
from voicequiz.game.turn_engine import UpdateKind
from voicequiz.services.history import InMemoryHistoryStore
from voicequiz.services.realtime_session import ConnectionPhase
from voicequiz.services.transcription import QueuedTranscriptionSource


@pytest.fixture
def source():
    return QueuedTranscriptionSource()


@pytest.fixture
def history():
    return InMemoryHistoryStore()


class TestRoundCycle:
    @pytest.mark.asyncio
    async def test_correct_answer_scores_and_finishes(self, apple, completions, source, speech, history):
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, history=history, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: engine.hint == "You bite into it.")

        completions.describe.assert_awaited_once_with("apple", ["fruit", "red"], [])
        assert speech.spoken == ["You bite into it."]

        source.push("an apple", is_final=True)
        await wait_until(lambda: engine.phase is GamePhase.FINISHED)

        record = history.recent()[0]
        assert record.score == 1
        assert record.max_score == 1
        assert record.words[0].outcome is WordOutcome.CORRECT
        assert record.words[0].user_transcript == "an apple"
        assert record.transcript == ["AI: You bite into it.", "User: an apple"]
        assert "Correct! The answer was apple" in speech.spoken
        assert speech.paused == 1

    @pytest.mark.asyncio
    async def test_wrong_answer_resumes_interrupted_hint(self, apple, completions, source, speech):
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: engine.hint is not None)

        source.push("pear", is_final=True)
        await wait_until(lambda: speech.resumed == 1)

        assert engine.judgment is Judgment.INCORRECT
        assert engine.round.attempts[0].text == "pear"
        assert completions.describe.await_count == 1
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_wrong_answer_requests_next_hint(self, apple, completions, source, speech):
        completions.describe.side_effect = ["hint one", "hint two"]
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: engine.hint == "hint one")
        speech.is_speaking = False

        source.push("pear", is_final=True)
        await wait_until(lambda: engine.hint == "hint two")

        assert completions.describe.await_args_list[1].args == ("apple", ["fruit", "red"], ["hint one"])
        assert engine.round.hints_given == ["hint one", "hint two"]
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_hint_error_text(self, apple, completions, source):
        completions.describe.side_effect = CompletionRequestError(status_code=500, body="boom")
        engine = ModeAEngine(make_deck(apple), completions, source, timings=FAST_TIMINGS)
        await engine.start()

        await wait_until(lambda: engine.hint == HINT_ERROR_TEXT)
        assert not engine.is_loading
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_stale_hint_is_discarded_after_pass(self, apple, banana, completions, source):
        gate = asyncio.Event()
        calls = []

        async def describe(word, taboo, hints):
            calls.append(word)
            if len(calls) == 1:
                await gate.wait()
                return "stale hint"
            return "fresh hint"

        completions.describe.side_effect = describe
        engine = ModeAEngine(make_deck(apple, banana), completions, source, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: len(calls) == 1)
        first_generation = engine.generation

        assert await engine.use_pass()
        await wait_until(lambda: engine.hint == "fresh hint")
        gate.set()
        await asyncio.sleep(0.02)

        assert engine.hint == "fresh hint"
        assert engine.generation > first_generation
        assert engine.round.hints_given == ["fresh hint"]
        assert engine.results[0].outcome is WordOutcome.PASSED
        await engine.cleanup()


class TestPasses:
    @pytest.mark.asyncio
    async def test_pass_limit(self, food_deck, completions, source):
        engine = ModeAEngine(food_deck, completions, source, timings=FAST_TIMINGS, max_pass_count=2)
        await engine.start()

        assert await engine.use_pass()
        assert await engine.use_pass()
        assert not await engine.use_pass()
        assert engine.snapshot().remaining_passes == 0

        record = await engine.finish()
        assert [w.outcome for w in record.words] == [WordOutcome.PASSED, WordOutcome.PASSED, WordOutcome.UNANSWERED]
        assert record.max_score == 3
        assert record.pass_count == 2
        assert await engine.finish() is None

    @pytest.mark.asyncio
    async def test_pass_rejected_when_not_playing(self, apple, completions, source):
        engine = ModeAEngine(make_deck(apple), completions, source, timings=FAST_TIMINGS)
        assert not await engine.use_pass()


class TestPushToTalk:
    @pytest.mark.asyncio
    async def test_final_within_grace_window(self, apple, completions, source, speech):
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, timings=FAST_TIMINGS, push_to_talk=True)
        await engine.start()
        await wait_until(lambda: engine.hint is not None)

        source.push("apple", is_final=True)
        await asyncio.sleep(0.02)
        assert engine.round.attempts == []

        engine.press_guess()
        assert speech.paused == 1
        source.push("app")
        await wait_until(lambda: engine.user_transcript == "app")
        engine.release_guess()
        source.push("apple", is_final=True)

        await wait_until(lambda: engine.phase is GamePhase.FINISHED)
        assert engine.results[0].outcome is WordOutcome.CORRECT

    @pytest.mark.asyncio
    async def test_partial_judged_after_grace(self, banana, completions, source):
        engine = ModeAEngine(make_deck(banana), completions, source, timings=FAST_TIMINGS, push_to_talk=True)
        await engine.start()

        engine.press_guess()
        source.push("banan")
        await wait_until(lambda: engine.user_transcript == "banan")
        engine.release_guess()

        await wait_until(lambda: len(engine.round.attempts) == 1)
        assert engine.round.attempts[0].text == "banan"
        assert engine.judgment is Judgment.CLOSE
        await engine.cleanup()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_pause_and_resume(self, apple, completions, source, speech):
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: speech.is_speaking)

        await engine.pause()
        assert engine.phase is GamePhase.PAUSED
        assert not source.is_active
        assert speech.is_paused
        with pytest.raises(GamePhaseError):
            await engine.pause()

        await engine.resume()
        assert engine.phase is GamePhase.PLAYING
        assert source.is_active
        assert speech.resumed == 1
        with pytest.raises(GamePhaseError):
            await engine.resume()
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_hint_arriving_during_pause_waits_for_resume(self, apple, completions, source, speech):
        gate = asyncio.Event()

        async def describe(word, taboo, hints):
            await gate.wait()
            return "late hint"

        completions.describe.side_effect = describe
        engine = ModeAEngine(make_deck(apple), completions, source, speech=speech, timings=FAST_TIMINGS)
        await engine.start()
        await wait_until(lambda: completions.describe.call_count == 1)

        await engine.pause()
        gate.set()
        await asyncio.sleep(0.05)

        assert engine.phase is GamePhase.PAUSED
        assert engine.hint is None
        assert engine.round.hints_given == []
        assert speech.spoken == []

        await engine.resume()
        await wait_until(lambda: engine.hint == "late hint")
        assert speech.spoken == ["late hint"]
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_timer_expiry_finishes(self, apple, completions, source, history):
        timings = replace(FAST_TIMINGS, round_duration=0.05, tick_interval=0.01)
        engine = ModeAEngine(make_deck(apple), completions, source, history=history, timings=timings)
        kinds = []
        engine.subscribe(lambda update: kinds.append(update.kind))

        await engine.start()
        await wait_until(lambda: engine.phase is GamePhase.FINISHED)

        assert UpdateKind.TIMER in kinds
        assert len(history) == 1
        assert history.recent()[0].words[0].outcome is WordOutcome.UNANSWERED

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_engine(self, apple, completions, source):
        engine = ModeAEngine(make_deck(apple), completions, source, timings=FAST_TIMINGS)

        def broken(update):
            raise RuntimeError("observer bug")

        engine.subscribe(broken)
        await engine.start()
        assert engine.phase is GamePhase.PLAYING
        await engine.cleanup()

    @pytest.mark.asyncio
    async def test_connection_failure_then_retry(self, apple, completions, source):
        session = MagicMock()
        session.state.phase = ConnectionPhase.DISCONNECTED
        session.session_id = None
        session.connect = AsyncMock(side_effect=TransportNegotiationError(TRANS_005))
        session.disconnect = AsyncMock()

        engine = ModeAEngine(make_deck(apple), completions, source, session=session, timings=FAST_TIMINGS)
        updates = []
        engine.subscribe(updates.append)

        with pytest.raises(TransportNegotiationError):
            await engine.start()
        assert engine.phase is GamePhase.READY
        assert engine.connection_error.code == "TRANS_005"
        assert updates[-1].kind is UpdateKind.ERROR
        assert updates[-1].snapshot.connection_error

        session.connect.side_effect = None
        await engine.start()

        session.connect.assert_awaited_with(GameMode.MODE_A, word="apple", taboo=["fruit", "red"])
        assert engine.connection_error is None
        assert engine.phase is GamePhase.PLAYING

        await engine.finish()
        session.disconnect.assert_awaited()
