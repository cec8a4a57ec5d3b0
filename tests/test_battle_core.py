from __future__ import annotations

from dataclasses import dataclass

import pytest

from quiz_battle.battle import FIGHT_TEXT, MATH_TIPS, VILLAIN_TAUNTS, BattleController, BattleSnapshot, Feedback, Phase
from quiz_battle.config import BattleConfig
from quiz_battle.questions import BuiltinQuestionSource, Question, SourceUnavailableError


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


class ListSource:
    def __init__(self, questions: list[Question]) -> None:
        self.questions = questions

    def fetch_questions(self, category: str) -> list[Question]:
        return list(self.questions)


class DownSource:
    def fetch_questions(self, category: str) -> list[Question]:
        raise SourceUnavailableError("network unreachable")


def _controller(clock: FakeClock, **kwargs: object) -> BattleController:
    kwargs.setdefault("source", BuiltinQuestionSource())
    kwargs.setdefault("seed", 7)
    return BattleController(clock=clock, **kwargs)  # type: ignore[arg-type]


def _step(clock: FakeClock, ctl: BattleController, dt: float) -> None:
    clock.advance(dt)
    ctl.update()


def _start_and_fight(clock: FakeClock, ctl: BattleController) -> None:
    assert ctl.start_run() is True
    for _ in range(3):
        _step(clock, ctl, 1.5)
    _step(clock, ctl, 1.0)
    assert ctl.phase is Phase.AWAITING_ANSWER


def _wrong_option(ctl: BattleController) -> int:
    q = ctl.current_question
    assert q is not None
    return next(o for o in q.options if o != q.correct_answer)


def test_countdown_sequence_then_first_question() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    assert ctl.phase is Phase.MENU

    assert ctl.start_run() is True
    assert ctl.phase is Phase.COUNTDOWN
    texts = [ctl.snapshot().countdown_text]
    for dt in (1.5, 1.5, 1.5):
        _step(clock, ctl, dt)
        texts.append(ctl.snapshot().countdown_text)
    assert texts == ["3", "2", "1", FIGHT_TEXT]
    assert ctl.phase is Phase.COUNTDOWN

    _step(clock, ctl, 1.0)
    snap = ctl.snapshot()
    assert snap.phase is Phase.AWAITING_ANSWER
    assert snap.countdown_text is None
    assert snap.time_remaining == 15
    assert snap.questions_presented == 1
    assert ctl.state.started_at_s == pytest.approx(5.5)

    q = ctl.current_question
    assert q is not None
    assert snap.prompt == q.prompt
    assert sorted(snap.options) == sorted(q.options)


def test_countdown_cannot_be_skipped_or_paused() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    ctl.start_run()
    assert ctl.start_run() is False
    assert ctl.request_pause() is False
    assert ctl.submit_answer(12) is False
    assert ctl.phase is Phase.COUNTDOWN


def test_correct_answer_scenario() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    phases: list[Phase] = []

    def record(snap: BattleSnapshot) -> None:
        if not phases or phases[-1] is not snap.phase:
            phases.append(snap.phase)

    ctl.subscribe(record)

    _step(clock, ctl, 1.0)
    q = ctl.current_question
    assert q is not None
    assert ctl.submit_answer(q.correct_answer) is True

    snap = ctl.snapshot()
    assert snap.boss_hp == 75
    assert snap.player_hp == 100
    assert snap.score == 12
    assert snap.feedback is Feedback.CORRECT
    assert snap.consecutive_correct == 1
    assert "+12" in snap.feedback_text

    _step(clock, ctl, 1.2)
    assert phases[:1] == [Phase.AWAITING_ANSWER]
    assert phases[-2:] == [Phase.RESOLVING, Phase.AWAITING_ANSWER]
    assert ctl.snapshot().feedback is None
    assert ctl.snapshot().questions_presented == 2


def test_four_timeouts_drain_player_health() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    for i in range(1, 5):
        _step(clock, ctl, 16.5)
        snap = ctl.snapshot()
        assert snap.phase is Phase.RESOLVING
        assert snap.feedback is Feedback.TIMEOUT
        assert snap.time_remaining == -1
        assert snap.player_hp == 100 - 15 * i
        assert snap.score == 0
        _step(clock, ctl, 1.25)
        assert ctl.phase is Phase.AWAITING_ANSWER

    assert ctl.state.player_hp == 40
    assert ctl.state.questions_incorrect == 4
    assert [e.chosen for e in ctl.events()] == [None] * 4


def test_incorrect_answer_damages_player_and_resets_streak() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    q = ctl.current_question
    assert q is not None
    ctl.submit_answer(q.correct_answer)
    _step(clock, ctl, 1.25)
    assert ctl.state.consecutive_correct == 1

    ctl.submit_answer(_wrong_option(ctl))
    snap = ctl.snapshot()
    assert snap.feedback is Feedback.INCORRECT
    assert snap.player_hp == 80
    assert snap.consecutive_correct == 0
    assert snap.score == 12
    assert snap.questions_correct == 1
    assert snap.questions_incorrect == 1


def test_late_answer_after_resolution_changes_nothing() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    q = ctl.current_question
    assert q is not None
    assert ctl.submit_answer(q.correct_answer) is True
    before = ctl.snapshot()
    events_before = ctl.events()

    # Double tap and a wrong answer racing in after resolution.
    assert ctl.submit_answer(q.correct_answer) is False
    assert ctl.submit_answer(_wrong_option(ctl)) is False

    assert ctl.snapshot() == before
    assert ctl.events() == events_before


def test_timer_does_not_fire_after_answer() -> None:
    clock = FakeClock()
    ctl = _controller(clock, config=BattleConfig(time_limit_s=1))
    _start_and_fight(clock, ctl)

    q = ctl.current_question
    assert q is not None
    ctl.submit_answer(q.correct_answer)
    # Resolution delay is longer than the (cancelled) question timer.
    _step(clock, ctl, 1.0)
    snap = ctl.snapshot()
    assert snap.phase is Phase.RESOLVING
    assert snap.player_hp == 100
    assert snap.questions_incorrect == 0


def test_pause_preserves_time_and_excludes_paused_time_from_response() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    _step(clock, ctl, 2.0)
    assert ctl.snapshot().time_remaining == 13

    assert ctl.request_pause() is True
    snap = ctl.snapshot()
    assert snap.phase is Phase.PAUSED
    assert snap.pause_tip in MATH_TIPS
    assert snap.time_warning is False

    q = ctl.current_question
    assert q is not None
    assert ctl.submit_answer(q.correct_answer) is False
    assert ctl.request_pause() is False

    _step(clock, ctl, 10.0)
    assert ctl.snapshot().time_remaining == 13

    assert ctl.request_resume() is True
    assert ctl.snapshot().pause_tip is None
    _step(clock, ctl, 0.5)
    assert ctl.snapshot().time_remaining == 13
    _step(clock, ctl, 0.5)
    assert ctl.snapshot().time_remaining == 12

    ctl.submit_answer(q.correct_answer)
    # 3 seconds of unpaused answering: no rapid bonus.
    assert ctl.events()[-1].response_time_s == pytest.approx(3.0)
    assert ctl.state.score == 10


def test_toggle_pause() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)
    assert ctl.toggle_pause() is True
    assert ctl.phase is Phase.PAUSED
    assert ctl.toggle_pause() is True
    assert ctl.phase is Phase.AWAITING_ANSWER
    assert ctl.request_resume() is False


def test_time_warning_in_last_five_seconds() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    _step(clock, ctl, 9.0)
    assert ctl.snapshot().time_remaining == 6
    assert ctl.snapshot().time_warning is False
    _step(clock, ctl, 1.0)
    assert ctl.snapshot().time_remaining == 5
    assert ctl.snapshot().time_warning is True


def test_taunt_every_second_failure_and_hides_later() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    ctl.submit_answer(_wrong_option(ctl))
    assert ctl.snapshot().taunt is None
    _step(clock, ctl, 1.25)

    ctl.submit_answer(_wrong_option(ctl))
    taunt = ctl.snapshot().taunt
    assert taunt in VILLAIN_TAUNTS

    _step(clock, ctl, 1.25)
    assert ctl.snapshot().taunt == taunt
    _step(clock, ctl, 2.5)
    assert ctl.snapshot().taunt is None


def test_start_failure_stays_in_menu_with_error() -> None:
    clock = FakeClock()
    ctl = _controller(clock, source=DownSource())
    assert ctl.start_run() is False
    snap = ctl.snapshot()
    assert snap.phase is Phase.MENU
    assert snap.error is not None and "network unreachable" in snap.error

    _step(clock, ctl, 10.0)
    assert ctl.phase is Phase.MENU


@pytest.mark.parametrize(
    "questions",
    [
        [],
        [Question(prompt="1 + 1", correct_answer=2, options=(2,))],
    ],
)
def test_unplayable_question_sets_block_start(questions: list[Question]) -> None:
    ctl = _controller(FakeClock(), source=ListSource(questions))
    assert ctl.start_run() is False
    assert ctl.phase is Phase.MENU
    assert ctl.snapshot().error


def test_go_home_invalidates_pending_callbacks_from_old_run() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    _start_and_fight(clock, ctl)

    q = ctl.current_question
    assert q is not None
    ctl.submit_answer(q.correct_answer)
    old_generation = ctl.generation

    # The next-question callback is pending when we leave and start again.
    assert ctl.go_home() is True
    assert ctl.phase is Phase.MENU
    assert ctl.snapshot().score == 0
    assert ctl.start_run() is True
    assert ctl.generation > old_generation

    _step(clock, ctl, 1.25)
    snap = ctl.snapshot()
    assert snap.phase is Phase.COUNTDOWN
    assert snap.countdown_text == "3"
    assert snap.questions_presented == 0
    assert snap.boss_hp == 100


def test_go_home_during_countdown_cancels_it() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    ctl.start_run()
    _step(clock, ctl, 1.5)
    assert ctl.go_home() is True
    assert ctl.go_home() is False
    for _ in range(10):
        _step(clock, ctl, 1.5)
    assert ctl.phase is Phase.MENU
    assert ctl.current_question is None


def test_listener_unsubscribe() -> None:
    clock = FakeClock()
    ctl = _controller(clock)
    seen: list[Phase] = []
    unsubscribe = ctl.subscribe(lambda snap: seen.append(snap.phase))
    ctl.start_run()
    assert seen == [Phase.COUNTDOWN, Phase.COUNTDOWN]
    unsubscribe()
    unsubscribe()
    _step(clock, ctl, 1.5)
    assert len(seen) == 2


def test_same_seed_same_battle() -> None:
    def play(seed: int) -> list[tuple[str, tuple[int, ...]]]:
        clock = FakeClock()
        ctl = _controller(clock, seed=seed)
        _start_and_fight(clock, ctl)
        seen = []
        for _ in range(3):
            snap = ctl.snapshot()
            seen.append((snap.prompt, snap.options))
            ctl.submit_answer(_wrong_option(ctl))
            _step(clock, ctl, 1.25)
        return seen

    assert play(5) == play(5)
