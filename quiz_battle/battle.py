"""Boss-battle state machine.

    MENU -> COUNTDOWN -> AWAITING_ANSWER <-> PAUSED
                              |
                          RESOLVING -> AWAITING_ANSWER (next question)
                              |
                            ENDED -> COUNTDOWN (restart) | MENU (home)

Everything is single-threaded and polled: the presentation loop calls
``update()`` every frame, which delivers due timer ticks and due delayed
transitions. Every handler checks the phase first, so a late timer event or
a second tap on an answer is dropped instead of being applied twice.

Delayed transitions carry the run generation they were scheduled under;
``start_run`` and ``go_home`` bump the generation, which makes any callback
left over from an earlier run inert.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .clock import CallScheduler, Clock
from .combat import CombatState
from .config import BattleConfig
from .questions import Question, QuestionBank, QuestionSource, QuizBattleError
from .scoring import ScoreEngine, round_half_up
from .stats import RunStatistics, StatisticsSink, submit_statistics
from .timer import CountdownTimer

logger = logging.getLogger(__name__)

TIME_WARNING_S = 5
FIGHT_TEXT = "FIGHT!"

VILLAIN_TAUNTS: tuple[str, ...] = (
    "So close!",
    "Faster!",
    "My problems are tough!",
    "Keep trying!",
    "Need a calculator? Heh.",
    "Oops, not that one!",
)

MATH_TIPS: tuple[str, ...] = (
    "Multiply any number by 9 and add up the digits of the result: you get 9. (9 x 7 = 63 -> 6 + 3 = 9)",
    "Pi never ends and never repeats a pattern. It is an irrational number!",
    "A googol is a 1 followed by 100 zeros. An incredibly large number!",
    "The Fibonacci sequence (1, 1, 2, 3, 5, 8...) shows up all over nature, like in flower petals.",
    "Zero was invented in India and is essential to the number system we use today.",
    "Multiplying by 11 is easy: for 25 x 11, split the 2 and the 5 and put their sum (7) in between: 275!",
)


class Phase(str, Enum):
    MENU = "menu"
    COUNTDOWN = "countdown"
    AWAITING_ANSWER = "awaiting_answer"
    RESOLVING = "resolving"
    PAUSED = "paused"
    ENDED = "ended"


class Feedback(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class AnswerEvent:
    index: int
    prompt: str
    correct_answer: int
    chosen: int | None  # None on timeout
    outcome: Feedback
    response_time_s: float
    points: int


@dataclass(slots=True)
class RunState:
    """Mutable per-run aggregate, owned by one BattleController."""

    combat: CombatState
    phase: Phase = Phase.MENU
    score: int = 0
    consecutive_correct: int = 0
    questions_presented: int = 0
    questions_correct: int = 0
    questions_incorrect: int = 0
    failures: int = 0
    started_at_s: float | None = None
    ended_at_s: float | None = None
    completed: bool = False
    time_remaining: int = 0  # -1 means the question just timed out

    @property
    def player_hp(self) -> int:
        return self.combat.player_hp

    @property
    def boss_hp(self) -> int:
        return self.combat.boss_hp


@dataclass(frozen=True, slots=True)
class BattleSnapshot:
    """View model for the UI (pure data)."""

    phase: Phase
    player_hp: int
    boss_hp: int
    max_hp: int
    score: int
    time_remaining: int
    time_warning: bool
    prompt: str
    options: tuple[int, ...]
    consecutive_correct: int
    questions_presented: int
    questions_correct: int
    questions_incorrect: int
    countdown_text: str | None = None
    feedback: Feedback | None = None
    feedback_text: str = ""
    taunt: str | None = None
    pause_tip: str | None = None
    completed: bool = False
    normalized_score: int | None = None
    error: str | None = None
    stats_status: str = ""


@dataclass(slots=True)
class _ActiveQuestion:
    question: Question
    options: tuple[int, ...]
    presented_at_s: float
    paused_total_s: float = 0.0
    pause_started_at_s: float | None = None


BattleListener = Callable[[BattleSnapshot], None]


class BattleController:
    """Runs one boss battle at a time for the presentation layer.

    - Deterministic: option order, taunts and tips come from an RNG seeded at
      construction; the question bank is seeded from the same stream.
    - Time is entirely via the injected Clock.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        source: QuestionSource,
        config: BattleConfig | None = None,
        seed: int | None = None,
        sink: StatisticsSink | None = None,
    ) -> None:
        self._clock = clock
        self._source = source
        self._cfg = config or BattleConfig()
        self._sink = sink
        self._rng = random.Random(seed)

        self._scores = ScoreEngine(self._cfg.scoring)
        self._scheduler = CallScheduler(clock)
        self._timer = CountdownTimer(clock=clock, on_tick=self._on_tick, on_timeout=self._on_timeout)
        self._bank = QuestionBank(rng=random.Random(self._rng.getrandbits(64)))

        self._state = self._fresh_state()
        self._generation = 0
        self._listeners: list[BattleListener] = []
        self._events: list[AnswerEvent] = []

        self._current: _ActiveQuestion | None = None
        self._countdown_text: str | None = None
        self._feedback: Feedback | None = None
        self._feedback_text = ""
        self._taunt: str | None = None
        self._taunt_handle: int | None = None
        self._pause_tip: str | None = None
        self._error: str | None = None
        self._stats_status = ""
        self._normalized: int | None = None
        self._last_stats: RunStatistics | None = None

    # -- read side -------------------------------------------------------

    @property
    def config(self) -> BattleConfig:
        return self._cfg

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_question(self) -> Question | None:
        return None if self._current is None else self._current.question

    @property
    def last_statistics(self) -> RunStatistics | None:
        return self._last_stats

    def events(self) -> list[AnswerEvent]:
        return list(self._events)

    def subscribe(self, listener: BattleListener) -> Callable[[], None]:
        """Register a listener called with a fresh snapshot after every change.

        Returns a callable that removes the listener.
        """

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> BattleSnapshot:
        s = self._state
        cur = self._current
        showing_question = s.phase in (Phase.AWAITING_ANSWER, Phase.RESOLVING, Phase.PAUSED)
        return BattleSnapshot(
            phase=s.phase,
            player_hp=s.player_hp,
            boss_hp=s.boss_hp,
            max_hp=s.combat.max_hp,
            score=s.score,
            time_remaining=s.time_remaining,
            time_warning=s.phase is Phase.AWAITING_ANSWER and 0 <= s.time_remaining <= TIME_WARNING_S,
            prompt=cur.question.prompt if (cur is not None and showing_question) else "",
            options=cur.options if (cur is not None and showing_question) else (),
            consecutive_correct=s.consecutive_correct,
            questions_presented=s.questions_presented,
            questions_correct=s.questions_correct,
            questions_incorrect=s.questions_incorrect,
            countdown_text=self._countdown_text,
            feedback=self._feedback,
            feedback_text=self._feedback_text,
            taunt=self._taunt,
            pause_tip=self._pause_tip,
            completed=s.completed,
            normalized_score=self._normalized,
            error=self._error,
            stats_status=self._stats_status,
        )

    # -- user intents ----------------------------------------------------

    def start_run(self) -> bool:
        """Fetch questions and begin the countdown. Returns True if started.

        On a question source or bank failure the phase is left unchanged and
        the message is exposed as ``snapshot().error``.
        """

        if self._state.phase not in (Phase.MENU, Phase.ENDED):
            return False

        bank = QuestionBank(rng=random.Random(self._rng.getrandbits(64)))
        try:
            bank.load(self._source.fetch_questions(self._cfg.category))
        except QuizBattleError as exc:
            logger.warning("cannot start run: %s", exc)
            self._error = f"Could not load questions: {exc}"
            self._notify()
            return False

        self._invalidate_pending()
        self._bank = bank
        self._reset_run_fields()
        self._state = self._fresh_state()
        self._set_phase(Phase.COUNTDOWN)
        logger.info("run %d starting with %d questions", self._generation, len(bank))
        self._countdown_step(0)
        return True

    def restart(self) -> bool:
        if self._state.phase is not Phase.ENDED:
            return False
        return self.start_run()

    def go_home(self) -> bool:
        if self._state.phase is Phase.MENU:
            return False
        if self._state.phase is not Phase.ENDED:
            logger.info("run %d abandoned in phase %s", self._generation, self._state.phase.value)
        self._invalidate_pending()
        self._reset_run_fields()
        self._state = self._fresh_state()
        self._notify()
        return True

    def submit_answer(self, option: int) -> bool:
        """Answer the current question. Returns True if the answer was taken."""

        if self._state.phase is not Phase.AWAITING_ANSWER or self._current is None:
            logger.debug("ignoring answer %r in phase %s", option, self._state.phase.value)
            return False

        self._timer.cancel()
        cur = self._current
        response_time_s = max(0.0, self._clock.now() - cur.presented_at_s - cur.paused_total_s)
        self._set_phase(Phase.RESOLVING, notify=False)

        s = self._state
        if cur.question.is_correct(option):
            s.consecutive_correct += 1
            outcome = self._scores.score_correct(
                response_time_s=response_time_s,
                consecutive_correct=s.consecutive_correct,
            )
            s.score += outcome.points
            s.combat.apply_player_attack(self._cfg.damage.player_attack)
            s.questions_correct += 1
            self._feedback = Feedback.CORRECT
            extras = [label for hit, label in ((outcome.rapid, "speed bonus"), (outcome.streak, "streak bonus")) if hit]
            suffix = f" ({', '.join(extras)})" if extras else ""
            self._feedback_text = f"CRITICAL HIT! +{outcome.points} points{suffix}"
            self._record(chosen=option, outcome=Feedback.CORRECT, response_time_s=response_time_s, points=outcome.points)
        else:
            damage = self._cfg.damage.enemy_wrong_answer
            self._apply_failure(damage)
            self._feedback = Feedback.INCORRECT
            self._feedback_text = f"MISS! The answer was {cur.question.correct_answer}. -{damage} HP"
            self._record(
                chosen=option,
                outcome=Feedback.INCORRECT,
                response_time_s=response_time_s,
                points=self._scores.score_incorrect_or_timeout(),
            )

        logger.debug("answer %r -> %s (score %d)", option, self._feedback.value, s.score)
        self._notify()
        self._check_status()
        return True

    def request_pause(self) -> bool:
        if self._state.phase is not Phase.AWAITING_ANSWER or self._current is None:
            return False
        self._timer.pause()
        self._current.pause_started_at_s = self._clock.now()
        self._pause_tip = self._rng.choice(MATH_TIPS)
        self._set_phase(Phase.PAUSED)
        return True

    def request_resume(self) -> bool:
        if self._state.phase is not Phase.PAUSED or self._current is None:
            return False
        cur = self._current
        if cur.pause_started_at_s is not None:
            cur.paused_total_s += max(0.0, self._clock.now() - cur.pause_started_at_s)
            cur.pause_started_at_s = None
        self._pause_tip = None
        self._set_phase(Phase.AWAITING_ANSWER, notify=False)
        self._timer.resume()
        self._notify()
        return True

    def toggle_pause(self) -> bool:
        if self._state.phase is Phase.PAUSED:
            return self.request_resume()
        return self.request_pause()

    def update(self) -> None:
        """Deliver due timer ticks and delayed transitions. Call once per frame."""

        self._timer.update()
        self._scheduler.run_due()

    # -- internals -------------------------------------------------------

    def _fresh_state(self) -> RunState:
        return RunState(combat=CombatState(max_hp=self._cfg.max_hp))

    def _reset_run_fields(self) -> None:
        self._events = []
        self._current = None
        self._countdown_text = None
        self._feedback = None
        self._feedback_text = ""
        self._taunt = None
        self._taunt_handle = None
        self._pause_tip = None
        self._error = None
        self._stats_status = ""
        self._normalized = None
        self._last_stats = None

    def _invalidate_pending(self) -> None:
        self._generation += 1
        self._timer.cancel()
        self._scheduler.cancel_all()

    def _later(self, delay_s: float, fn: Callable[[], None]) -> int:
        gen = self._generation

        def fire() -> None:
            if gen != self._generation:
                logger.debug("dropping stale callback from run %d", gen)
                return
            fn()

        return self._scheduler.call_later(delay_s, fire)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)

    def _set_phase(self, phase: Phase, *, notify: bool = True) -> None:
        prev = self._state.phase
        self._state.phase = phase
        logger.debug("phase %s -> %s", prev.value, phase.value)
        if notify:
            self._notify()

    def _countdown_step(self, index: int) -> None:
        timing = self._cfg.timing
        steps = ("3", "2", "1")
        if index < len(steps):
            self._countdown_text = steps[index]
            self._notify()
            self._later(timing.countdown_step_s, lambda: self._countdown_step(index + 1))
        elif index == len(steps):
            self._countdown_text = FIGHT_TEXT
            self._notify()
            self._later(timing.countdown_fight_s, lambda: self._countdown_step(index + 1))
        else:
            self._countdown_text = None
            self._state.started_at_s = self._clock.now()
            self._deal_question()

    def _deal_question(self) -> None:
        if self._state.phase not in (Phase.COUNTDOWN, Phase.RESOLVING):
            return
        question = self._bank.next()
        options = list(question.options)
        self._rng.shuffle(options)
        self._current = _ActiveQuestion(
            question=question,
            options=tuple(options),
            presented_at_s=self._clock.now(),
        )
        s = self._state
        s.questions_presented += 1
        s.time_remaining = self._cfg.time_limit_s
        self._feedback = None
        self._feedback_text = ""
        self._timer.start(self._cfg.time_limit_s)
        self._set_phase(Phase.AWAITING_ANSWER)

    def _on_tick(self, remaining: int) -> None:
        if self._state.phase is not Phase.AWAITING_ANSWER:
            return
        self._state.time_remaining = remaining
        self._notify()

    def _on_timeout(self) -> None:
        if self._state.phase is not Phase.AWAITING_ANSWER or self._current is None:
            logger.debug("ignoring stale timeout in phase %s", self._state.phase.value)
            return

        self._timer.cancel()
        cur = self._current
        self._state.time_remaining = -1
        self._set_phase(Phase.RESOLVING, notify=False)

        damage = self._cfg.damage.enemy_timeout
        self._apply_failure(damage)
        self._feedback = Feedback.TIMEOUT
        self._feedback_text = f"TIME'S UP! -{damage} HP"
        self._record(
            chosen=None,
            outcome=Feedback.TIMEOUT,
            response_time_s=max(0.0, self._clock.now() - cur.presented_at_s - cur.paused_total_s),
            points=self._scores.score_incorrect_or_timeout(),
        )
        logger.debug("question timed out (player hp %d)", self._state.player_hp)
        self._notify()
        self._check_status()

    def _apply_failure(self, damage: int) -> None:
        s = self._state
        s.consecutive_correct = 0
        s.questions_incorrect += 1
        s.combat.apply_enemy_attack(damage)
        s.failures += 1
        if s.failures % self._cfg.taunt_every == 0:
            self._show_taunt()

    def _show_taunt(self) -> None:
        if self._taunt_handle is not None:
            self._scheduler.cancel(self._taunt_handle)
        self._taunt = self._rng.choice(VILLAIN_TAUNTS)
        self._taunt_handle = self._later(self._cfg.timing.taunt_display_s, self._hide_taunt)

    def _hide_taunt(self) -> None:
        self._taunt = None
        self._taunt_handle = None
        self._notify()

    def _record(self, *, chosen: int | None, outcome: Feedback, response_time_s: float, points: int) -> None:
        assert self._current is not None
        q = self._current.question
        self._events.append(
            AnswerEvent(
                index=len(self._events),
                prompt=q.prompt,
                correct_answer=q.correct_answer,
                chosen=chosen,
                outcome=outcome,
                response_time_s=response_time_s,
                points=points,
            )
        )

    def _check_status(self) -> None:
        s = self._state
        timing = self._cfg.timing
        if s.combat.is_boss_defeated():
            s.completed = True
            self._later(timing.resolve_to_end_s, self._end_run)
        elif s.combat.is_player_defeated():
            s.completed = False
            self._later(timing.resolve_to_end_s, self._end_run)
        else:
            self._later(timing.resolve_to_next_s, self._deal_question)

    def _end_run(self) -> None:
        s = self._state
        if s.phase is not Phase.RESOLVING:
            return
        self._timer.cancel()
        s.ended_at_s = self._clock.now()
        if s.completed:
            s.score += self._scores.completion_bonus()
        self._normalized = self._scores.normalize(s.score, s.questions_presented)

        started = s.started_at_s if s.started_at_s is not None else s.ended_at_s
        self._last_stats = RunStatistics(
            user_id=self._cfg.user_id,
            game_id=self._cfg.game_id,
            normalized_score=self._normalized,
            time_spent_s=round_half_up(max(0.0, s.ended_at_s - started)),
            score=s.score,
            questions_presented=s.questions_presented,
            questions_correct=s.questions_correct,
            questions_incorrect=s.questions_incorrect,
            completed=s.completed,
        )
        self._set_phase(Phase.ENDED, notify=False)
        logger.info(
            "run %d ended: %s, score %d (%d/100)",
            self._generation,
            "victory" if s.completed else "defeat",
            s.score,
            self._normalized,
        )
        self._stats_status = submit_statistics(self._sink, self._last_stats)
        self._notify()
