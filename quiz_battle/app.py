"""Pygame UI shell for Quiz Battle.

The battle rules, timing and scoring live in quiz_battle/battle.py and the
modules under it; this file only draws snapshots and forwards key presses.
"""

from __future__ import annotations

import logging
import os
import random
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .battle import BattleController, BattleSnapshot, Feedback, Phase
from .clock import RealClock
from .config import BattleConfig, load_config
from .questions import BuiltinQuestionSource, JsonQuestionSource, QuestionSource
from .stats import LoggingStatisticsSink, SqliteStatisticsSink, StatisticsSink

logger = logging.getLogger(__name__)

QUESTIONS_PATH_ENV = "QUIZ_BATTLE_QUESTIONS_PATH"
STATS_DB_ENV = "QUIZ_BATTLE_STATS_DB"

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
HEADER_BG = (18, 30, 118)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
GOOD = (90, 210, 120)
BAD = (235, 90, 90)
WARN = (250, 200, 70)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    """Screen stack driven by the frame loop in :func:`run`.

    Only the top screen sees input and is drawn. The root screen is never
    popped; it owns quitting.
    """

    def __init__(self, surface: pygame.Surface) -> None:
        self._surface = surface
        self._stack: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def top(self) -> Screen | None:
        return self._stack[-1] if self._stack else None

    def push(self, screen: Screen) -> None:
        self._stack.append(screen)

    def pop(self) -> bool:
        if len(self._stack) <= 1:
            return False
        self._stack.pop()
        return True

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        screen = self.top
        if screen is not None:
            screen.handle_event(event)

    def render(self) -> None:
        screen = self.top
        if screen is not None:
            screen.render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)
        frame = _draw_frame(surface)
        header = _draw_header(surface, frame, h)

        tag = self._hint_font.render("MENU", True, TEXT_MUTED)
        surface.blit(tag, (header.x + 12, header.y + (header.h - tag.get_height()) // 2))
        title = self._title_font.render(self._title, True, TEXT_MAIN)
        surface.blit(title, title.get_rect(center=(frame.centerx, header.centery)))

        row_h = 44
        gap = 10
        total_h = row_h * len(self._items) + gap * max(0, len(self._items) - 1)
        y = frame.centery - total_h // 2
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.centerx - 180, y, 360, row_h)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (120, 142, 196) if selected else (62, 84, 152), row, 2 if selected else 1)
            text = self._item_font.render(item.label, True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h + gap

        footer = "Up/Down: Move  |  Enter/Space: Select  |  Esc: Back"
        foot = self._hint_font.render(footer, True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class BattleScreen:
    """Draws a BattleController and forwards the player's intents to it."""

    def __init__(self, app: App, *, controller_factory: Callable[[], BattleController]) -> None:
        self._app = app
        self._controller = controller_factory()
        self._choice = 0
        self._dealt = 0

        self._tiny_font = pygame.font.Font(None, 20)
        self._small_font = pygame.font.Font(None, 26)
        self._mid_font = pygame.font.Font(None, 40)
        self._big_font = pygame.font.Font(None, 120)

        self._controller.start_run()

    @property
    def controller(self) -> BattleController:
        return self._controller

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        ctl = self._controller
        snap = ctl.snapshot()
        self._track_question(snap)
        key = event.key

        if snap.phase is Phase.MENU:
            # Only reached when the question source failed.
            if key in (pygame.K_RETURN, pygame.K_KP_ENTER):
                ctl.start_run()
            elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
                self._app.pop()
            return

        if snap.phase is Phase.ENDED:
            if key == pygame.K_r:
                self._choice = 0
                ctl.restart()
            elif key in (pygame.K_h, pygame.K_ESCAPE, pygame.K_BACKSPACE):
                ctl.go_home()
                self._app.pop()
            return

        if key in (pygame.K_p, pygame.K_SPACE):
            ctl.toggle_pause()
            return
        if key == pygame.K_ESCAPE and (event.mod & pygame.KMOD_SHIFT):
            ctl.go_home()
            self._app.pop()
            return

        if snap.phase is not Phase.AWAITING_ANSWER or not snap.options:
            return
        n = len(snap.options)
        picked = self._choice_from_key(key)
        if picked is not None and picked <= n:
            self._choice = picked - 1
            ctl.submit_answer(snap.options[self._choice])
        elif key in (pygame.K_UP, pygame.K_LEFT):
            self._choice = (self._choice - 1) % n
        elif key in (pygame.K_DOWN, pygame.K_RIGHT):
            self._choice = (self._choice + 1) % n
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            ctl.submit_answer(snap.options[self._choice % n])

    @property
    def choice(self) -> int:
        return self._choice

    def _track_question(self, snap: BattleSnapshot) -> None:
        # A freshly dealt question starts with the first option highlighted.
        if snap.questions_presented != self._dealt:
            self._dealt = snap.questions_presented
            self._choice = 0

    def render(self, surface: pygame.Surface) -> None:
        self._controller.update()
        snap = self._controller.snapshot()
        self._track_question(snap)

        w, h = surface.get_size()
        surface.fill(BG)
        frame = _draw_frame(surface)
        header = _draw_header(surface, frame, h)

        title = self._small_font.render("Quiz Battle", True, TEXT_MAIN)
        surface.blit(title, title.get_rect(midleft=(header.x + 12, header.centery)))
        score = self._small_font.render(f"Score: {snap.score}", True, TEXT_MAIN)
        surface.blit(score, score.get_rect(center=header.center))
        time_color = WARN if snap.time_warning else TEXT_MAIN
        timer = self._small_font.render(f"Time: {max(0, snap.time_remaining)}s", True, time_color)
        surface.blit(timer, timer.get_rect(midright=(header.right - 12, header.centery)))

        if snap.phase is Phase.MENU:
            self._render_error(surface, frame, snap)
            return

        bar_w = max(160, (frame.w - 80) // 2 - 20)
        top = header.bottom + 14
        self._draw_hp_bar(surface, pygame.Rect(frame.x + 20, top, bar_w, 22), "Player", snap.player_hp, snap.max_hp)
        self._draw_hp_bar(
            surface,
            pygame.Rect(frame.right - 20 - bar_w, top, bar_w, 22),
            "Boss",
            snap.boss_hp,
            snap.max_hp,
        )
        if snap.taunt:
            bubble = self._small_font.render(f'"{snap.taunt}"', True, WARN)
            surface.blit(bubble, bubble.get_rect(topright=(frame.right - 20, top + 48)))

        content = pygame.Rect(frame.x + 20, top + 78, frame.w - 40, frame.bottom - top - 120)
        pygame.draw.rect(surface, (6, 13, 92), content)
        pygame.draw.rect(surface, (78, 102, 170), content, 1)

        if snap.phase is Phase.COUNTDOWN:
            text = self._big_font.render(snap.countdown_text or "", True, TEXT_MAIN)
            surface.blit(text, text.get_rect(center=content.center))
        elif snap.phase is Phase.ENDED:
            self._render_result(surface, content, snap)
        else:
            self._render_question(surface, content, snap)
            if snap.phase is Phase.PAUSED:
                self._render_pause(surface, content, snap)

        if snap.phase is Phase.ENDED:
            footer = "R: Restart  |  H/Esc: Home"
        else:
            footer = "1-4: Answer  |  Up/Down + Enter  |  P/Space: Pause  |  Shift+Esc: Quit run"
        foot = self._tiny_font.render(footer, True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 12)))

    def _render_question(self, surface: pygame.Surface, content: pygame.Rect, snap: BattleSnapshot) -> None:
        _draw_wrapped_text(
            surface,
            snap.prompt,
            pygame.Rect(content.x + 14, content.y + 12, content.w - 28, 60),
            color=TEXT_MAIN,
            font=self._mid_font,
            max_lines=2,
        )

        y = content.y + 90
        row_h = 38
        for idx, option in enumerate(snap.options):
            row = pygame.Rect(content.x + 14, y, content.w // 2, row_h)
            selected = idx == self._choice and snap.phase is Phase.AWAITING_ANSWER
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (62, 84, 152), row, 1)
            label = self._small_font.render(f"{idx + 1}. {option}", True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(label, (row.x + 12, row.y + (row.h - label.get_height()) // 2))
            y += row_h + 8

        if snap.feedback_text:
            color = GOOD if snap.feedback is Feedback.CORRECT else BAD
            fb = self._small_font.render(snap.feedback_text, True, color)
            surface.blit(fb, fb.get_rect(bottomleft=(content.x + 14, content.bottom - 10)))

    def _render_pause(self, surface: pygame.Surface, content: pygame.Rect, snap: BattleSnapshot) -> None:
        overlay = pygame.Surface(content.size, pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 190))
        surface.blit(overlay, content.topleft)
        paused = self._mid_font.render("PAUSED", True, TEXT_MAIN)
        surface.blit(paused, paused.get_rect(midtop=(content.centerx, content.y + 30)))
        _draw_wrapped_text(
            surface,
            snap.pause_tip or "",
            pygame.Rect(content.x + 40, content.y + 90, content.w - 80, content.h - 100),
            color=TEXT_MUTED,
            font=self._small_font,
            max_lines=5,
        )

    def _render_result(self, surface: pygame.Surface, content: pygame.Rect, snap: BattleSnapshot) -> None:
        headline = "VICTORY!" if snap.completed else "DEFEAT!"
        text = self._big_font.render(headline, True, GOOD if snap.completed else BAD)
        surface.blit(text, text.get_rect(center=(content.centerx, content.y + 80)))
        y = content.y + 150
        for line, color in _result_lines(snap):
            txt = self._small_font.render(line, True, color)
            surface.blit(txt, txt.get_rect(midtop=(content.centerx, y)))
            y += 30

    def _render_error(self, surface: pygame.Surface, frame: pygame.Rect, snap: BattleSnapshot) -> None:
        _draw_wrapped_text(
            surface,
            snap.error or "Could not start the battle.",
            pygame.Rect(frame.x + 40, frame.y + 100, frame.w - 80, 120),
            color=BAD,
            font=self._small_font,
            max_lines=4,
        )
        hint = self._tiny_font.render("Enter: Retry  |  Esc: Back", True, TEXT_MUTED)
        surface.blit(hint, hint.get_rect(midbottom=(frame.centerx, frame.bottom - 12)))

    def _draw_hp_bar(self, surface: pygame.Surface, rect: pygame.Rect, label: str, hp: int, max_hp: int) -> None:
        pygame.draw.rect(surface, (30, 30, 40), rect)
        fill_w = int(rect.w * (hp / max_hp)) if max_hp > 0 else 0
        color = GOOD if hp > max_hp * 0.3 else BAD
        pygame.draw.rect(surface, color, pygame.Rect(rect.x, rect.y, fill_w, rect.h))
        pygame.draw.rect(surface, BORDER, rect, 1)
        txt = self._tiny_font.render(f"{label}  {hp} / {max_hp}", True, TEXT_MAIN)
        surface.blit(txt, (rect.x, rect.bottom + 4))

    @staticmethod
    def _choice_from_key(key: int) -> int | None:
        mapping = {
            pygame.K_1: 1,
            pygame.K_2: 2,
            pygame.K_3: 3,
            pygame.K_4: 4,
            pygame.K_KP1: 1,
            pygame.K_KP2: 2,
            pygame.K_KP3: 3,
            pygame.K_KP4: 4,
        }
        return mapping.get(key)


def _result_lines(snap: BattleSnapshot) -> list[tuple[str, tuple[int, int, int]]]:
    """Text rows of the end-of-run panel, top to bottom."""
    rating = snap.normalized_score if snap.normalized_score is not None else 0
    lines = [
        (f"Final score: {snap.score}", TEXT_MAIN),
        (f"Rating: {rating}/100", TEXT_MAIN),
        (f"Correct: {snap.questions_correct}  Missed: {snap.questions_incorrect}", TEXT_MAIN),
    ]
    if snap.stats_status:
        lines.append((snap.stats_status, TEXT_MUTED))
    if snap.error:
        # A failed restart leaves the run on this screen.
        lines.append((snap.error, BAD))
    return lines


def _draw_frame(surface: pygame.Surface) -> pygame.Rect:
    w, h = surface.get_size()
    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)
    return frame


def _draw_header(surface: pygame.Surface, frame: pygame.Rect, h: int) -> pygame.Rect:
    header_h = max(34, min(52, h // 8))
    header = pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)
    pygame.draw.rect(surface, HEADER_BG, header)
    pygame.draw.line(surface, BORDER, (header.x, header.bottom), (header.right, header.bottom), 1)
    return header


def _draw_wrapped_text(
    surface: pygame.Surface,
    text: str,
    rect: pygame.Rect,
    *,
    color: tuple[int, int, int],
    font: pygame.font.Font,
    max_lines: int,
) -> None:
    words = str(text).split()
    lines: list[str] = []
    cur = ""
    for word in words:
        trial = word if cur == "" else f"{cur} {word}"
        if font.size(trial)[0] <= rect.w:
            cur = trial
            continue
        if cur:
            lines.append(cur)
        cur = word
    if cur:
        lines.append(cur)

    y = rect.y
    line_h = font.get_linesize() + 2
    for line in lines[: max(0, max_lines)]:
        surface.blit(font.render(line, True, color), (rect.x, y))
        y += line_h


def _question_source() -> QuestionSource:
    explicit = os.environ.get(QUESTIONS_PATH_ENV)
    if explicit:
        return JsonQuestionSource(Path(explicit).expanduser())
    return BuiltinQuestionSource()


def _statistics_sink() -> StatisticsSink:
    explicit = os.environ.get(STATS_DB_ENV)
    if explicit:
        return SqliteStatisticsSink(Path(explicit).expanduser())
    return LoggingStatisticsSink()


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: BattleConfig | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("Quiz Battle")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    clock = pygame.time.Clock()

    app = App(surface=surface)

    cfg = config or load_config()
    source = _question_source()
    sink = _statistics_sink()
    real_clock = RealClock()

    def open_battle() -> None:
        seed = _new_seed()
        logger.debug("opening battle with seed %d", seed)
        app.push(
            BattleScreen(
                app,
                controller_factory=lambda: BattleController(
                    clock=real_clock,
                    source=source,
                    config=cfg,
                    seed=seed,
                    sink=sink,
                ),
            )
        )

    main_items = [
        MenuItem("Start Battle", open_battle),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Quiz Battle", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
