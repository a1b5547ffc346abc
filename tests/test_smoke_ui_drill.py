from __future__ import annotations

import os


def _key(key: int, unicode: str = "") -> None:
    import pygame

    pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": key, "unicode": unicode}))


def test_ui_smoke_start_drill_type_skip_and_end() -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from voice_math_trainer.app import run
    from voice_math_trainer.config import AppSettings

    def inject(frame: int) -> None:
        # Main Menu -> Start drill, type an answer, skip, end, back to menu, quit.
        if frame == 1:
            _key(pygame.K_RETURN)
        elif frame == 3:
            _key(pygame.K_4, "4")
        elif frame == 4:
            _key(pygame.K_BACKSPACE)
        elif frame == 5:
            _key(pygame.K_RETURN)
        elif frame == 6:
            _key(pygame.K_F1)
        elif frame == 7:
            _key(pygame.K_F2)
        elif frame == 9:
            _key(pygame.K_ESCAPE)
        elif frame == 11:
            _key(pygame.K_SPACE, " ")
        elif frame in (13, 14):
            _key(pygame.K_DOWN)
        elif frame == 15:
            _key(pygame.K_RETURN)

    assert run(max_frames=40, event_injector=inject, settings=AppSettings(tts_enabled=False)) == 0


def test_ui_smoke_adjust_settings() -> None:
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from voice_math_trainer.app import run
    from voice_math_trainer.config import AppSettings

    def inject(frame: int) -> None:
        # Main Menu -> Settings, walk the items adjusting each, back out.
        if frame == 1:
            _key(pygame.K_DOWN)
        elif frame == 2:
            _key(pygame.K_RETURN)
        elif 3 <= frame < 30:
            _key((pygame.K_RIGHT, pygame.K_LEFT, pygame.K_RETURN, pygame.K_DOWN)[frame % 4])
        elif frame == 31:
            _key(pygame.K_ESCAPE)

    assert run(max_frames=40, event_injector=inject, settings=AppSettings(tts_enabled=False)) == 0
