from __future__ import annotations

import shutil
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Callable

from colorama import Fore, Style, just_fix_windows_console

from lyricsync.lrc.model import LyricsDocument

CSI = "\x1b["


@dataclass(frozen=True, slots=True)
class Theme:
    title: str = Fore.CYAN + Style.BRIGHT
    current: str = Fore.GREEN + Style.BRIGHT
    translation: str = Fore.GREEN
    dim: str = Style.DIM
    warning: str = Fore.YELLOW + Style.BRIGHT
    reset: str = Style.RESET_ALL


class AnsiRenderer:
    def __init__(self, use_alt_screen: bool = True, theme: Theme | None = None):
        self.use_alt_screen = use_alt_screen
        self.theme = theme or Theme()
        self._entered = False
        self._resize_handler: Callable[..., None] | None = None
        self._last_render_args: tuple[str, list[str], int, int] | None = None
        # frames come from the engine thread and from SIGWINCH on the main thread
        self._lock = threading.RLock()

    def __enter__(self):
        self.enter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exit()

    def enter(self) -> None:
        if self._entered:
            return
        just_fix_windows_console()
        if self.use_alt_screen:
            sys.stdout.write(CSI + "?1049h")  # alt screen
        sys.stdout.write(CSI + "?25l")  # hide cursor
        sys.stdout.write(CSI + "H" + CSI + "2J")  # home + clear
        sys.stdout.flush()
        self._entered = True

        def _on_resize(signum=None, frame=None):
            if self._last_render_args:
                title, lines, current_idx, context_lines = self._last_render_args
                self.render(title, lines, current_idx, context_lines)

        self._resize_handler = _on_resize
        if hasattr(signal, "SIGWINCH") and threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGWINCH, _on_resize)

    def exit(self) -> None:
        if not self._entered:
            return
        if self._resize_handler and hasattr(signal, "SIGWINCH"):
            if threading.current_thread() is threading.main_thread():
                signal.signal(signal.SIGWINCH, signal.SIG_DFL)
        self._resize_handler = None
        sys.stdout.write(self.theme.reset)
        sys.stdout.write(CSI + "?25h")  # show cursor
        if self.use_alt_screen:
            sys.stdout.write(CSI + "?1049l")  # normal screen
        sys.stdout.flush()
        self._entered = False
        self._last_render_args = None

    def render(
        self,
        title: str,
        lines: list[str],
        current_idx: int,
        context_lines: int = 1,
    ) -> None:
        with self._lock:
            # kept for SIGWINCH redraw
            self._last_render_args = (title, lines, current_idx, context_lines)

            cols, rows = shutil.get_terminal_size(fallback=(80, 24))
            # reserve 1 line for title
            body_rows = max(rows - 1, 1)

            # window around current line, but keep within list
            if current_idx < 0:
                start = 0
            else:
                start = max(current_idx - context_lines, 0)
            end = min(start + body_rows, len(lines))
            start = max(end - body_rows, 0)

            out: list[str] = [f"{self.theme.title}♫ {title} ♫{self.theme.reset}"]
            for i in range(start, end):
                style = self.theme.current if i == current_idx else self.theme.dim
                out.append(f"{style}{lines[i][:cols]}{self.theme.reset}")

            # move home + clear, then print full frame
            sys.stdout.write(CSI + "H" + CSI + "2J")
            sys.stdout.write("\n".join(out))
            sys.stdout.write(self.theme.reset)
            sys.stdout.flush()


class LyricsView:
    """Turns engine notifications into frames."""

    def __init__(
        self,
        renderer: AnsiRenderer,
        *,
        context_lines: int = 1,
        show_translation: bool = False,
        title: Callable[[], str] = lambda: "lyricsync",
    ):
        self.renderer = renderer
        self.context_lines = context_lines
        self.show_translation = show_translation
        self.title = title
        self._doc: LyricsDocument | None = None
        self._lines: list[str] = []
        # document line index -> first rendered row
        self._rows: list[int] = []

    def on_document(self, doc: LyricsDocument | None) -> None:
        self._doc = doc
        self._lines = []
        self._rows = []
        if doc is not None:
            lang = doc.metadata.translation_languages[0] if doc.metadata.translation_languages else None
            for ln in doc.lines:
                self._rows.append(len(self._lines))
                self._lines.append(ln.content)
                if self.show_translation and lang is not None:
                    tr = ln.translation(lang)
                    if tr:
                        self._lines.append(tr)
        self.on_line(None)

    def on_line(self, index: int | None) -> None:
        if self._doc is None:
            self.show_message("No lyrics for the current track")
            return
        row = self._rows[index] if index is not None and index < len(self._rows) else -1
        self.renderer.render(self.title(), self._lines, row, self.context_lines)

    def show_message(self, text: str) -> None:
        t = self.renderer.theme
        self.renderer.render(self.title(), [f"{t.warning}{text}{t.reset}"], -1, self.context_lines)
