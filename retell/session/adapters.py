"""
retell.session.adapters - Narration, capture and cue adapters.

The phase controller only depends on the three protocols below. The
concrete adapters here back the command-line practice session: a system
text-to-speech narrator (say / espeak), a silent text narrator, a
scripted capture that replays a prepared transcript, and a terminal cue.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Literal, Protocol

from rich.console import Console
from rich.markup import escape

from retell.exceptions import AdapterFailureError, UnsupportedCapabilityError
from retell.text.normalize import split_sentences

CueKind = Literal["begin", "end"]
ChunkCallback = Callable[[str], None]

TTS_COMMANDS = ("say", "espeak-ng", "espeak")


class Narrator(Protocol):
    async def speak(self, text: str) -> None:
        """Narrate text; returns when narration finishes or is cancelled."""
        ...

    def cancel(self) -> None:
        """Stop narrating. Idempotent, safe before start or after completion."""
        ...


class Capture(Protocol):
    def start(self, on_final_chunk: ChunkCallback) -> Any:
        """Begin capturing; raises UnsupportedCapabilityError if unavailable."""
        ...

    def stop(self, handle: Any) -> None:
        """Stop the capture started with `handle`."""
        ...


class CueEmitter(Protocol):
    def emit(self, kind: CueKind) -> None: ...


class SystemNarrator:
    """Speaks sentence by sentence through a command-line TTS program."""

    def __init__(self, command: str | None = None, words_per_minute: int = 150) -> None:
        path = shutil.which(command) if command else _find_tts_command()
        if not path:
            raise UnsupportedCapabilityError(
                "narration",
                "No text-to-speech program found in PATH",
                "Install espeak-ng (Linux) or use macOS 'say'",
            )
        self.path = path
        self.words_per_minute = words_per_minute
        self._process: asyncio.subprocess.Process | None = None
        self._cancelled = False

    def _args(self, sentence: str) -> list[str]:
        if Path(self.path).name == "say":
            return [self.path, "-r", str(self.words_per_minute), sentence]
        return [self.path, "-s", str(self.words_per_minute), sentence]

    async def speak(self, text: str) -> None:
        self._cancelled = False
        for sentence in split_sentences(text):
            if self._cancelled:
                return
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *self._args(sentence),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                raise AdapterFailureError("narration", f"Could not start {self.path}: {e}") from e
            try:
                await self._process.wait()
            finally:
                self._kill()
                self._process = None

    def cancel(self) -> None:
        self._cancelled = True
        self._kill()

    def _kill(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass


class TextNarrator:
    """Silent narrator that prints sentences at speaking pace.

    With show_text=False nothing is printed and only the pacing remains,
    which keeps the story hidden as in a real listening exercise.
    """

    def __init__(
        self,
        console: Console | None = None,
        words_per_minute: float = 150.0,
        show_text: bool = True,
    ) -> None:
        self.console = console or Console()
        self.words_per_minute = words_per_minute
        self.show_text = show_text
        self._cancelled = asyncio.Event()

    async def speak(self, text: str) -> None:
        self._cancelled.clear()
        for sentence in split_sentences(text):
            if self._cancelled.is_set():
                return
            if self.show_text:
                self.console.print(f"[italic]{escape(sentence)}[/italic]")
            seconds = len(sentence.split()) * 60.0 / self.words_per_minute
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
                return
            except asyncio.TimeoutError:
                continue

    def cancel(self) -> None:
        self._cancelled.set()


class ScriptedCapture:
    """Replays prepared transcript chunks as if they were recognized speech."""

    def __init__(self, chunks: Sequence[str], interval: float = 1.0) -> None:
        self.chunks = [chunk for chunk in chunks if chunk.strip()]
        self.interval = interval

    def start(self, on_final_chunk: ChunkCallback) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(self._replay(on_final_chunk))

    async def _replay(self, on_final_chunk: ChunkCallback) -> None:
        for chunk in self.chunks:
            await asyncio.sleep(self.interval)
            on_final_chunk(chunk)

    def stop(self, handle: asyncio.Task) -> None:
        handle.cancel()


class TerminalCue:
    """Rings the terminal bell and prints a short marker."""

    MESSAGES = {
        "begin": "[bold green]● Begin speaking[/bold green]",
        "end": "[bold red]■ Stop speaking[/bold red]",
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def emit(self, kind: CueKind) -> None:
        self.console.bell()
        self.console.print(self.MESSAGES[kind])


def _find_tts_command() -> str | None:
    for command in TTS_COMMANDS:
        path = shutil.which(command)
        if path:
            return path
    return None
