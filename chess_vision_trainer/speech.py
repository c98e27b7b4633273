from __future__ import annotations

import importlib.util
import logging
import os
import shutil
import subprocess
import sys
import time
from collections.abc import Callable, Mapping
from typing import Protocol

from .geometry import Square

logger = logging.getLogger(__name__)


class Announcer(Protocol):
    def speak(self, text: str) -> None: ...


def spoken_square(square: Square) -> str:
    # Engines read a bare "a" as the article; "ae" comes out as the letter.
    file = "ae" if square.file == "a" else square.file
    return f"{file} {square.rank}"


class RecordingAnnouncer:
    """Announcer that only remembers phrases (headless runs and tests)."""

    def __init__(self) -> None:
        self.phrases: list[str] = []

    def speak(self, text: str) -> None:
        self.phrases.append(str(text))


_PYTTSX3_SCRIPT = (
    "import sys\n"
    "import pyttsx3\n"
    "e=pyttsx3.init()\n"
    "e.setProperty('rate', 176)\n"
    "e.say(' '.join(sys.argv[1:]).strip())\n"
    "e.runAndWait()\n"
)

_POWERSHELL_SCRIPT = (
    "Add-Type -AssemblyName System.Speech; "
    "$s=New-Object System.Speech.Synthesis.SpeechSynthesizer; "
    "$s.Speak(($args -join ' '));"
)


def _say_command(text: str) -> list[str] | None:
    binary = shutil.which("say")
    return None if binary is None else [binary, "-r", "176", text]


def _espeak_command(text: str) -> list[str] | None:
    binary = shutil.which("espeak") or shutil.which("espeak-ng")
    return None if binary is None else [binary, "-s", "176", text]


def _powershell_command(text: str) -> list[str] | None:
    binary = shutil.which("powershell") or shutil.which("pwsh")
    if binary is None:
        return None
    return [binary, "-NoProfile", "-NonInteractive", "-Command", _POWERSHELL_SCRIPT, text]


def _pyttsx3_command(text: str) -> list[str] | None:
    if importlib.util.find_spec("pyttsx3") is None:
        return None
    return [sys.executable, "-c", _PYTTSX3_SCRIPT, text]


_BACKENDS: dict[str, Callable[[str], list[str] | None]] = {
    "say": _say_command,
    "powershell": _powershell_command,
    "espeak": _espeak_command,
    "pyttsx3": _pyttsx3_command,
}


class OfflineTtsSpeaker:
    """Best-effort offline TTS, one short-lived subprocess per phrase.

    Keeps speech out of the UI process. Phrases queue up (bounded) and are
    launched from ``update()``; a backend that fails to launch is dropped and
    the next one is tried.
    """

    _max_queue = 8
    _max_utterance_s = 6.0

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        env = os.environ if environ is None else environ
        self._backends: list[str] = []
        self._pending: list[str] = []
        self._active_proc: subprocess.Popen[bytes] | None = None
        self._active_started_s = 0.0

        if env.get("CVT_DISABLE_TTS", "0") == "1":
            return
        if env.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy":
            # Headless runs stay silent.
            return
        self._backends = self._resolve_backends(env.get("CVT_TTS_BACKEND", "").strip().lower())
        logger.debug("tts backends: %s", self._backends or "none")

    @property
    def enabled(self) -> bool:
        return bool(self._backends)

    @property
    def pending_count(self) -> int:
        return len(self._pending) + (1 if self._active_proc is not None else 0)

    def speak(self, text: str) -> None:
        if not self.enabled:
            return
        phrase = " ".join(str(text).split())
        if phrase == "":
            return
        self._pending.append(phrase)
        if len(self._pending) > self._max_queue:
            del self._pending[: len(self._pending) - self._max_queue]

    def update(self) -> None:
        proc = self._active_proc
        if proc is not None:
            if proc.poll() is None:
                if time.monotonic() - self._active_started_s <= self._max_utterance_s:
                    return
                self._terminate(proc)
            self._active_proc = None

        while self._pending and self._backends:
            launched = self._launch(self._backends[0], self._pending[0])
            if launched is None:
                logger.debug("tts backend %s failed; dropping it", self._backends[0])
                del self._backends[0]
                continue
            del self._pending[0]
            self._active_proc = launched
            self._active_started_s = time.monotonic()
            return

        if not self._backends:
            self._pending.clear()

    def stop(self) -> None:
        self._pending.clear()
        proc = self._active_proc
        self._active_proc = None
        if proc is not None:
            self._terminate(proc)

    @staticmethod
    def _resolve_backends(forced: str) -> list[str]:
        if forced in _BACKENDS:
            return [forced] if _BACKENDS[forced]("probe") is not None else []
        order = ["pyttsx3", "espeak"]
        if os.name == "nt":
            order.insert(0, "powershell")
        if sys.platform == "darwin":
            order.insert(0, "say")
        return [name for name in order if _BACKENDS[name]("probe") is not None]

    @staticmethod
    def _launch(backend: str, text: str) -> subprocess.Popen[bytes] | None:
        command = _BACKENDS[backend](text)
        if command is None:
            return None
        try:
            return subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError:
            return None

    @staticmethod
    def _terminate(proc: subprocess.Popen[bytes]) -> None:
        try:
            proc.terminate()
            proc.wait(timeout=0.5)
        except subprocess.TimeoutExpired:
            proc.kill()
        except OSError:
            logger.debug("tts process already gone")
