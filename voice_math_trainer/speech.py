"""Speech output/input ports and the concrete adapters used by the pygame shell.

Ports never call the controller directly.  Each call receives an ``emit``
callable bound by the controller to one voice session; whatever a port
emits is queued on the event loop and tagged with that session id.
"""

from __future__ import annotations

import importlib.util
import json
import logging
import os
import queue
import shutil
import subprocess
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeAlias

from .clock import Clock
from .errors import VoiceBackendError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SpeechFinished:
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class PartialTranscript:
    text: str


@dataclass(frozen=True, slots=True)
class FinalTranscript:
    text: str


@dataclass(frozen=True, slots=True)
class BackendFailure:
    error: VoiceBackendError


SpeechEvent: TypeAlias = SpeechFinished | PartialTranscript | FinalTranscript | BackendFailure
EventSink: TypeAlias = Callable[[SpeechEvent], None]


class SpeechOutput(Protocol):
    def speak(self, text: str, language_tag: str, emit: EventSink) -> None:
        """Start one utterance; emit exactly one SpeechFinished or BackendFailure."""
        ...

    def stop(self) -> None: ...


class SpeechInput(Protocol):
    def start_listening(self, language_tag: str, emit: EventSink) -> None:
        """Open a recognition session: partials, then at most one final."""
        ...

    def cancel(self) -> None:
        """Close the session; no further events may be emitted for it."""
        ...


TTS_BACKENDS = ("pyttsx3-subprocess", "say", "powershell", "espeak")


class OfflineTtsSpeechOutput:
    """Offline TTS via isolated subprocesses, one utterance at a time.

    In-process pyttsx3 can hard-crash a pygame app, so every utterance runs
    in its own process.  ``update()`` must be polled (once per frame) to
    notice the process exit and report completion.  When no backend is
    usable the utterance "plays" silently for an estimated reading time,
    so the speak -> listen cycle still runs in headless environments.
    """

    _max_utterance_s = 12.0
    _silent_s_per_word = 0.35
    _silent_min_s = 0.6

    def __init__(self, clock: Clock, *, enabled: bool = True, forced_backend: str = "") -> None:
        self._clock = clock
        self._backends: list[str] = []
        self._backend: str | None = None
        self._active_proc: subprocess.Popen[bytes] | None = None
        self._active_emit: EventSink | None = None
        self._active_started_s = 0.0
        self._silent_until_s: float | None = None

        if not enabled:
            return
        if os.environ.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy":
            # Keep automated/headless runs silent and stable.
            return

        self._backends = self._resolve_backends(forced_backend)
        self._backend = self._backends[0] if self._backends else None

    @property
    def backend(self) -> str | None:
        return self._backend

    @property
    def speaking(self) -> bool:
        return self._active_emit is not None

    def speak(self, text: str, language_tag: str, emit: EventSink) -> None:
        self.stop()
        phrase = " ".join(str(text).strip().split())
        self._active_emit = emit
        self._active_started_s = self._clock.now()

        if self._backend is None or phrase == "":
            words = max(1, len(phrase.split()))
            self._silent_until_s = self._active_started_s + max(
                self._silent_min_s, words * self._silent_s_per_word
            )
            return

        while self._backend is not None:
            proc = self._launch_process(self._backend, phrase, language_tag)
            if proc is not None:
                self._active_proc = proc
                return
            logger.warning("TTS backend %s failed to launch; dropping it", self._backend)
            self._drop_current_backend()

        self._finish(BackendFailure(VoiceBackendError("no usable TTS backend", backend="tts")))

    def update(self) -> None:
        if self._active_emit is None:
            return

        if self._silent_until_s is not None:
            if self._clock.now() >= self._silent_until_s:
                self._finish(SpeechFinished())
            return

        proc = self._active_proc
        if proc is None:
            return
        code = proc.poll()
        if code is None:
            if (self._clock.now() - self._active_started_s) > self._max_utterance_s:
                logger.warning("utterance exceeded %.1fs; terminating", self._max_utterance_s)
                self._terminate_process(proc)
                self._finish(SpeechFinished())
            return
        if code != 0:
            self._finish(
                BackendFailure(
                    VoiceBackendError(f"TTS process exited with {code}", backend=self._backend or "")
                )
            )
            return
        self._finish(SpeechFinished())

    def stop(self) -> None:
        proc = self._active_proc
        if proc is not None:
            self._terminate_process(proc)
        if self._active_emit is not None:
            self._finish(SpeechFinished(cancelled=True))

    def _finish(self, event: SpeechEvent) -> None:
        emit = self._active_emit
        self._active_emit = None
        self._active_proc = None
        self._silent_until_s = None
        if emit is not None:
            emit(event)

    @staticmethod
    def _terminate_process(proc: subprocess.Popen[bytes]) -> None:
        try:
            proc.terminate()
        except OSError:
            return
        try:
            proc.wait(timeout=0.5)
        except subprocess.TimeoutExpired:
            try:
                proc.kill()
            except OSError:
                pass

    @staticmethod
    def _resolve_backends(forced: str) -> list[str]:
        forced = forced.strip().lower()
        if forced in TTS_BACKENDS and OfflineTtsSpeechOutput._backend_available(forced):
            return [forced]

        candidates: list[str] = []
        if sys.platform == "darwin":
            candidates.append("say")
        if os.name == "nt":
            candidates.append("powershell")
        candidates.extend(("pyttsx3-subprocess", "espeak"))

        seen: set[str] = set()
        resolved: list[str] = []
        for name in candidates:
            if name in seen:
                continue
            seen.add(name)
            if OfflineTtsSpeechOutput._backend_available(name):
                resolved.append(name)
        return resolved

    @staticmethod
    def _backend_available(name: str) -> bool:
        if name == "say":
            return (shutil.which("say") is not None) or Path("/usr/bin/say").exists()
        if name == "powershell":
            return (shutil.which("powershell") is not None) or (shutil.which("pwsh") is not None)
        if name == "pyttsx3-subprocess":
            return importlib.util.find_spec("pyttsx3") is not None
        if name == "espeak":
            return shutil.which("espeak") is not None
        return False

    def _drop_current_backend(self) -> None:
        backend = self._backend
        self._backends = [name for name in self._backends if name != backend]
        self._backend = self._backends[0] if self._backends else None

    @staticmethod
    def _launch_process(backend: str, text: str, language_tag: str) -> subprocess.Popen[bytes] | None:
        lang = language_tag.split("-")[0].lower()
        try:
            if backend == "pyttsx3-subprocess":
                script = (
                    "import sys\n"
                    "txt=' '.join(sys.argv[1:]).strip()\n"
                    "import pyttsx3\n"
                    "e=pyttsx3.init()\n"
                    "e.setProperty('rate', 150)\n"
                    "e.say(txt)\n"
                    "e.runAndWait()\n"
                )
                return subprocess.Popen(
                    [sys.executable, "-c", script, text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "say":
                cmd = [shutil.which("say") or "/usr/bin/say", "-r", "150"]
                if lang == "ru":
                    cmd.extend(["-v", "Milena"])
                return subprocess.Popen(
                    [*cmd, text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "powershell":
                ps_bin = shutil.which("powershell") or shutil.which("pwsh")
                if ps_bin is None:
                    return None
                script = (
                    "Add-Type -AssemblyName System.Speech; "
                    "$s=New-Object System.Speech.Synthesis.SpeechSynthesizer; "
                    f"try {{ $s.SelectVoiceByHints(0, 0, 0, [Globalization.CultureInfo]'{language_tag}') }} catch {{}}; "
                    "$txt=($args -join ' '); "
                    "$s.Speak($txt);"
                )
                return subprocess.Popen(
                    [ps_bin, "-NoProfile", "-NonInteractive", "-Command", script, text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )

            if backend == "espeak":
                voice = "ru" if lang == "ru" else "en-us"
                return subprocess.Popen(
                    ["espeak", "-v", voice, "-s", "150", text],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
        except OSError:
            return None
        return None


class VoskSpeechInput:
    """Streaming offline recognition: Vosk over a sounddevice microphone stream.

    The PortAudio callback queues raw audio blocks and a worker thread feeds
    them to a ``KaldiRecognizer``.  Partial and final results are queued
    again and handed to ``emit`` only from ``update()``, which the frame
    loop polls, so the controller is only ever called from one thread.
    ``cancel()`` closes the stream, and anything the worker already
    queued for that session is dropped.

    ``model_dir`` holds one Vosk model per language in a subdirectory named
    by language code (``ru``, ``en``).
    """

    sample_rate = 16000
    block_size = 4000

    def __init__(self, model_dir: str) -> None:
        self._model_dir = Path(model_dir)
        self._models: dict[str, Any] = {}
        self._results: queue.Queue[tuple[int, SpeechEvent]] = queue.Queue()
        self._generation = 0
        self._emit: EventSink | None = None
        self._stream: Any = None
        self._stop: threading.Event | None = None

    @staticmethod
    def available(model_dir: str) -> bool:
        if model_dir.strip() == "" or not Path(model_dir).is_dir():
            return False
        return importlib.util.find_spec("vosk") is not None and importlib.util.find_spec("sounddevice") is not None

    @property
    def listening(self) -> bool:
        return self._emit is not None

    def start_listening(self, language_tag: str, emit: EventSink) -> None:
        self.cancel()
        lang = language_tag.split("-")[0].lower()
        audio: queue.Queue[bytes] = queue.Queue()

        def on_audio(indata: Any, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug("microphone status: %s", status)
            audio.put(bytes(indata))

        try:
            import sounddevice as sd
            from vosk import KaldiRecognizer

            recognizer = KaldiRecognizer(self._model(lang), self.sample_rate)
            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                dtype="int16",
                channels=1,
                callback=on_audio,
            )
            stream.start()
        except VoiceBackendError:
            raise
        except Exception as exc:
            raise VoiceBackendError(f"cannot start recognition: {exc}", backend="vosk") from exc

        stop = threading.Event()
        self._emit = emit
        self._stream = stream
        self._stop = stop
        threading.Thread(
            target=self._recognize,
            args=(self._generation, recognizer, audio, stop),
            name="vosk-recognizer",
            daemon=True,
        ).start()

    def cancel(self) -> None:
        # Results still queued from the closed session carry an old generation.
        self._generation += 1
        self._emit = None
        if self._stop is not None:
            self._stop.set()
            self._stop = None
        stream = self._stream
        self._stream = None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as exc:
                logger.warning("closing microphone stream failed: %s", exc)

    def update(self) -> None:
        """Deliver queued recognition results; call once per frame."""

        while True:
            try:
                generation, event = self._results.get_nowait()
            except queue.Empty:
                return
            emit = self._emit
            if generation != self._generation or emit is None:
                continue
            if not isinstance(event, PartialTranscript):
                self.cancel()
            emit(event)

    def _model(self, lang: str) -> Any:
        model = self._models.get(lang)
        if model is None:
            path = self._model_dir / lang
            if not path.is_dir():
                raise VoiceBackendError(f"no Vosk model for {lang!r} in {self._model_dir}", backend="vosk")
            from vosk import Model

            logger.info("loading Vosk model %s", path)
            model = Model(str(path))
            self._models[lang] = model
        return model

    def _recognize(self, generation: int, recognizer: Any, audio: queue.Queue[bytes], stop: threading.Event) -> None:
        last_partial = ""
        try:
            while not stop.is_set():
                try:
                    data = audio.get(timeout=0.1)
                except queue.Empty:
                    continue
                if recognizer.AcceptWaveform(data):
                    text = json.loads(recognizer.Result()).get("text", "")
                    if text:
                        self._results.put((generation, FinalTranscript(text)))
                        return
                    # Endpoint on silence: keep the session open.
                    continue
                partial = json.loads(recognizer.PartialResult()).get("partial", "")
                if partial != last_partial:
                    last_partial = partial
                    self._results.put((generation, PartialTranscript(partial)))
        except Exception as exc:
            error = VoiceBackendError(f"recognition failed: {exc}", backend="vosk")
            self._results.put((generation, BackendFailure(error)))


class TypedSpeechInput:
    """Keyboard fallback used when no speech recognizer is configured.

    Keystrokes only edit the buffer shown on screen; ``submit()`` sends it
    as the final transcript.  Sending every keystroke as a partial would
    let the debounce judge "1" while the user is still typing "12".
    Typing while no session is open is ignored, like talking to a closed
    microphone.
    """

    def __init__(self) -> None:
        self._emit: EventSink | None = None
        self._language_tag = ""
        self._buffer = ""

    @property
    def listening(self) -> bool:
        return self._emit is not None

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def language_tag(self) -> str:
        return self._language_tag

    def start_listening(self, language_tag: str, emit: EventSink) -> None:
        self._emit = emit
        self._language_tag = language_tag
        self._buffer = ""

    def cancel(self) -> None:
        self._emit = None
        self._buffer = ""

    def type_text(self, text: str) -> None:
        if self._emit is None or text == "":
            return
        self._buffer += text

    def backspace(self) -> None:
        if self._emit is None or self._buffer == "":
            return
        self._buffer = self._buffer[:-1]

    def submit(self) -> None:
        emit = self._emit
        if emit is None:
            return
        text = self._buffer
        self._emit = None
        self._buffer = ""
        emit(FinalTranscript(text))
