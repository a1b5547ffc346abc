from __future__ import annotations

import json
import sys
import time
import types
from dataclasses import dataclass
from pathlib import Path

import pytest

from voice_math_trainer.errors import VoiceBackendError
from voice_math_trainer.speech import (
    BackendFailure,
    FinalTranscript,
    OfflineTtsSpeechOutput,
    PartialTranscript,
    SpeechEvent,
    SpeechFinished,
    TypedSpeechInput,
    VoskSpeechInput,
)


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


class FakeProcess:
    def __init__(self) -> None:
        self.returncode: int | None = None
        self.terminated = False

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def wait(self, timeout: float | None = None) -> int | None:
        return self.returncode

    def kill(self) -> None:
        self.returncode = -9


def _fake_backend(monkeypatch: pytest.MonkeyPatch, procs: list[FakeProcess]) -> OfflineTtsSpeechOutput:
    monkeypatch.delenv("SDL_AUDIODRIVER", raising=False)
    monkeypatch.setattr(OfflineTtsSpeechOutput, "_backend_available", staticmethod(lambda name: name == "espeak"))

    def launch(backend: str, text: str, language_tag: str) -> FakeProcess:
        proc = FakeProcess()
        procs.append(proc)
        return proc

    monkeypatch.setattr(OfflineTtsSpeechOutput, "_launch_process", staticmethod(launch))
    return OfflineTtsSpeechOutput(FakeClock(), forced_backend="espeak")


def test_typed_input_sends_only_the_submitted_answer() -> None:
    rec = TypedSpeechInput()
    events: list[SpeechEvent] = []
    rec.start_listening("en-US", events.append)

    rec.type_text("4")
    rec.type_text("2")
    rec.backspace()
    rec.type_text("3")
    # A slow typist must not be judged on a prefix of the answer.
    assert events == []
    assert rec.buffer == "43"

    rec.submit()
    assert events == [FinalTranscript("43")]
    assert not rec.listening
    assert rec.buffer == ""
    assert rec.language_tag == "en-US"


def test_typed_input_ignores_keys_while_microphone_closed() -> None:
    rec = TypedSpeechInput()
    events: list[SpeechEvent] = []
    rec.type_text("5")
    rec.submit()

    rec.start_listening("ru-RU", events.append)
    rec.type_text("5")
    rec.cancel()
    rec.type_text("6")
    rec.backspace()
    rec.submit()

    assert events == []
    assert rec.buffer == ""


def test_disabled_tts_plays_silently_for_estimated_duration() -> None:
    clock = FakeClock()
    tts = OfflineTtsSpeechOutput(clock, enabled=False)
    events: list[SpeechEvent] = []
    assert tts.backend is None

    tts.speak("12 plus 30", "en-US", events.append)
    assert tts.speaking
    clock.advance(1.0)
    tts.update()
    assert events == []

    clock.advance(0.1)
    tts.update()
    assert events == [SpeechFinished()]
    assert not tts.speaking


def test_dummy_audio_driver_forces_silent_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SDL_AUDIODRIVER", "dummy")
    tts = OfflineTtsSpeechOutput(FakeClock(), forced_backend="espeak")
    assert tts.backend is None


def test_stop_reports_cancelled_completion_once() -> None:
    tts = OfflineTtsSpeechOutput(FakeClock(), enabled=False)
    events: list[SpeechEvent] = []
    tts.speak("5 minus 2", "en-US", events.append)
    tts.stop()
    tts.stop()
    tts.update()
    assert events == [SpeechFinished(cancelled=True)]


def test_process_exit_reports_completion(monkeypatch: pytest.MonkeyPatch) -> None:
    procs: list[FakeProcess] = []
    tts = _fake_backend(monkeypatch, procs)
    events: list[SpeechEvent] = []
    assert tts.backend == "espeak"

    tts.speak("7 plus 8", "en-US", events.append)
    tts.update()
    assert events == []

    procs[0].returncode = 0
    tts.update()
    assert events == [SpeechFinished()]


def test_process_failure_reports_backend_error(monkeypatch: pytest.MonkeyPatch) -> None:
    procs: list[FakeProcess] = []
    tts = _fake_backend(monkeypatch, procs)
    events: list[SpeechEvent] = []

    tts.speak("7 plus 8", "en-US", events.append)
    procs[0].returncode = 1
    tts.update()

    assert len(events) == 1
    assert isinstance(events[0], BackendFailure)
    assert events[0].error.backend == "espeak"


def test_new_utterance_interrupts_the_previous_one(monkeypatch: pytest.MonkeyPatch) -> None:
    procs: list[FakeProcess] = []
    tts = _fake_backend(monkeypatch, procs)
    first: list[SpeechEvent] = []
    second: list[SpeechEvent] = []

    tts.speak("1 plus 1", "en-US", first.append)
    tts.speak("2 plus 2", "en-US", second.append)

    assert procs[0].terminated
    assert first == [SpeechFinished(cancelled=True)]
    assert second == []


class FakeModel:
    def __init__(self, path: str) -> None:
        self.path = path


class FakeKaldiRecognizer:
    """Treats each audio block as a word; the block ``<end>`` closes an utterance."""

    def __init__(self, model: FakeModel, sample_rate: int) -> None:
        self.model = model
        self.heard = ""
        self.final = ""

    def AcceptWaveform(self, data: bytes) -> bool:
        chunk = data.decode()
        if chunk == "<end>":
            self.final, self.heard = self.heard, ""
            return True
        self.heard = f"{self.heard} {chunk}".strip()
        return False

    def PartialResult(self) -> str:
        return json.dumps({"partial": self.heard})

    def Result(self) -> str:
        return json.dumps({"text": self.final})


class FakeRawInputStream:
    def __init__(self, **kwargs: object) -> None:
        self.callback = kwargs["callback"]
        self.samplerate = kwargs["samplerate"]
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True

    def feed(self, word: str) -> None:
        self.callback(word.encode(), len(word), None, None)  # type: ignore[operator]


@pytest.fixture
def vosk_models(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> tuple[Path, list[FakeRawInputStream]]:
    streams: list[FakeRawInputStream] = []

    def open_stream(**kwargs: object) -> FakeRawInputStream:
        stream = FakeRawInputStream(**kwargs)
        streams.append(stream)
        return stream

    monkeypatch.setitem(sys.modules, "vosk", types.SimpleNamespace(Model=FakeModel, KaldiRecognizer=FakeKaldiRecognizer))
    monkeypatch.setitem(sys.modules, "sounddevice", types.SimpleNamespace(RawInputStream=open_stream))
    (tmp_path / "en").mkdir()
    return tmp_path, streams


def _drain(rec: VoskSpeechInput, events: list[SpeechEvent], count: int, timeout_s: float = 2.0) -> None:
    deadline = time.monotonic() + timeout_s
    while len(events) < count and time.monotonic() < deadline:
        rec.update()
        time.sleep(0.01)


def test_vosk_input_streams_partials_then_final(vosk_models: tuple[Path, list[FakeRawInputStream]]) -> None:
    model_dir, streams = vosk_models
    rec = VoskSpeechInput(str(model_dir))
    events: list[SpeechEvent] = []
    rec.start_listening("en-US", events.append)
    assert rec.listening
    assert streams[0].started
    assert streams[0].samplerate == VoskSpeechInput.sample_rate

    streams[0].feed("forty")
    _drain(rec, events, 1)
    streams[0].feed("two")
    _drain(rec, events, 2)
    streams[0].feed("<end>")
    _drain(rec, events, 3)

    assert events == [
        PartialTranscript("forty"),
        PartialTranscript("forty two"),
        FinalTranscript("forty two"),
    ]
    assert not rec.listening
    assert streams[0].closed


def test_vosk_input_results_are_delivered_only_from_update(
    vosk_models: tuple[Path, list[FakeRawInputStream]],
) -> None:
    model_dir, streams = vosk_models
    rec = VoskSpeechInput(str(model_dir))
    events: list[SpeechEvent] = []
    rec.start_listening("en-US", events.append)

    streams[0].feed("seven")
    time.sleep(0.3)
    assert events == []
    _drain(rec, events, 1)
    assert events == [PartialTranscript("seven")]


def test_vosk_input_silence_endpoint_keeps_listening(vosk_models: tuple[Path, list[FakeRawInputStream]]) -> None:
    model_dir, streams = vosk_models
    rec = VoskSpeechInput(str(model_dir))
    events: list[SpeechEvent] = []
    rec.start_listening("en-US", events.append)

    streams[0].feed("<end>")
    streams[0].feed("seven")
    _drain(rec, events, 1)

    assert events == [PartialTranscript("seven")]
    assert rec.listening
    assert not streams[0].closed


def test_vosk_input_cancel_closes_stream_and_drops_queued_results(
    vosk_models: tuple[Path, list[FakeRawInputStream]],
) -> None:
    model_dir, streams = vosk_models
    rec = VoskSpeechInput(str(model_dir))
    events: list[SpeechEvent] = []
    rec.start_listening("en-US", events.append)

    streams[0].feed("nine")
    time.sleep(0.3)
    rec.cancel()
    rec.cancel()
    rec.update()

    assert events == []
    assert not rec.listening
    assert streams[0].closed

    rec.start_listening("en-US", events.append)
    assert len(streams) == 2
    streams[1].feed("ten")
    _drain(rec, events, 1)
    assert events == [PartialTranscript("ten")]


def test_vosk_input_without_model_for_language_is_a_backend_error(
    vosk_models: tuple[Path, list[FakeRawInputStream]],
) -> None:
    model_dir, streams = vosk_models
    rec = VoskSpeechInput(str(model_dir))
    with pytest.raises(VoiceBackendError) as info:
        rec.start_listening("ru-RU", lambda event: None)
    assert info.value.backend == "vosk"
    assert not rec.listening
    assert streams == []


def test_vosk_input_unavailable_without_model_dir(tmp_path: Path) -> None:
    assert not VoskSpeechInput.available("")
    assert not VoskSpeechInput.available(str(tmp_path / "missing"))
