"""Scripted speech ports for driving the controllers in tests."""

from __future__ import annotations

from voice_math_trainer.errors import VoiceBackendError
from voice_math_trainer.speech import (
    BackendFailure,
    EventSink,
    FinalTranscript,
    PartialTranscript,
    SpeechFinished,
)


class FakeSpeechOutput:
    def __init__(self) -> None:
        self.spoken: list[tuple[str, str]] = []
        self.emits: list[EventSink] = []
        self.stops = 0
        self._active: EventSink | None = None

    @property
    def speaking(self) -> bool:
        return self._active is not None

    def speak(self, text: str, language_tag: str, emit: EventSink) -> None:
        self.spoken.append((text, language_tag))
        self.emits.append(emit)
        self._active = emit

    def stop(self) -> None:
        self.stops += 1
        self._active = None

    def finish(self) -> None:
        emit = self._active
        assert emit is not None, "nothing is being spoken"
        self._active = None
        emit(SpeechFinished())

    def fail(self, message: str = "synthesizer crashed") -> None:
        emit = self._active
        assert emit is not None
        self._active = None
        emit(BackendFailure(VoiceBackendError(message, backend="fake-tts")))


class FailingSpeechOutput(FakeSpeechOutput):
    def speak(self, text: str, language_tag: str, emit: EventSink) -> None:
        self.spoken.append((text, language_tag))
        raise VoiceBackendError("audio device busy", backend="fake-tts")


class FakeRecognizer:
    """Records sessions and enforces that only one is ever open."""

    def __init__(self) -> None:
        self.sessions: list[EventSink] = []
        self.tags: list[str] = []
        self.cancels = 0
        self._open: EventSink | None = None

    @property
    def listening(self) -> bool:
        return self._open is not None

    def start_listening(self, language_tag: str, emit: EventSink) -> None:
        assert self._open is None, "a recognition session is already open"
        self.tags.append(language_tag)
        self.sessions.append(emit)
        self._open = emit

    def cancel(self) -> None:
        self.cancels += 1
        self._open = None

    def partial(self, text: str) -> None:
        assert self._open is not None, "microphone is closed"
        self._open(PartialTranscript(text))

    def final(self, text: str) -> None:
        emit = self._open
        assert emit is not None, "microphone is closed"
        self._open = None
        emit(FinalTranscript(text))

    def fail(self, message: str = "permission revoked") -> None:
        emit = self._open
        assert emit is not None
        self._open = None
        emit(BackendFailure(VoiceBackendError(message, backend="fake-asr")))
