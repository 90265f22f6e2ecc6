"""pyttsx3 backed implementation of :class:`services.audio.SpeechEngine`."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

import pyttsx3

from services.audio import LanguageAvailability, ProgressListener, QueueMode

logger = logging.getLogger(__name__)

DEFAULT_WPM = 200


def _normalize_language(tag: Any) -> str:
    """Turn a driver language tag (``b'\\x05en-us'``, ``'en_US'``) into ``en_us``."""

    if isinstance(tag, bytes):
        tag = tag.decode("latin-1")
    tag = "".join(ch for ch in str(tag) if ch.isprintable())
    return tag.strip().lower().replace("-", "_")


def voice_languages(voice: Any) -> list[str]:
    """Return the normalized language tags advertised by a pyttsx3 voice."""

    tags = [_normalize_language(t) for t in (getattr(voice, "languages", None) or [])]
    voice_id = str(getattr(voice, "id", ""))
    # espeak-ng ids look like "gmw/en-US"
    tags.append(_normalize_language(voice_id.rsplit("/", 1)[-1]))
    return [t for t in tags if t]


def find_voice(voices: list[Any], locale: str) -> Any | None:
    """Pick the voice for *locale*, preferring an exact region match."""

    wanted = _normalize_language(locale)
    language = wanted.split("_", 1)[0]
    for voice in voices:
        if wanted in voice_languages(voice):
            return voice
    for voice in voices:
        if any(t.split("_", 1)[0] == language for t in voice_languages(voice)):
            return voice
    return None


class Pyttsx3Engine:
    """Runs a pyttsx3 engine on a dedicated worker thread.

    pyttsx3 engines must be driven from the thread that created them, so
    configuration and utterances are handed to the worker through a queue and
    played one at a time in submission order.
    """

    def __init__(self, driver_name: str | None = None) -> None:
        self._driver_name = driver_name
        self._commands: queue.Queue = queue.Queue()
        self._generation = 0
        self._generation_lock = threading.Lock()
        self._listener: ProgressListener | None = None
        self._engine = None
        self._voices: list[Any] = []
        self._base_rate = DEFAULT_WPM
        self._thread: threading.Thread | None = None

    # SpeechEngine --------------------------------------------------------
    def initialize(self, on_ready: Callable[[bool, str | None], None]) -> None:
        self._thread = threading.Thread(
            target=self._run, args=(on_ready,), name="tts-engine", daemon=True
        )
        self._thread.start()

    def set_progress_listener(self, listener: ProgressListener) -> None:
        self._listener = listener

    def set_rate(self, rate: float) -> None:
        self._commands.put(("set", ("rate", int(self._base_rate * rate)), None))

    def set_pitch(self, pitch: float) -> None:
        self._commands.put(("set", ("pitch", pitch), None))

    def set_language(self, locale: str) -> LanguageAvailability:
        if not self._voices:
            return LanguageAvailability.MISSING_DATA
        voice = find_voice(self._voices, locale)
        if voice is None:
            return LanguageAvailability.NOT_SUPPORTED
        self._commands.put(("set", ("voice", voice.id), None))
        return LanguageAvailability.AVAILABLE

    def speak(self, text: str, mode: QueueMode, utterance_id: str) -> None:
        if mode is QueueMode.REPLACE_CURRENT:
            self.stop()
        with self._generation_lock:
            generation = self._generation
        self._commands.put(("say", (text, utterance_id), generation))

    def stop(self) -> None:
        with self._generation_lock:
            self._generation += 1
        if self._engine is not None:
            self._engine.stop()

    def shutdown(self) -> None:
        self.stop()
        self._commands.put(None)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None

    # Worker --------------------------------------------------------------
    def _run(self, on_ready: Callable[[bool, str | None], None]) -> None:
        try:
            engine = pyttsx3.init(self._driver_name)
            self._voices = list(engine.getProperty("voices") or [])
            self._base_rate = engine.getProperty("rate") or DEFAULT_WPM
            engine.connect("started-utterance", self._started)
            engine.connect("finished-utterance", self._finished)
            engine.connect("error", self._failed)
        except Exception as exc:
            logger.error("Failed to start pyttsx3: %s", exc)
            on_ready(False, str(exc))
            return
        self._engine = engine
        on_ready(True, None)

        while True:
            command = self._commands.get()
            if command is None:
                break
            kind, payload, generation = command
            if kind == "set":
                self._set_property(*payload)
                continue
            with self._generation_lock:
                stale = generation != self._generation
            if stale:
                continue
            text, utterance_id = payload
            try:
                engine.say(text, utterance_id)
                engine.runAndWait()
            except Exception as exc:
                logger.error("pyttsx3 failed to speak %s: %s", utterance_id, exc)
                self._failed(utterance_id, exc)
        self._engine = None

    def _set_property(self, name: str, value: Any) -> None:
        try:
            self._engine.setProperty(name, value)
        except KeyError:
            logger.debug("pyttsx3 driver has no %r property", name)
        except Exception as exc:
            logger.error("pyttsx3 rejected %s=%r: %s", name, value, exc)

    # pyttsx3 callbacks, invoked with keyword arguments -------------------
    def _started(self, name: str) -> None:
        if self._listener is not None:
            self._listener.on_start(name)

    def _finished(self, name: str, completed: bool = True) -> None:
        if self._listener is None:
            return
        if completed:
            self._listener.on_done(name)
        else:
            self._listener.on_error(name)

    def _failed(self, name: str, exception: Exception | None = None) -> None:
        logger.warning("pyttsx3 error for %s: %s", name, exception)
        if self._listener is not None:
            self._listener.on_error(name)
