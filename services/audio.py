"""Audio narration helpers.

:class:`SpeechSession` wraps a platform speech engine behind a small stateful
API. Engines report initialization and per-utterance progress on their own
threads, so every transition goes through one lock and callbacks for
utterances that were flushed by the caller are dropped.
"""

from __future__ import annotations

import itertools
import logging
import threading
from enum import Enum
from typing import Callable, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "tr_TR"
FALLBACK_LOCALE = "en_US"

T = TypeVar("T")
Notify = Callable[[str], None]


class QueueMode(Enum):
    """How a new utterance relates to the ones already queued."""

    REPLACE_CURRENT = "flush"
    ENQUEUE = "add"


class EngineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class LanguageAvailability(Enum):
    AVAILABLE = "available"
    MISSING_DATA = "missing_data"
    NOT_SUPPORTED = "not_supported"


class ProgressListener(Protocol):
    def on_start(self, utterance_id: str) -> None: ...

    def on_done(self, utterance_id: str) -> None: ...

    def on_error(self, utterance_id: str) -> None: ...


class SpeechEngine(Protocol):
    """Platform text to speech engine.

    ``initialize`` returns immediately and later calls
    ``on_ready(ok, error_message)``. None of the methods may block on the
    engine's callback thread.
    """

    def initialize(self, on_ready: Callable[[bool, str | None], None]) -> None: ...

    def set_rate(self, rate: float) -> None: ...

    def set_pitch(self, pitch: float) -> None: ...

    def set_language(self, locale: str) -> LanguageAvailability: ...

    def set_progress_listener(self, listener: ProgressListener) -> None: ...

    def speak(self, text: str, mode: QueueMode, utterance_id: str) -> None: ...

    def stop(self) -> None: ...

    def shutdown(self) -> None: ...


class Observable(Generic[T]):
    """Holds a value and tells subscribers when it changes."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        with self._lock:
            if value == self._value:
                return
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register *callback* and return a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe


def split_paragraphs(text: str) -> list[str]:
    """Split *text* on line breaks and drop blank paragraphs."""

    return [line.strip() for line in text.splitlines() if line.strip()]


def _log_notice(message: str) -> None:
    logger.info("Speech notice: %s", message)


class SpeechSession:
    """Owns one speech engine and tracks whether it is speaking.

    ``stop``, ``shutdown`` and every ``REPLACE_CURRENT`` submission start a new
    epoch. Utterance ids remember the epoch they were submitted in and engine
    callbacks for older epochs are ignored, so a late start callback cannot
    undo a stop.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        *,
        rate: float = 1.0,
        pitch: float = 1.0,
        locale: str = DEFAULT_LOCALE,
        fallback_locale: str = FALLBACK_LOCALE,
        notify: Notify | None = None,
    ) -> None:
        self._engine: SpeechEngine | None = engine
        self._rate = float(rate)
        self._pitch = float(pitch)
        self._locale = locale
        self._fallback_locale = fallback_locale
        self._active_locale: str | None = None
        self._notify = notify or _log_notice
        self._lock = threading.RLock()
        self._epoch = 0
        self._utterances: dict[str, int] = {}
        self._ids = itertools.count()
        self.is_speaking: Observable[bool] = Observable(False)

        self._state = EngineState.INITIALIZING
        engine.initialize(self._on_initialized)

    # Properties ----------------------------------------------------------
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def rate(self) -> float:
        return self._rate

    @rate.setter
    def rate(self, value: float) -> None:
        self.configure(rate=value)

    @property
    def pitch(self) -> float:
        return self._pitch

    @pitch.setter
    def pitch(self, value: float) -> None:
        self.configure(pitch=value)

    @property
    def locale(self) -> str:
        return self._locale

    @locale.setter
    def locale(self, value: str) -> None:
        self.configure(locale=value)

    @property
    def active_locale(self) -> str | None:
        """Locale the engine actually speaks, after any fallback."""
        return self._active_locale

    # Lifecycle -----------------------------------------------------------
    def _on_initialized(self, ok: bool, error: str | None = None) -> None:
        notices: list[str] = []
        with self._lock:
            if self._state is not EngineState.INITIALIZING or self._engine is None:
                logger.debug("Ignoring engine init result after shutdown")
                return
            if not ok:
                self._state = EngineState.FAILED
                logger.error("Speech engine failed to initialize: %s", error)
                notices.append(f"Text to speech could not start: {error or 'unknown error'}")
            else:
                self._engine.set_progress_listener(self)
                notices.extend(self._apply_locale(self._locale))
                self._engine.set_rate(self._rate)
                self._engine.set_pitch(self._pitch)
                self._state = EngineState.READY
                logger.info("Speech engine ready (%s)", self._active_locale)
        self._report(notices)

    def shutdown(self) -> None:
        """Stop speaking, release the engine and forget the process-wide instance."""

        with self._lock:
            engine = self._engine
            self._engine = None
            self._flush()
            self._state = EngineState.UNINITIALIZED
            self._active_locale = None
            self.is_speaking.set(False)
        if engine is not None:
            engine.stop()
            engine.shutdown()
        _release_session(self)

    # Configuration -------------------------------------------------------
    def configure(
        self,
        rate: float | None = None,
        pitch: float | None = None,
        locale: str | None = None,
    ) -> None:
        """Remember the given settings and apply them if the engine is ready."""

        notices: list[str] = []
        with self._lock:
            ready = self._state is EngineState.READY and self._engine is not None
            if rate is not None:
                self._rate = float(rate)
                if ready:
                    self._engine.set_rate(self._rate)
            if pitch is not None:
                self._pitch = float(pitch)
                if ready:
                    self._engine.set_pitch(self._pitch)
            if locale is not None:
                self._locale = locale
                if ready:
                    notices.extend(self._apply_locale(locale))
        self._report(notices)

    def _apply_locale(self, locale: str) -> list[str]:
        result = self._engine.set_language(locale)
        if result is LanguageAvailability.AVAILABLE:
            self._active_locale = locale
            return []
        logger.warning("Speech locale %s unavailable (%s)", locale, result.value)
        if locale != self._fallback_locale:
            fallback = self._engine.set_language(self._fallback_locale)
            if fallback is LanguageAvailability.AVAILABLE:
                self._active_locale = self._fallback_locale
                return [f"{locale} is not supported, reading in {self._fallback_locale}"]
        self._active_locale = None
        return [f"{locale} is not supported, using the engine's default voice"]

    def _report(self, notices: list[str]) -> None:
        for message in notices:
            self._notify(message)

    # Speaking ------------------------------------------------------------
    def _flush(self) -> None:
        self._epoch += 1
        self._utterances.clear()

    def _submit(self, text: str, mode: QueueMode, prefix: str) -> None:
        if mode is QueueMode.REPLACE_CURRENT:
            self._flush()
        utterance_id = f"{prefix}-{self._epoch}-{next(self._ids)}"
        self._utterances[utterance_id] = self._epoch
        self._engine.speak(text, mode, utterance_id)

    def _can_speak(self) -> bool:
        return self._state is EngineState.READY and self._engine is not None

    def speak(self, text: str, mode: QueueMode = QueueMode.REPLACE_CURRENT) -> None:
        with self._lock:
            if not self._can_speak() or not text:
                return
            self._submit(text, mode, "tts")

    def speak_long(self, text: str) -> None:
        """Read *text* paragraph by paragraph as one continuous narration."""

        paragraphs = split_paragraphs(text or "")
        with self._lock:
            if not self._can_speak() or not paragraphs:
                return
            self._submit(paragraphs[0], QueueMode.REPLACE_CURRENT, "story")
            for paragraph in paragraphs[1:]:
                self._submit(paragraph, QueueMode.ENQUEUE, "story")

    def stop(self) -> None:
        with self._lock:
            self._flush()
            if self._can_speak():
                self._engine.stop()
            self.is_speaking.set(False)

    # Engine callbacks ----------------------------------------------------
    def _is_current(self, utterance_id: str) -> bool:
        epoch = self._utterances.get(utterance_id)
        if epoch != self._epoch:
            logger.debug("Dropping stale callback for %s", utterance_id)
            return False
        return True

    def on_start(self, utterance_id: str) -> None:
        with self._lock:
            if self._is_current(utterance_id):
                self.is_speaking.set(True)

    def on_done(self, utterance_id: str) -> None:
        with self._lock:
            if self._is_current(utterance_id):
                del self._utterances[utterance_id]
                self.is_speaking.set(False)

    def on_error(self, utterance_id: str) -> None:
        with self._lock:
            if self._is_current(utterance_id):
                logger.warning("Speech engine reported an error for %s", utterance_id)
                del self._utterances[utterance_id]
                self.is_speaking.set(False)


# Process-wide session ------------------------------------------------------
_session: SpeechSession | None = None
_session_lock = threading.Lock()


def _default_engine() -> SpeechEngine:
    from services.speech_engine import Pyttsx3Engine

    return Pyttsx3Engine()


def get_session(
    engine_factory: Callable[[], SpeechEngine] | None = None,
    notify: Notify | None = None,
    **settings,
) -> SpeechSession:
    """Return the shared session, creating it on first use."""

    global _session
    session = _session
    if session is None:
        with _session_lock:
            if _session is None:
                factory = engine_factory or _default_engine
                _session = SpeechSession(factory(), notify=notify, **settings)
            session = _session
    return session


def shutdown_session() -> None:
    """Tear down the shared session if one exists."""

    with _session_lock:
        session = _session
    if session is not None:
        session.shutdown()


def _release_session(session: SpeechSession) -> None:
    global _session
    with _session_lock:
        if _session is session:
            _session = None
