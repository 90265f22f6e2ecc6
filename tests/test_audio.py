"""Tests for the speech session manager.

A fake engine records what the session submits and lets each test fire the
engine callbacks by hand, in whatever order the test needs.
"""

import sys
import pathlib

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import pytest

from services import audio
from services.audio import (
    EngineState,
    LanguageAvailability,
    Observable,
    QueueMode,
    SpeechSession,
    split_paragraphs,
)


class FakeEngine:
    """In-memory stand-in for a platform speech engine."""

    def __init__(self, ok=True, error=None, supported=("tr_TR", "en_US"), auto_init=True):
        self.ok = ok
        self.error = error
        self.supported = set(supported)
        self.auto_init = auto_init
        self.on_ready = None
        self.listener = None
        self.settings = []
        self.spoken = []
        self.stops = 0
        self.closed = False

    def initialize(self, on_ready):
        self.on_ready = on_ready
        if self.auto_init:
            on_ready(self.ok, self.error)

    def set_rate(self, rate):
        self.settings.append(("rate", rate))

    def set_pitch(self, pitch):
        self.settings.append(("pitch", pitch))

    def set_language(self, locale):
        self.settings.append(("language", locale))
        if locale in self.supported:
            return LanguageAvailability.AVAILABLE
        return LanguageAvailability.NOT_SUPPORTED

    def set_progress_listener(self, listener):
        self.listener = listener

    def speak(self, text, mode, utterance_id):
        self.spoken.append((text, mode, utterance_id))

    def stop(self):
        self.stops += 1

    def shutdown(self):
        self.closed = True


@pytest.fixture
def notices():
    return []


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def session(engine, notices):
    return SpeechSession(engine, notify=notices.append)


@pytest.fixture(autouse=True)
def reset_shared_session():
    audio._session = None
    yield
    audio._session = None


def test_split_paragraphs_drops_blank_lines():
    assert split_paragraphs("A\n\nB\nC") == ["A", "B", "C"]
    assert split_paragraphs("  one \r\n\r\n two  ") == ["one", "two"]
    assert split_paragraphs("") == []
    assert split_paragraphs(" \n\n\t\n") == []


def test_initialization_applies_settings(engine, session, notices):
    assert session.state is EngineState.READY
    assert engine.listener is session
    assert ("language", "tr_TR") in engine.settings
    assert ("rate", 1.0) in engine.settings
    assert ("pitch", 1.0) in engine.settings
    assert session.active_locale == "tr_TR"
    assert notices == []


def test_speak_long_queues_paragraphs_in_order(engine, session):
    session.speak_long("A\n\nB\nC")

    assert [text for text, _, _ in engine.spoken] == ["A", "B", "C"]
    assert [mode for _, mode, _ in engine.spoken] == [
        QueueMode.REPLACE_CURRENT,
        QueueMode.ENQUEUE,
        QueueMode.ENQUEUE,
    ]
    assert len({uid for _, _, uid in engine.spoken}) == 3


@pytest.mark.parametrize("text", ["", "\n\n", "   \n \n\t"])
def test_speak_long_blank_input_submits_nothing(engine, session, text):
    session.speak_long(text)
    assert engine.spoken == []


def test_speak_modes_and_empty_text(engine, session):
    session.speak("")
    assert engine.spoken == []

    session.speak("hello")
    session.speak("again", QueueMode.ENQUEUE)
    assert [(t, m) for t, m, _ in engine.spoken] == [
        ("hello", QueueMode.REPLACE_CURRENT),
        ("again", QueueMode.ENQUEUE),
    ]


def test_speaking_state_follows_callbacks(engine, session):
    session.speak_long("one\ntwo")
    first, second = (uid for _, _, uid in engine.spoken)

    engine.listener.on_start(first)
    assert session.is_speaking.value is True
    engine.listener.on_done(first)
    assert session.is_speaking.value is False
    engine.listener.on_start(second)
    assert session.is_speaking.value is True
    engine.listener.on_error(second)
    assert session.is_speaking.value is False


def test_stop_is_immediate_and_ignores_late_start(engine, session):
    session.speak_long("one\ntwo")
    first, second = (uid for _, _, uid in engine.spoken)
    engine.listener.on_start(first)

    session.stop()

    assert session.is_speaking.value is False
    assert engine.stops == 1
    engine.listener.on_start(first)
    engine.listener.on_start(second)
    assert session.is_speaking.value is False


def test_start_arriving_after_stop_for_unstarted_utterance(engine, session):
    session.speak("hi")
    (_, _, uid), = engine.spoken
    session.stop()
    engine.listener.on_start(uid)
    assert session.is_speaking.value is False


def test_new_speech_after_stop_is_tracked(engine, session):
    session.speak("old")
    session.stop()
    session.speak("new")
    uid = engine.spoken[-1][2]
    engine.listener.on_start(uid)
    assert session.is_speaking.value is True


def test_replaced_utterance_done_does_not_end_new_one(engine, session):
    session.speak("first")
    old = engine.spoken[-1][2]
    engine.listener.on_start(old)
    session.speak("second")
    new = engine.spoken[-1][2]
    engine.listener.on_start(new)

    engine.listener.on_done(old)

    assert session.is_speaking.value is True


def test_unknown_utterance_is_ignored(session):
    session.on_start("someone-else")
    assert session.is_speaking.value is False


def test_locale_fallback_reports_once_and_keeps_speech(notices):
    engine = FakeEngine(supported=("en_US",))
    session = SpeechSession(engine, notify=notices.append)

    assert session.state is EngineState.READY
    assert session.active_locale == "en_US"
    assert session.locale == "tr_TR"
    assert len(notices) == 1
    assert "en_US" in notices[0]
    assert [s for s in engine.settings if s[0] == "language"] == [
        ("language", "tr_TR"),
        ("language", "en_US"),
    ]
    session.speak("hello")
    assert len(engine.spoken) == 1


def test_locale_and_fallback_unavailable(notices):
    engine = FakeEngine(supported=())
    session = SpeechSession(engine, notify=notices.append)

    assert session.state is EngineState.READY
    assert session.active_locale is None
    assert len(notices) == 1


def test_configure_unsupported_locale_after_init(engine, session, notices):
    session.configure(locale="de_DE")
    assert len(notices) == 1
    assert session.active_locale == "en_US"


def test_init_failure_disables_speech(notices):
    engine = FakeEngine(ok=False, error="no driver")
    session = SpeechSession(engine, notify=notices.append)

    assert session.state is EngineState.FAILED
    assert len(notices) == 1
    assert "no driver" in notices[0]
    session.speak("hello")
    session.speak_long("a\nb")
    assert engine.spoken == []


def test_configure_before_init_is_applied_on_ready():
    engine = FakeEngine(auto_init=False)
    session = SpeechSession(engine)
    assert session.state is EngineState.INITIALIZING

    session.configure(rate=1.5, pitch=0.8, locale="en_US")
    session.speak("too early")
    assert engine.settings == []
    assert engine.spoken == []

    engine.on_ready(True, None)

    assert session.state is EngineState.READY
    assert ("language", "en_US") in engine.settings
    assert ("rate", 1.5) in engine.settings
    assert ("pitch", 0.8) in engine.settings


def test_configure_after_init_applies_immediately(engine, session):
    engine.settings.clear()
    session.rate = 0.7
    session.pitch = 1.2
    assert engine.settings == [("rate", 0.7), ("pitch", 1.2)]
    assert (session.rate, session.pitch) == (0.7, 1.2)


def test_shutdown_releases_engine(engine, session):
    session.speak("hi")
    engine.listener.on_start(engine.spoken[-1][2])

    session.shutdown()

    assert engine.closed
    assert session.state is EngineState.UNINITIALIZED
    assert session.is_speaking.value is False
    session.speak("after")
    assert len(engine.spoken) == 1


def test_late_init_after_shutdown_is_ignored():
    engine = FakeEngine(auto_init=False)
    session = SpeechSession(engine)
    session.shutdown()
    engine.on_ready(True, None)
    assert session.state is EngineState.UNINITIALIZED
    assert engine.listener is None


def test_shared_session_lifecycle():
    engines = []

    def factory():
        engines.append(FakeEngine())
        return engines[-1]

    first = audio.get_session(factory, rate=1.3)
    assert audio.get_session(factory) is first
    assert len(engines) == 1
    assert first.rate == 1.3

    audio.shutdown_session()
    assert engines[0].closed

    second = audio.get_session(factory)
    assert second is not first
    assert second.rate == 1.0
    assert len(engines) == 2


def test_shutdown_session_without_session_is_noop():
    audio.shutdown_session()
    assert audio._session is None


def test_observable_notifies_changes_only():
    seen = []
    flag = Observable(False)
    unsubscribe = flag.subscribe(seen.append)
    flag.set(True)
    flag.set(True)
    flag.set(False)
    unsubscribe()
    flag.set(True)
    assert seen == [True, False]
    assert flag.value is True
