"""Thin Tk based UI for TaleTeller."""

from __future__ import annotations

import logging
import queue
import threading
import tkinter as tk
from pathlib import Path
from typing import Callable

import genai_api as ga
from config import AppConfig, load_config
from models import StoryRecord, newest_first
from services.audio import SpeechSession, get_session, shutdown_session
from services.narrative import GenerationResult, StoryGenerator
from services.sharing import share_story
from state import StorySession
from storage.preferences import PreferenceStore
from storage.stories import StoreError, StoryStore

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("taleteller.json")
POLL_MS = 100
PREVIEW_CHARS = 40


def list_entry(record: StoryRecord) -> str:
    """One listbox line: title, date and the start of the story."""
    preview = " ".join(record.preview(PREVIEW_CHARS).split())
    return f"{record.title} ({record.date}) - {preview}"


def story_details(record: StoryRecord) -> str:
    """Full text shown for a selected story."""
    text = f"{record.title}\n{record.date}\n\n{record.content}"
    if record.image_prompt:
        text += f"\n\nImage prompt:\n{record.image_prompt}"
    return text


class TaleTellerApp:
    """Main application window.  Handles widgets and delegates logic."""

    def __init__(
        self,
        root: tk.Tk,
        config: AppConfig | None = None,
        store: StoryStore | None = None,
        generator: StoryGenerator | None = None,
        speech_factory: Callable[[], SpeechSession] | None = None,
    ) -> None:
        self.root = root
        self.config = config or AppConfig()
        self.session = StorySession()
        self.store = store or StoryStore(
            PreferenceStore(self.config.store_path), title_prefix=self.config.title_prefix
        )
        self.generator = generator or StoryGenerator(
            self.config.model, language=self.config.language
        )
        self._speech_factory = speech_factory or self._default_speech
        self._unsubscribe: Callable[[], None] | None = None
        self._events: queue.Queue[Callable[[], None]] = queue.Queue()
        self._shown: list[StoryRecord] = []

        compose = tk.Frame(root)
        compose.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        self.entry = tk.Entry(compose)
        self.entry.pack(fill=tk.X)
        self.entry.bind("<Return>", self.on_add_keyword)
        words = tk.Frame(compose)
        words.pack(fill=tk.X)
        tk.Button(words, text="Add word", command=self.on_add_keyword).pack(side=tk.LEFT)
        tk.Button(words, text="Remove word", command=self.on_remove_keyword).pack(side=tk.LEFT)
        self.keywords_label = tk.Label(compose, anchor="w")
        self.keywords_label.pack(fill=tk.X)
        self.generate_button = tk.Button(compose, text="Generate", command=self.on_generate)
        self.generate_button.pack(fill=tk.X)
        self.text = tk.Text(compose, height=20, width=60, wrap=tk.WORD)
        self.text.pack(fill=tk.BOTH, expand=True)
        tk.Button(compose, text="Save", command=self.on_save).pack(fill=tk.X)

        library = tk.Frame(root)
        library.pack(side=tk.RIGHT, fill=tk.Y)
        self.listbox = tk.Listbox(library, width=50, exportselection=False)
        self.listbox.pack(fill=tk.X)
        self.listbox.bind("<<ListboxSelect>>", self.on_select)
        self.detail = tk.Text(library, height=14, width=50, wrap=tk.WORD, state=tk.DISABLED)
        self.detail.pack(fill=tk.BOTH, expand=True)
        self.play_button = tk.Button(library, text="Read aloud", command=self.on_play_pause)
        self.play_button.pack(fill=tk.X)
        tk.Button(library, text="Share", command=self.on_share).pack(fill=tk.X)
        tk.Button(library, text="Delete", command=self.on_delete).pack(fill=tk.X)
        self.rate = tk.Scale(library, label="Rate", from_=0.5, to=2.0, resolution=0.1,
                             orient=tk.HORIZONTAL)
        self.rate.set(self.config.speech_rate)
        self.rate.config(command=self.on_rate)
        self.rate.pack(fill=tk.X)
        self.pitch = tk.Scale(library, label="Pitch", from_=0.5, to=2.0, resolution=0.1,
                              orient=tk.HORIZONTAL)
        self.pitch.set(self.config.speech_pitch)
        self.pitch.config(command=self.on_pitch)
        self.pitch.pack(fill=tk.X)

        self.status = tk.Label(root, anchor="w")
        self.status.pack(side=tk.BOTTOM, fill=tk.X)

        self.refresh_stories()
        root.after(POLL_MS, self._poll)

    # Helpers -------------------------------------------------------------
    def _default_speech(self) -> SpeechSession:
        return get_session(
            notify=self.notify,
            rate=self.config.speech_rate,
            pitch=self.config.speech_pitch,
            locale=self.config.locale,
            fallback_locale=self.config.fallback_locale,
        )

    def _speech(self) -> SpeechSession:
        speech = self._speech_factory()
        if self._unsubscribe is None:
            self._unsubscribe = speech.is_speaking.subscribe(self._on_speaking)
        return speech

    def _on_speaking(self, speaking: bool) -> None:
        # called from the speech engine thread
        label = "Stop" if speaking else "Read aloud"
        self._events.put(lambda: self.play_button.config(text=label))

    def notify(self, message: str) -> None:
        """Show *message* in the status bar; safe from any thread."""
        self._events.put(lambda: self.status.config(text=message))

    def _drain_events(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            event()

    def _poll(self) -> None:
        self._drain_events()
        self.root.after(POLL_MS, self._poll)

    def refresh_stories(self) -> None:
        self._shown = newest_first(self.store.list())
        self.listbox.delete(0, tk.END)
        for record in self._shown:
            self.listbox.insert(tk.END, list_entry(record))
        self.show_details(None)

    def selected_story(self) -> StoryRecord | None:
        selection = self.listbox.curselection()
        if not selection:
            return None
        return self._shown[selection[0]]

    def show_details(self, record: StoryRecord | None) -> None:
        self.detail.config(state=tk.NORMAL)
        self.detail.delete("1.0", tk.END)
        if record is not None:
            self.detail.insert(tk.END, story_details(record))
        self.detail.config(state=tk.DISABLED)

    def _show_keywords(self) -> None:
        self.keywords_label.config(text=", ".join(self.session.keywords))

    # UI callbacks --------------------------------------------------------
    def on_add_keyword(self, event: tk.Event | None = None) -> None:
        if self.session.add_keyword(self.entry.get()):
            self.entry.delete(0, tk.END)
            self._show_keywords()

    def on_remove_keyword(self) -> None:
        """Remove the word typed in the entry, or the last one added."""
        word = self.entry.get().strip()
        if not word and self.session.keywords:
            word = self.session.keywords[-1]
        if word:
            self.session.remove_keyword(word)
            self.entry.delete(0, tk.END)
            self._show_keywords()

    def on_select(self, event: tk.Event | None = None) -> None:
        record = self.selected_story()
        if record is None:
            return
        stored = self.store.get(record.id)
        if stored is None:
            self.notify("That story is no longer saved.")
            self.refresh_stories()
            return
        self.show_details(stored)

    def on_generate(self) -> None:
        if not self.session.begin_generation():
            return
        self.generate_button.config(state=tk.DISABLED)
        keywords = list(self.session.keywords)
        threading.Thread(target=self._generate, args=(keywords,), daemon=True).start()

    def _generate(self, keywords: list[str]) -> None:
        """Worker thread body; always hands a result back to the UI thread."""
        story = GenerationResult.failure("Story generation stopped unexpectedly")
        image_prompt = GenerationResult.empty()
        try:
            story, image_prompt = self.generator.generate_story(keywords)
        except Exception as exc:
            logger.exception("Story generation crashed")
            story = GenerationResult.failure(str(exc) or exc.__class__.__name__)
        finally:
            self._events.put(lambda: self._show_generation(story, image_prompt))

    def _show_generation(self, story: GenerationResult, image_prompt: GenerationResult) -> None:
        self.session.end_generation(story.text, image_prompt.text if image_prompt.ok else "")
        self.generate_button.config(state=tk.NORMAL)
        self.text.delete("1.0", tk.END)
        if story.status == "error":
            self.notify(f"Story generation failed: {story.error}")
            return
        if story.status == "empty":
            self.notify("The model returned no story, try other words.")
            return
        self.text.insert(tk.END, story.text)
        if self.session.image_prompt:
            self.text.insert(tk.END, f"\n\nImage prompt:\n{self.session.image_prompt}")

    def on_save(self) -> None:
        if not self.session.story:
            return
        try:
            self.store.save(
                self.session.default_title(self.config.title_prefix),
                self.session.story,
                self.session.image_prompt,
            )
        except StoreError as exc:
            self.notify(str(exc))
            return
        self.notify("Story saved!")
        self.refresh_stories()

    def on_delete(self) -> None:
        record = self.selected_story()
        if record is None:
            return
        try:
            self.store.delete(record.id)
        except StoreError as exc:
            self.notify(str(exc))
            return
        self.refresh_stories()

    def on_play_pause(self) -> None:
        if not self.config.enable_audio:
            return
        speech = self._speech()
        if speech.is_speaking.value:
            speech.stop()
            return
        record = self.selected_story()
        if record is not None:
            speech.speak_long(record.content)

    def on_share(self) -> None:
        record = self.selected_story()
        if record is None:
            return

        def to_clipboard(payload: str) -> None:
            self.root.clipboard_clear()
            self.root.clipboard_append(payload)

        if share_story(record, to_clipboard, self.notify):
            self.notify("Story copied to the clipboard.")

    def on_rate(self, value: str) -> None:
        if self.config.enable_audio:
            self._speech().configure(rate=float(value))

    def on_pitch(self, value: str) -> None:
        if self.config.enable_audio:
            self._speech().configure(pitch=float(value))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        shutdown_session()
        ga.reset_client()
        self.root.destroy()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    root = tk.Tk()
    root.title("TaleTeller")
    app = TaleTellerApp(root, load_config(CONFIG_PATH))
    root.protocol("WM_DELETE_WINDOW", app.close)
    root.mainloop()


if __name__ == "__main__":
    main()
