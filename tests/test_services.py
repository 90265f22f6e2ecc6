import sys
import pathlib
import importlib
import json
import os
import tempfile
import unittest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from config import AppConfig, load_config, save_config
from models import StoryRecord
from services.sharing import SHARE_FAILED, share_story, share_text
from state import StorySession


class ConfigTests(unittest.TestCase):
    def test_missing_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            cfg = load_config(os.path.join(d, "missing.json"))
        self.assertEqual(cfg, AppConfig())
        self.assertEqual(cfg.locale, "tr_TR")
        self.assertEqual(cfg.fallback_locale, "en_US")

    def test_json_round_trip(self) -> None:
        cfg = AppConfig(language="en", locale="en_GB", speech_rate=1.4)
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "cfg.json")
            save_config(cfg, path)
            loaded = load_config(path)
        self.assertEqual(cfg, loaded)

    def test_unknown_keys_are_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "cfg.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"model": "gemini-2.0-flash", "theme": "dark"}, f)
            cfg = load_config(path)
        self.assertEqual(cfg.model, "gemini-2.0-flash")

    def test_invalid_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "cfg.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{broken")
            with self.assertLogs("config", level="WARNING"):
                cfg = load_config(path)
        self.assertEqual(cfg, AppConfig())


class StorySessionTests(unittest.TestCase):
    def test_keywords(self) -> None:
        session = StorySession()
        self.assertTrue(session.add_keyword("  kedi "))
        self.assertFalse(session.add_keyword("   "))
        session.add_keyword("ay")
        session.remove_keyword("kedi")
        self.assertEqual(session.keywords, ["ay"])
        self.assertEqual(session.default_title(), "Masal ay")

    def test_only_one_generation_in_flight(self) -> None:
        session = StorySession()
        self.assertTrue(session.begin_generation())
        self.assertFalse(session.begin_generation())
        session.end_generation("story", "prompt")
        self.assertFalse(session.busy)
        self.assertEqual((session.story, session.image_prompt), ("story", "prompt"))
        self.assertTrue(session.begin_generation())


class SharingTests(unittest.TestCase):
    record = StoryRecord(id=1, title="Masal ay", content="Bir varmış.", date="01/05/2024 09:30")

    def test_share_text(self) -> None:
        self.assertEqual(share_text(self.record), "Masal ay\n\nBir varmış.")

    def test_share_hands_payload_to_sink(self) -> None:
        received = []
        self.assertTrue(share_story(self.record, received.append))
        self.assertEqual(received, ["Masal ay\n\nBir varmış."])

    def test_share_failure_is_a_notice(self) -> None:
        notices = []

        def broken(payload: str) -> None:
            raise OSError("no share target")

        with self.assertLogs("services.sharing", level="ERROR"):
            self.assertFalse(share_story(self.record, broken, notices.append))
        self.assertEqual(notices, [SHARE_FAILED])


class ImportTests(unittest.TestCase):
    def test_import_does_not_start_tk(self) -> None:
        try:
            import tkinter as tk
        except ImportError:  # pragma: no cover - depends on the interpreter build
            self.skipTest("tkinter not available")
        if tk._default_root is not None:
            tk._default_root.destroy()
            tk._default_root = None
        importlib.invalidate_caches()
        mod = importlib.import_module("TaleTeller")
        importlib.reload(mod)
        self.assertIsNone(tk._default_root)
