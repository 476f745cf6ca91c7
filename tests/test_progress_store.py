import json
import os
import tempfile
import unittest
from unittest.mock import patch

from rsvp_reader.models import ProgressCheckpoint
from rsvp_reader.progress_store import JsonProgressStore, document_id


class TestProgressStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = JsonProgressStore(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_load_without_saved_progress(self):
        self.assertIsNone(self.store.load("alice", "book-1"))

    def test_save_then_update(self):
        """First save creates the entry, later saves overwrite it."""
        self.store.save("alice", "book-1", ProgressCheckpoint(120, 350))
        self.store.save("alice", "book-1", ProgressCheckpoint(480, 400))

        self.assertEqual(self.store.load("alice", "book-1"), ProgressCheckpoint(480, 400))

        with open(self.store.get_user_file("alice")) as f:
            data = json.load(f)
        self.assertEqual(list(data.keys()), ["book-1"])
        self.assertEqual(data["book-1"]["wpm"], 400)
        self.assertIn("updated_at", data["book-1"])

    def test_failed_write_keeps_previous_progress(self):
        self.store.save("alice", "book-1", ProgressCheckpoint(120, 350))

        def partial_dump(data, f, **kwargs):
            f.write('{"book-1": {"word_')
            raise OSError("No space left on device")

        with patch('rsvp_reader.progress_store.json.dump', side_effect=partial_dump):
            with self.assertRaises(OSError):
                self.store.save("alice", "book-1", ProgressCheckpoint(480, 400))

        self.assertEqual(self.store.load("alice", "book-1"), ProgressCheckpoint(120, 350))
        self.assertEqual(os.listdir(self.tmp.name), ["alice.json"])

    def test_progress_is_keyed_by_user_and_book(self):
        self.store.save("alice", "book-1", ProgressCheckpoint(10, 300))
        self.store.save("alice", "book-2", ProgressCheckpoint(20, 300))
        self.store.save("bob", "book-1", ProgressCheckpoint(30, 300))

        self.assertEqual(self.store.load("alice", "book-1").word_index, 10)
        self.assertEqual(self.store.load("alice", "book-2").word_index, 20)
        self.assertEqual(self.store.load("bob", "book-1").word_index, 30)

    def test_sink_saves(self):
        sink = self.store.sink("alice", "book-1")
        sink(ProgressCheckpoint(7, 250))
        self.assertEqual(self.store.load("alice", "book-1"), ProgressCheckpoint(7, 250))

    def test_corrupt_file_is_ignored(self):
        path = self.store.get_user_file("alice")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{not json")

        self.assertIsNone(self.store.load("alice", "book-1"))

    def test_malformed_entry_is_ignored(self):
        path = self.store.get_user_file("alice")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"book-1": {"word_index": "x"}}))

        self.assertIsNone(self.store.load("alice", "book-1"))

    def test_user_file_name_is_sanitized(self):
        self.assertEqual(self.store.get_user_file("../al/ice").name, "..alice.json")
        self.assertEqual(self.store.get_user_file("///").name, "default.json")

    def test_document_id_is_stable(self):
        self.assertEqual(document_id(b"book"), document_id(b"book"))
        self.assertNotEqual(document_id(b"book"), document_id(b"other"))
        self.assertEqual(len(document_id(b"book")), 64)


if __name__ == "__main__":
    unittest.main()
