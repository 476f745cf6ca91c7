import unittest
from unittest.mock import MagicMock, patch

from rsvp_reader.models import ChapterMark, ParsedDocument
from rsvp_reader.user_interaction import (
    FOCAL_COLUMN,
    SEEK_STEP,
    SKIP_STEP,
    SPEED_STEP,
    choose_chapter,
    handle_command,
    print_chapters,
    render_word,
)
from rsvp_reader.focal import split_word


def make_document():
    return ParsedDocument(
        title="Book",
        author="Author",
        words=tuple("w" for _ in range(900)),
        chapters=(ChapterMark("Prologue", 0), ChapterMark("Chapter One", 300)),
    )


class TestUserInteraction(unittest.TestCase):

    @patch('builtins.input', return_value="2")
    def test_choose_chapter(self, mock_input):
        chapter = choose_chapter(make_document())
        self.assertEqual(chapter.title, "Chapter One")

    @patch('builtins.input', return_value="")
    def test_choose_chapter_keeps_position(self, mock_input):
        self.assertIsNone(choose_chapter(make_document()))

    @patch('builtins.input', side_effect=["abc", "9", "1"])
    def test_choose_chapter_retries_invalid_input(self, mock_input):
        chapter = choose_chapter(make_document())
        self.assertEqual(chapter.title, "Prologue")
        self.assertEqual(mock_input.call_count, 3)

    @patch('builtins.input')
    def test_choose_chapter_without_chapters(self, mock_input):
        document = ParsedDocument(title="Book", words=("a",))
        self.assertIsNone(choose_chapter(document))
        mock_input.assert_not_called()

    @patch('builtins.print')
    def test_print_chapters(self, mock_print):
        print_chapters(make_document(), 300)
        output = "\n".join(str(call.args[0]) for call in mock_print.call_args_list if call.args)
        self.assertIn("Chapter One", output)
        self.assertIn("by Author", output)
        # 300 words at 300 wpm, then 600 words
        self.assertIn("1m", output)
        self.assertIn("2m", output)

    def test_render_word_pins_focal_column(self):
        scheduler = MagicMock()
        scheduler.focal_split = split_word("reading")
        scheduler.progress_fraction = 0.25
        scheduler.current_chapter = ChapterMark("Chapter One", 0)
        scheduler.eta_text.return_value = "3m"
        scheduler.words_per_minute = 300

        line = render_word(scheduler)

        self.assertEqual(line.index("[a]"), FOCAL_COLUMN)
        self.assertIn("25.0%", line)
        self.assertIn("Chapter One", line)
        self.assertIn("3m left @ 300 wpm", line)

    def test_handle_command_maps_keys(self):
        scheduler = MagicMock()

        self.assertTrue(handle_command(scheduler, "\n"))
        scheduler.toggle.assert_called_once()

        handle_command(scheduler, ",")
        handle_command(scheduler, "\x1b[C\n")
        handle_command(scheduler, "B")
        handle_command(scheduler, ">")
        self.assertEqual(
            [call.args[0] for call in scheduler.seek_by.call_args_list],
            [-SEEK_STEP, SEEK_STEP, -SKIP_STEP, SKIP_STEP],
        )

        handle_command(scheduler, "+")
        handle_command(scheduler, "\x1b[B")
        self.assertEqual(
            [call.args[0] for call in scheduler.set_speed.call_args_list],
            [SPEED_STEP, -SPEED_STEP],
        )

        handle_command(scheduler, "r")
        scheduler.restart.assert_called_once()

    def test_handle_command_quit(self):
        scheduler = MagicMock()
        self.assertFalse(handle_command(scheduler, "q\n"))
        scheduler.toggle.assert_not_called()

    @patch('builtins.print')
    def test_unknown_command_prints_controls(self, mock_print):
        scheduler = MagicMock()

        self.assertTrue(handle_command(scheduler, "zzz"))

        output = "\n".join(str(call.args[0]) for call in mock_print.call_args_list if call.args)
        self.assertIn("Controls", output)
        self.assertIn("restart", output)
        scheduler.toggle.assert_not_called()
        scheduler.seek_by.assert_not_called()


if __name__ == "__main__":
    unittest.main()
