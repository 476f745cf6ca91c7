from typing import Callable, NamedTuple, Optional, Tuple

from .models import ChapterMark, ParsedDocument
from .utils import estimate_reading_time, get_logger

logger = get_logger("UserInteraction")

FOCAL_COLUMN = 20   # Screen column the focal character is pinned to


def print_chapters(document: ParsedDocument, wpm: int):
    """Prints the detected chapters with their start word and reading time."""
    print("\n" + "=" * 60)
    print(f"{document.title}" + (f" by {document.author}" if document.author else ""))
    print(f"{len(document.words)} words, {len(document.chapters)} chapters")
    print("=" * 60)

    if not document.chapters:
        print("No chapters detected.")
        return

    print(f"{'ID':<5} | {'TITLE':<40} | {'WORD':>8} | {'LENGTH':<10}")
    print("-" * 72)
    ends = [c.word_index for c in document.chapters[1:]] + [len(document.words)]
    for i, (chap, end) in enumerate(zip(document.chapters, ends), start=1):
        length = estimate_reading_time(end - chap.word_index, wpm)
        print(f"{i:<5} | {chap.title[:38]:<40} | {chap.word_index:>8} | {length:<10}")
    print("-" * 72)


def choose_chapter(document: ParsedDocument) -> Optional[ChapterMark]:
    """
    Interactive prompt for the chapter to start from.
    Returns None when the user keeps the saved position.
    """
    if not document.chapters:
        return None

    print("\nEnter a chapter ID to start from, or press ENTER to resume.")
    user_input = input("> ").strip()

    if not user_input:
        return None

    try:
        choice = int(user_input)
        if not 1 <= choice <= len(document.chapters):
            raise ValueError(choice)
    except ValueError:
        logger.error(f"Invalid input. Please enter a number between 1 and {len(document.chapters)}.")
        return choose_chapter(document)  # Recursive retry

    return document.chapters[choice - 1]


def render_word(scheduler) -> str:
    """
    One status line: the word with its focal character pinned to a fixed
    column, then progress, chapter and remaining time.
    """
    before, focal, after = scheduler.focal_split
    padding = " " * max(FOCAL_COLUMN - len(before), 0)
    chapter = scheduler.current_chapter
    chapter_label = f" | {chapter.title[:30]}" if chapter else ""
    return (
        f"{padding}{before}[{focal}]{after:<25}"
        f" {scheduler.progress_fraction * 100:5.1f}%"
        f"{chapter_label}"
        f" | {scheduler.eta_text()} left @ {scheduler.words_per_minute} wpm"
    )


SEEK_STEP = 10      # words
SKIP_STEP = 50      # words
SPEED_STEP = 50     # wpm

QUIT_KEYS = ("q", "quit")


class Control(NamedTuple):
    label: str
    keys: Tuple[str, ...]
    help: str
    action: Callable


# Arrow keys arrive as ANSI escape sequences when typed at a line-mode prompt
CONTROLS = [
    Control("ENTER / p", ("", "p"), "play / pause", lambda s: s.toggle()),
    Control(", / LEFT", (",", "\x1b[d"), f"back {SEEK_STEP} words", lambda s: s.seek_by(-SEEK_STEP)),
    Control(". / RIGHT", (".", "\x1b[c"), f"forward {SEEK_STEP} words", lambda s: s.seek_by(SEEK_STEP)),
    Control("< / b", ("<", "b"), f"back {SKIP_STEP} words", lambda s: s.seek_by(-SKIP_STEP)),
    Control("> / f", (">", "f"), f"forward {SKIP_STEP} words", lambda s: s.seek_by(SKIP_STEP)),
    Control("+ / UP", ("+", "=", "\x1b[a"), f"{SPEED_STEP} wpm faster", lambda s: s.set_speed(SPEED_STEP)),
    Control("- / DOWN", ("-", "\x1b[b"), f"{SPEED_STEP} wpm slower", lambda s: s.set_speed(-SPEED_STEP)),
    Control("r", ("r",), "restart from the first word", lambda s: s.restart()),
]


def print_controls():
    print("\nControls (type a key, then ENTER):")
    for control in CONTROLS:
        print(f"  {control.label:<10} {control.help}")
    print(f"  {'q':<10} quit")


def handle_command(scheduler, command: str) -> bool:
    """
    Applies one typed command to the scheduler.
    Returns False when the user asked to quit.
    """
    key = command.strip().lower()
    if key in QUIT_KEYS:
        return False

    for control in CONTROLS:
        if key in control.keys:
            logger.debug(f"Command {key!r}: {control.help}")
            control.action(scheduler)
            return True

    print_controls()
    return True
