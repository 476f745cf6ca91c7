import argparse
import asyncio
import os
import sys

from .epub_parser import extract_async
from .exceptions import ReaderError
from .models import ProgressCheckpoint
from .playback import PlaybackScheduler
from .progress_store import JsonProgressStore, document_id
from .user_interaction import choose_chapter, handle_command, print_chapters, print_controls, render_word
from .utils import get_logger, setup_logging

logger = get_logger("Main")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="RSVP speed reader for EPUB books")
    parser.add_argument("epub", help="Path to the EPUB file")
    parser.add_argument("--wpm", type=int, help="Reading speed, overrides the saved speed")
    parser.add_argument("--user", default="default", help="Whose progress to resume and save")
    parser.add_argument("--progress-dir", default="progress", help="Where progress files live")
    parser.add_argument("--chapters", action="store_true", help="List detected chapters and exit")
    parser.add_argument("--choose-chapter", action="store_true", help="Pick a chapter to start from")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def print_word(scheduler):
    print("\r" + render_word(scheduler), end="", flush=True)


def attach_controls(scheduler, stop: asyncio.Event, stream=None) -> bool:
    """
    Watches the terminal for typed commands without blocking the loop.
    Returns False when there is no terminal to watch, playback then runs
    to the end on its own.
    """
    stream = stream or sys.stdin
    try:
        if not stream.isatty():
            return False
        fd = stream.fileno()
        loop = asyncio.get_running_loop()
    except (AttributeError, OSError, ValueError) as e:
        logger.debug(f"Keyboard controls unavailable: {e}")
        return False

    def on_input():
        data = os.read(fd, 1024)
        if not data:  # EOF (Ctrl+D)
            loop.remove_reader(fd)
            stop.set()
            return
        for line in data.decode(errors="replace").splitlines():
            if not handle_command(scheduler, line):
                stop.set()
                return

    try:
        loop.add_reader(fd, on_input)
    except (NotImplementedError, OSError, ValueError) as e:
        logger.debug(f"Keyboard controls unavailable: {e}")
        return False
    return True


def detach_controls(stream=None):
    stream = stream or sys.stdin
    asyncio.get_running_loop().remove_reader(stream.fileno())


async def read_book(container: bytes, args) -> PlaybackScheduler:
    # --- Phase 1: Extraction (off the event loop) ---
    document = await extract_async(container)

    store = JsonProgressStore(args.progress_dir)
    doc_id = document_id(container)
    checkpoint = store.load(args.user, doc_id)
    if args.wpm:
        start = checkpoint.word_index if checkpoint else 0
        checkpoint = ProgressCheckpoint(word_index=start, words_per_minute=args.wpm)

    scheduler = PlaybackScheduler(
        document,
        checkpoint=checkpoint,
        on_checkpoint=store.sink(args.user, doc_id),
        on_word=print_word,
    )

    if args.chapters:
        print_chapters(document, scheduler.words_per_minute)
        return scheduler

    if not document.words:
        logger.warning("The book contains no readable text.")
        return scheduler

    # --- Phase 2: Position ---
    if args.choose_chapter:
        print_chapters(document, scheduler.words_per_minute)
        chapter = await asyncio.to_thread(choose_chapter, document)
        if chapter:
            scheduler.seek_to_chapter(chapter)

    if scheduler.is_at_end:
        logger.info("Book already finished, starting over.")
        scheduler.restart()

    # --- Phase 3: Playback ---
    stop = asyncio.Event()
    interactive = attach_controls(scheduler, stop)
    if interactive:
        # The session stays open after the last word so the reader can rewind
        print_controls()
        scheduler.on_finished = lambda: print("\nEnd of book. r to restart, q to quit.")
    else:
        scheduler.on_finished = stop.set

    logger.info(f"Reading '{document.title}' at {scheduler.words_per_minute} wpm. Ctrl+C to stop.")
    scheduler.play()
    try:
        await stop.wait()
    finally:
        if interactive:
            detach_controls()
        if scheduler.running:
            scheduler.pause()
        print()
    return scheduler


def main(argv=None):
    args = parse_args(argv)

    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level)

    if not os.path.exists(args.epub):
        logger.error(f"EPUB file not found: {args.epub}")
        sys.exit(1)

    with open(args.epub, "rb") as f:
        container = f.read()

    try:
        asyncio.run(read_book(container, args))
    except ReaderError as e:
        logger.error(f"Could not open book: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Stopped. Progress saved.")


if __name__ == "__main__":
    main()
