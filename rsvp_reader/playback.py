import asyncio
import enum
import math
import time
from typing import Callable, Optional

from .focal import FocalSplit, split_word
from .models import ChapterMark, ParsedDocument, PlaybackState, ProgressCheckpoint
from .utils import estimate_reading_time, get_logger

logger = get_logger(__name__)


class PlaybackStatus(enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    COMPLETED = "completed"


class PlaybackScheduler:
    """
    Drives RSVP playback of a ParsedDocument on an asyncio event loop.

    At most one tick is pending at any time. Every command cancels the pending
    tick before touching state and reschedules afterwards if still playing, so
    a stale tick can never fire against updated state. All commands must be
    called from the loop's thread.

    Progress is pushed to on_checkpoint immediately on pause/completion and at
    most once every CHECKPOINT_INTERVAL seconds while playing.
    """

    MIN_WPM = 100
    MAX_WPM = 1000
    DEFAULT_WPM = 300
    CHECKPOINT_INTERVAL = 2.0   # seconds

    def __init__(
        self,
        document: ParsedDocument,
        checkpoint: Optional[ProgressCheckpoint] = None,
        on_checkpoint: Optional[Callable[[ProgressCheckpoint], object]] = None,
        on_finished: Optional[Callable[[], None]] = None,
        on_word: Optional[Callable[["PlaybackScheduler"], None]] = None,
        loop=None,
    ):
        self.document = document
        self.on_checkpoint = on_checkpoint
        self.on_finished = on_finished
        self.on_word = on_word
        self._loop = loop
        self._pending = None
        self._started = False
        self._last_checkpoint_at: Optional[float] = None
        self._tasks = set()

        seed = checkpoint or ProgressCheckpoint(word_index=0, words_per_minute=self.DEFAULT_WPM)
        self._state = PlaybackState(
            word_index=self._clamp_index(seed.word_index),
            words_per_minute=self._clamp_wpm(seed.words_per_minute),
            running=False,
        )
        logger.debug(
            f"Session for '{document.title}' starts at word {self._state.word_index} "
            f"({self._state.words_per_minute} wpm)"
        )

    # -- Loop / timer plumbing --

    @property
    def loop(self):
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _now(self) -> float:
        if self._loop is not None:
            return self._loop.time()
        return time.monotonic()

    def _cancel_tick(self):
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _schedule_tick(self):
        self._cancel_tick()
        self._pending = self.loop.call_later(self.tick_interval, self._tick)

    def _tick(self):
        self._pending = None
        if not self._state.running:
            return

        self._state.word_index = min(self._state.word_index + 1, self.last_index)
        if not self.is_at_end:
            # Speed is read now, so a change mid-tick applies from the next word
            self._schedule_tick()

        self._notify_word()

        if self.is_at_end:
            self._complete()
        else:
            self._maybe_checkpoint()

    def _complete(self):
        self._cancel_tick()
        self._state.running = False
        logger.info(f"Finished '{self.document.title}'.")
        self._maybe_checkpoint(force=True)
        if self.on_finished is not None:
            self.on_finished()

    # -- Clamping --

    @property
    def last_index(self) -> int:
        return max(len(self.document.words) - 1, 0)

    def _clamp_index(self, index: int) -> int:
        return min(max(int(index), 0), self.last_index)

    def _clamp_wpm(self, wpm: int) -> int:
        return min(max(int(wpm), self.MIN_WPM), self.MAX_WPM)

    # -- Commands --

    def play(self):
        if self._state.running:
            return
        if not self.document.words:
            logger.warning("Nothing to play, the document has no words.")
            return
        if self.is_at_end:
            logger.debug("Already at the last word, restart to play again.")
            return
        self._started = True
        self._state.running = True
        self._schedule_tick()

    def pause(self):
        self._cancel_tick()
        self._state.running = False
        self._maybe_checkpoint(force=True)

    def toggle(self):
        if self._state.running:
            self.pause()
        else:
            self.play()

    def set_speed(self, delta: int):
        self._cancel_tick()
        self._state.words_per_minute = self._clamp_wpm(self._state.words_per_minute + delta)
        if self._state.running:
            self._schedule_tick()
        self._maybe_checkpoint()

    def seek_to(self, index: int):
        self._cancel_tick()
        self._state.word_index = self._clamp_index(index)
        self._notify_word()
        if self._state.running:
            if self.is_at_end:
                self._complete()
                return
            self._schedule_tick()
        self._maybe_checkpoint()

    def seek_by(self, words: int):
        self.seek_to(self._state.word_index + words)

    def seek_by_seconds(self, seconds: float):
        """Moves by the number of words read in `seconds` at the current speed."""
        self.seek_by(round(seconds * self._state.words_per_minute / 60))

    def seek_to_fraction(self, fraction: float):
        if math.isnan(fraction):
            fraction = 0.0
        fraction = min(max(fraction, 0.0), 1.0)
        self.seek_to(math.floor(fraction * len(self.document.words)))

    def seek_to_chapter(self, mark: ChapterMark):
        self.seek_to(mark.word_index)

    def restart(self):
        self._cancel_tick()
        self._state.word_index = 0
        self._state.running = False
        self._started = True
        self._notify_word()
        self._maybe_checkpoint()

    # -- Checkpoints --

    def checkpoint(self) -> ProgressCheckpoint:
        return ProgressCheckpoint(
            word_index=self._state.word_index,
            words_per_minute=self._state.words_per_minute,
        )

    def _maybe_checkpoint(self, force: bool = False):
        now = self._now()
        # While stopped every change is saved, while playing at most one per window
        if not force and self._state.running and self._last_checkpoint_at is not None:
            if now - self._last_checkpoint_at < self.CHECKPOINT_INTERVAL:
                return
        self._last_checkpoint_at = now
        self._emit_checkpoint()

    def _emit_checkpoint(self):
        if self.on_checkpoint is None:
            return
        checkpoint = self.checkpoint()
        try:
            result = self.on_checkpoint(checkpoint)
            if asyncio.iscoroutine(result):
                task = self.loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except Exception as e:
            logger.warning(f"Failed to save progress at word {checkpoint.word_index}: {e}")

    def _notify_word(self):
        if self.on_word is not None:
            self.on_word(self)

    # -- Read-only views --

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            word_index=self._state.word_index,
            words_per_minute=self._state.words_per_minute,
            running=self._state.running,
        )

    @property
    def word_index(self) -> int:
        return self._state.word_index

    @property
    def words_per_minute(self) -> int:
        return self._state.words_per_minute

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def is_at_end(self) -> bool:
        return bool(self.document.words) and self._state.word_index >= self.last_index

    @property
    def status(self) -> PlaybackStatus:
        if self._state.running:
            return PlaybackStatus.PLAYING
        if self.is_at_end:
            return PlaybackStatus.COMPLETED
        if self._started:
            return PlaybackStatus.PAUSED
        return PlaybackStatus.IDLE

    @property
    def tick_interval(self) -> float:
        """Seconds per word at the current speed."""
        return 60.0 / self._state.words_per_minute

    @property
    def tick_interval_ms(self) -> float:
        return 60000 / self._state.words_per_minute

    @property
    def current_word(self) -> str:
        if not self.document.words:
            return ""
        return self.document.words[self._state.word_index]

    @property
    def focal_split(self) -> FocalSplit:
        return split_word(self.current_word)

    @property
    def progress_fraction(self) -> float:
        if not self.document.words:
            return 0.0
        return self._state.word_index / len(self.document.words)

    @property
    def words_remaining(self) -> int:
        return len(self.document.words) - self._state.word_index

    def eta_for_remaining(self, wpm: Optional[int] = None) -> float:
        """Seconds needed to read the rest of the book at `wpm` (default: current speed)."""
        wpm = wpm or self._state.words_per_minute
        if self.words_remaining <= 0:
            return 0.0
        return self.words_remaining * 60 / wpm

    def eta_text(self, wpm: Optional[int] = None) -> str:
        return estimate_reading_time(self.words_remaining, wpm or self._state.words_per_minute)

    def locate_chapter(self, index: Optional[int] = None) -> Optional[ChapterMark]:
        if index is None:
            index = self._state.word_index
        return self.document.locate_chapter(index)

    @property
    def current_chapter(self) -> Optional[ChapterMark]:
        return self.locate_chapter()
