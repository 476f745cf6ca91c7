import hashlib
import json
import os
import pathlib
import tempfile
from datetime import datetime, timezone
from typing import Optional

from .models import ProgressCheckpoint
from .utils import get_logger, sanitize

logger = get_logger("ProgressStore")


def document_id(container: bytes) -> str:
    """Stable identity of a book: the SHA-256 of its container bytes."""
    return hashlib.sha256(container).hexdigest()


class JsonProgressStore:
    """
    Keeps reading progress on disk, one JSON file per user.
    Format: {base_dir}/{user}.json -> {document_id: {"word_index", "wpm", "updated_at"}}
    """

    def __init__(self, base_dir="progress"):
        self.base_dir = pathlib.Path(base_dir)

    def get_user_file(self, user_id: str) -> pathlib.Path:
        name = sanitize(user_id) or "default"
        return self.base_dir / f"{name}.json"

    def _read(self, user_id: str) -> dict:
        path = self.get_user_file(user_id)
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read progress file {path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, user_id: str, doc_id: str) -> Optional[ProgressCheckpoint]:
        entry = self._read(user_id).get(doc_id)
        if not entry:
            logger.info("No saved progress, starting fresh.")
            return None
        try:
            checkpoint = ProgressCheckpoint(
                word_index=int(entry["word_index"]),
                words_per_minute=int(entry["wpm"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Ignoring malformed progress entry for {doc_id}: {e}")
            return None
        logger.info(f"Resuming at word {checkpoint.word_index} ({checkpoint.words_per_minute} wpm).")
        return checkpoint

    def save(self, user_id: str, doc_id: str, checkpoint: ProgressCheckpoint):
        """Creates the entry on first save and updates it afterwards."""
        data = self._read(user_id)
        data[doc_id] = {
            "word_index": checkpoint.word_index,
            "wpm": checkpoint.words_per_minute,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        path = self.get_user_file(user_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic swap: the previous file survives a failed write
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=4)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        logger.debug(f"Progress saved to {path} at word {checkpoint.word_index}")

    def sink(self, user_id: str, doc_id: str):
        """Returns an on_checkpoint callback bound to one user and book."""
        def on_checkpoint(checkpoint: ProgressCheckpoint):
            self.save(user_id, doc_id, checkpoint)
        return on_checkpoint
