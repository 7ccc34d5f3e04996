"""
Per-photo editing state.

Every photo owns its history and its lock, so edits on different photos never share
mutable state and edits on the same photo run one at a time.
"""
import threading
from typing import Dict, List, Optional

import numpy as np

from idphoto.logging import logger
from idphoto.structures import RefinedMask


class PhotoSession:
    def __init__(self, photo_id: str, image: np.ndarray, max_history: int = 50):
        """
        Editing state of a single photo.

        Args:
            photo_id (str): Identifier of the photo.
            image (np.ndarray): The uploaded photo.
            max_history (int): Number of undo steps that are kept.
        """
        self.photo_id = photo_id
        self.original = image.copy()
        self.current = image.copy()
        self.max_history = max_history

        self.history: List[np.ndarray] = []
        self.future: List[np.ndarray] = []

        # Photo the last background edit started from, reused by the next background edit
        self.background_source: Optional[np.ndarray] = None
        self.background_mask: Optional[RefinedMask] = None

        # Photo the current brightness/contrast adjustment was applied to
        self.reference: Optional[np.ndarray] = None

        self.lock = threading.RLock()

    def commit(self, image: np.ndarray) -> None:
        """
        Make `image` the current image, keeping the previous one for undo.

        The adjustment reference belongs to the replaced image and is dropped.

        Args:
            image (np.ndarray): The edited image. Must not alias the current image.
        """
        with self.lock:
            self.history.append(self.current)
            if len(self.history) > self.max_history:
                self.history.pop(0)
            self.future.clear()
            self.current = image
            self.reference = None

    def undo(self) -> bool:
        with self.lock:
            if not self.history:
                return False
            self.future.append(self.current)
            self.current = self.history.pop()
            self.reference = None
            self.reset_background_state()
            return True

    def redo(self) -> bool:
        with self.lock:
            if not self.future:
                return False
            self.history.append(self.current)
            self.current = self.future.pop()
            self.reference = None
            self.reset_background_state()
            return True

    def reset_background_state(self) -> None:
        with self.lock:
            self.background_source = None
            self.background_mask = None


class PhotoSessionStore:
    """Thread-safe registry of open photo sessions."""

    def __init__(self, max_history: int = 50):
        self.max_history = max_history
        self._sessions: Dict[str, PhotoSession] = {}
        self._lock = threading.Lock()

    def open(self, photo_id: str, image: np.ndarray) -> PhotoSession:
        session = PhotoSession(photo_id, image, max_history=self.max_history)
        with self._lock:
            self._sessions[photo_id] = session
        logger.info({"event": "session_opened", "photo_id": photo_id, "shape": list(image.shape)})
        return session

    def get(self, photo_id: str) -> PhotoSession:
        with self._lock:
            try:
                return self._sessions[photo_id]
            except KeyError:
                raise KeyError(f"Unknown photo: {photo_id}") from None

    def close(self, photo_id: str) -> None:
        with self._lock:
            self._sessions.pop(photo_id, None)
        logger.info({"event": "session_closed", "photo_id": photo_id})
