"""Ringtone control for the owner client."""
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Ringtone(ABC):
    """Abstract looping ringtone."""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop playback. Safe to call when not playing."""
        pass


class LoggingRingtone(Ringtone):
    """Ringtone that only records whether it is playing."""

    def __init__(self):
        self.playing = False

    def start(self) -> None:
        self.playing = True
        logger.info("[RINGTONE] Ringing")

    def stop(self) -> None:
        if self.playing:
            logger.info("[RINGTONE] Stopped")
        self.playing = False
