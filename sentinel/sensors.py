"""
Sensor failure sources.

Checkpoint readers (QR, face, plate) occasionally fail to recognize a
credential. The orchestrator asks a FailureSource whether the current scan
failed, so tests can force either branch deterministically.
"""

import random
import threading
from abc import ABC, abstractmethod
from typing import Optional


class FailureSource(ABC):

    @abstractmethod
    def scan_failed(self, modality: str) -> bool:
        """Return True if the reader failed to recognize the credential."""
        pass


class RandomFailureSource(FailureSource):
    """
    Fails each scan independently with a fixed probability.

    Pass a seed for reproducible sequences.
    """

    DEFAULT_RATE = 0.05

    def __init__(self, rate: float = DEFAULT_RATE, seed: Optional[int] = None):
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"Failure rate must be within [0, 1], got {rate}")
        self.rate = rate
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def scan_failed(self, modality: str) -> bool:
        with self._lock:
            return self._rng.random() < self.rate


class FixedFailureSource(FailureSource):
    """Always fails, or never fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail

    def scan_failed(self, modality: str) -> bool:
        return self.fail
