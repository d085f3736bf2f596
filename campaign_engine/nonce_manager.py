"""
Per-sender nonce ownership.

The sender's nonce sequence is the one resource shared between creation calls.
SenderNonceManager owns it: callers serialize on the sender's lock for the whole
submit-and-confirm workflow and ask the manager for each attempt's nonce.
"""
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from bittensor.utils.btlogging import logging

PENDING = "pending"
LATEST = "latest"


class SenderNonceManager:
    """Serializes creation workflows per sender address and selects nonces."""

    def __init__(self, lock_timeout: Optional[float] = None):
        """
        Initialize nonce manager.

        Args:
            lock_timeout: Seconds to wait for a sender's lock; None waits indefinitely
        """
        self.lock_timeout = lock_timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, sender: str) -> threading.Lock:
        key = sender.lower()
        with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    @contextmanager
    def serialized(self, sender: str) -> Iterator[None]:
        """
        Hold the sender's lock for the duration of the block.

        Raises:
            TimeoutError: If the lock could not be acquired within ``lock_timeout``
        """
        lock = self._lock_for(sender)
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not lock.acquire(timeout=timeout):
            raise TimeoutError(f"Timed out waiting for sender {sender} to become free")
        try:
            yield
        finally:
            lock.release()

    @staticmethod
    def block_identifier_for(attempt: int) -> str:
        """
        Attempt 0 stacks behind anything already broadcast (pending); later attempts
        re-read the confirmed count since an earlier attempt may have landed or been evicted.
        """
        return PENDING if attempt == 0 else LATEST

    def next_nonce(self, attempt: int, read_nonce: Callable[[str], int]) -> int:
        """
        Select the nonce for an attempt.

        Args:
            attempt: Zero-based attempt index
            read_nonce: Callable taking "pending" or "latest" and returning the count

        Returns:
            Nonce to use
        """
        block_identifier = self.block_identifier_for(attempt)
        nonce = read_nonce(block_identifier)
        logging.debug(f"Attempt {attempt + 1}: nonce={nonce} ({block_identifier})")
        return nonce
