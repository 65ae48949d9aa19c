from dataclasses import dataclass, field
import threading
from typing import Generic, List, Optional, Sequence, Tuple, TypeAlias, TypeVar

from pad_prober.errors import AttackCancelled


T = TypeVar("T")


class SingleSlotQueue(Generic[T]):
    """Thread-safe, size=1, latest-wins queue. Consumers read the latest item."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._has_value = False
        self._value: Optional[T] = None
        self._closed = False

    def publish(self, item: T) -> None:
        """Publish an item, replacing any value nobody has read yet."""
        with self._condition:
            if self._closed:
                return
            self._value = item
            self._has_value = True
            self._condition.notify()

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block until a value is available or the queue is closed. Returns None on close."""
        with self._condition:
            ok = self._condition.wait_for(
                lambda: self._has_value or self._closed, timeout
            )
            if not ok:
                raise TimeoutError("queue get() timed out")
            if not self._has_value:
                return None
            value = self._value
            self._value = None
            self._has_value = False
            return value


PartialBlock: TypeAlias = Tuple[Optional[int], ...]


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Immutable view of the solver for the UI."""

    state_version: int
    complete: bool
    block_count: int
    block_size: int
    block_index: int
    byte_index: int
    guess: int
    pad_length: int
    queries: int

    ciphertext: Tuple[bytes, ...] = field(default_factory=tuple)
    forged: Tuple[PartialBlock, ...] = field(default_factory=tuple)
    plaintext: Tuple[PartialBlock, ...] = field(default_factory=tuple)


class ProgressTracker:
    """Collects probe events from block decryptors and publishes snapshots.

    Block 0 is the IV, so its forged and plaintext rows stay empty.
    """

    def __init__(self, blocks: Sequence[bytes], state_queue: SingleSlotQueue[StateSnapshot]):
        self._lock = threading.Lock()
        self._queue = state_queue
        self._ciphertext = tuple(bytes(b) for b in blocks)
        self._block_size = len(self._ciphertext[0]) if self._ciphertext else 0
        self._forged: List[List[Optional[int]]] = [[None] * self._block_size for _ in self._ciphertext]
        self._plaintext: List[List[Optional[int]]] = [[None] * self._block_size for _ in self._ciphertext]
        self._version = 0
        self._queries = 0
        self._last = (1, self._block_size - 1, 0, 1)
        self._cancelled = threading.Event()

    def probe(
        self,
        block_index: int,
        byte_index: int,
        guess: int,
        pad_length: int,
        forged: bytes,
        discovered: Sequence[int],
    ) -> None:
        """Record one oracle query for a block."""
        if self._cancelled.is_set():
            raise AttackCancelled("Attack cancelled")
        with self._lock:
            self._queries += 1
            self._forged[block_index] = list(forged)
            row: List[Optional[int]] = [None] * self._block_size
            # Discovered bytes are stored last byte first.
            for offset, value in enumerate(discovered):
                row[self._block_size - 1 - offset] = value
            self._plaintext[block_index] = row
            self._last = (block_index, byte_index, guess, pad_length)
            self._publish(complete=False)

    def cancel(self) -> None:
        """Make the next probe from any block raise AttackCancelled."""
        self._cancelled.set()

    def solved(self, block_index: int, plaintext: bytes) -> None:
        with self._lock:
            self._plaintext[block_index] = list(plaintext)
            self._publish(complete=False)

    def finish(self) -> None:
        with self._lock:
            self._publish(complete=True)
        self._queue.close()

    def _publish(self, complete: bool) -> None:
        self._version += 1
        block_index, byte_index, guess, pad_length = self._last
        self._queue.publish(StateSnapshot(
            state_version=self._version,
            complete=complete,
            block_count=len(self._ciphertext) - 1,
            block_size=self._block_size,
            block_index=block_index,
            byte_index=byte_index,
            guess=guess,
            pad_length=pad_length,
            queries=self._queries,
            ciphertext=self._ciphertext,
            forged=tuple(tuple(b) for b in self._forged),
            plaintext=tuple(tuple(b) for b in self._plaintext),
        ))
