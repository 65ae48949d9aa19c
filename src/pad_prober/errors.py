from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from pad_prober.block import BlockStats


class PadProberError(Exception):
    """Base class for all pad_prober errors."""


class MalformedCiphertext(PadProberError, ValueError):
    """Ciphertext is not block-aligned or has fewer than two blocks."""


class OracleUnreachable(PadProberError):
    """The oracle transport produced no usable answer."""


class OracleUnreachableWarning(UserWarning):
    """Too many consecutive queries went unanswered."""


class PluginLoadError(PadProberError, RuntimeError):
    pass


class PluginSignatureError(PadProberError, TypeError):
    pass


class AttackCancelled(PadProberError):
    """The attack was stopped before it finished."""


class FailureReason(str, Enum):
    EXHAUSTED = "exhausted"
    NO_RESPONSE = "no_response"
    BUDGET = "budget"

    def __str__(self):
        return self.value


class ByteUnrecoverable(PadProberError):
    """A block could not be decrypted.

    Raised when the candidate set at a byte position is exhausted with no
    earlier discovery left to pop, or when the per-block query budget runs
    out.
    """

    def __init__(
        self,
        block_index: int,
        byte_index: int,
        reason: FailureReason,
        candidate_count: int,
        queries: int,
        message: Optional[str] = None,
        stats: Optional["BlockStats"] = None,
    ):
        self.block_index = block_index
        self.byte_index = byte_index
        self.reason = reason
        self.candidate_count = candidate_count
        self.queries = queries
        self.stats = stats
        if message is None:
            message = (
                f"block {block_index} unrecoverable at byte {byte_index}: {reason} "
                f"({candidate_count} candidates, {queries} queries)"
            )
        super().__init__(message)
