"""Host-side IO memory: block allocation inside a guest's IO buffer.

Responses to IO module calls are written into a fixed-size buffer shared
with the guest, in 64-byte blocks. Each call has an id. The guest polls
for completion and then reads the document at the recorded offset.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

IO_BUFFER_SIZE_BYTES = 32768
BLOCK_SIZE_BYTES = 64
NUM_BLOCKS = IO_BUFFER_SIZE_BYTES // BLOCK_SIZE_BYTES

Dispatch = Callable[[str, str, bytes], "bytes | None"]


@dataclass(frozen=True)
class IoMemoryDocument:
    """Where a response sits in the IO buffer."""

    start: int
    length: int


class BlockStatus(Enum):
    FREE = "free"
    USED = "used"


class OutOfMemoryError(MemoryError):
    """Raised when no run of free blocks is long enough for a response."""


@dataclass
class _Block:
    status: BlockStatus = BlockStatus.FREE
    owner: int | None = None


class IoMemory:
    """Bookkeeping for IO ids, their completion and their buffer blocks."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Forget every id, document and allocation."""
        self._next_id = 1  # id 0 is reserved (null)
        self._documents: dict[int, IoMemoryDocument] = {}
        self._status: dict[int, bool] = {}
        self._blocks = [_Block() for _ in range(NUM_BLOCKS)]

    def next_id(self) -> int:
        """Hand out a new IO id, marked as not yet complete."""
        ioid = self._next_id
        self._next_id += 1
        self._status[ioid] = False
        return ioid

    def poll(self, ioid: int) -> bool:
        """Whether the response for ``ioid`` has been written."""
        return self._status.get(ioid, False)

    def document(self, ioid: int) -> IoMemoryDocument | None:
        """The location of the response for ``ioid``, if written."""
        return self._documents.get(ioid)

    def write_vec_at(self, writer: bytearray, data: bytes, ioid: int) -> IoMemoryDocument:
        """Allocate room for ``data`` in ``writer``, copy it there and mark ``ioid`` done."""
        start = self.alloc(writer, len(data), ioid)
        writer[start : start + len(data)] = data
        doc = IoMemoryDocument(start=start, length=len(data))
        self._documents[ioid] = doc
        self._status[ioid] = True
        return doc

    def alloc(self, writer: bytearray, byte_length: int, ioid: int) -> int:
        """Claim the first run of free blocks that holds ``byte_length`` bytes.

        The claimed blocks are zeroed in ``writer``. Returns the byte offset.
        """
        needed = math.ceil(byte_length / BLOCK_SIZE_BYTES)
        available = 0
        offset = 0
        for index, block in enumerate(self._blocks):
            if block.status is BlockStatus.FREE:
                if available == 0:
                    offset = index
                available += 1
                if available >= needed:
                    break
            else:
                available = 0

        if available < needed:
            raise OutOfMemoryError("unable to allocate memory in Threader")

        for index in range(offset, offset + needed):
            begin = index * BLOCK_SIZE_BYTES
            writer[begin : begin + BLOCK_SIZE_BYTES] = bytes(BLOCK_SIZE_BYTES)
            self._blocks[index] = _Block(BlockStatus.USED, ioid)

        return offset * BLOCK_SIZE_BYTES

    def free(self, ioid: int) -> None:
        """Release every block held by ``ioid``."""
        for index, block in enumerate(self._blocks):
            if block.owner == ioid:
                self._blocks[index] = _Block()


class Threader:
    """Runs IO module calls in the background and tracks their responses.

    ``dispatch(iomod_coords, method_name, payload)`` performs a call and
    returns the response payload, or None when there is no response.
    """

    def __init__(self, dispatch: Dispatch) -> None:
        self._dispatch = dispatch
        self._memory = IoMemory()
        self._lock = threading.Lock()

    def next_ioid(self) -> int:
        with self._lock:
            return self._memory.next_id()

    def get_io_memory_document(self, ioid: int) -> IoMemoryDocument | None:
        with self._lock:
            return self._memory.document(ioid)

    def poll(self, ioid: int) -> bool:
        """Whether ``ioid`` is complete; its blocks are freed once it is."""
        with self._lock:
            if not self._memory.poll(ioid):
                return False
            # The guest reads the document right after this returns.
            self._memory.free(ioid)
            return True

    def invoke(
        self, method_path: str, method_input: bytes, writer: bytearray, ioid: int
    ) -> threading.Thread:
        """Start the call ``org.namespace.name.method`` in a background thread."""
        coords = method_path.split(".")
        if len(coords) != 4:
            raise ValueError(f"malformed method path: {method_path!r}")
        if len(writer) < IO_BUFFER_SIZE_BYTES:
            raise ValueError(
                f"IO buffer must hold {IO_BUFFER_SIZE_BYTES} bytes, got {len(writer)}"
            )
        iomod_coords = ".".join(coords[:3])
        method_name = coords[3]
        payload = bytes(method_input)

        def run() -> None:
            response = self._dispatch(iomod_coords, method_name, payload)
            if response is None:
                return
            with self._lock:
                self._memory.write_vec_at(writer, response, ioid)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    def reset_memory(self) -> None:
        with self._lock:
            self._memory.reset()