import logging
from typing import Optional, Union

from errors import InsufficientData, InvalidArgument, StreamClosed
from sinks import BufferSink, Sink

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1024  #: Default staging buffer capacity in bytes
MAX_ALIGN_BYTES = 32  #: Largest boundary accepted by ``BitPacker.align``

_NULLS = bytes(MAX_ALIGN_BYTES)

BytesLike = Union[bytes, bytearray, memoryview]


class BitPacker:
    """Bit-granular writer that streams completed bytes to a sink.

    Bits are packed least-significant-bit first: the first bit written to a
    byte becomes bit 0. Completed bytes are staged in a fixed-size buffer
    and handed to the sink whenever that buffer fills up, on
    :meth:`flush` and on :meth:`end`.

    :ivar sink: Consumer receiving the emitted chunks.
    :type sink: Sink
    :ivar _buffer: Staging buffer, ``None`` once the stream is closed.
    :type _buffer: bytearray | None
    :ivar _pos: Index of the byte currently being assembled.
    :type _pos: int
    :ivar _intra: Number of bits already written into ``_buffer[_pos]`` (0-7).
    :type _intra: int
    :ivar _total: Number of bits accepted since construction.
    :type _total: int
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        """Create an open packer with an empty staging buffer.

        :param sink: Consumer for emitted chunks. A new :class:`BufferSink`
                     is used when omitted.
        :type sink: Optional[Sink]
        :param buffer_size: Staging buffer capacity in bytes (at least 1).
        :type buffer_size: int
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``buffer_size`` is smaller than 1.
        """
        if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
            raise InvalidArgument(
                f"Buffer size must be an integer, got {buffer_size!r}"
            )
        if buffer_size < 1:
            raise InvalidArgument(
                f"Buffer size must be at least 1 byte, got {buffer_size}"
            )
        self.sink = sink if sink is not None else BufferSink()
        self._buffer_size = buffer_size
        self._buffer: Optional[bytearray] = bytearray(buffer_size)
        self._pos = 0
        self._intra = 0
        self._total = 0

    @property
    def buffer_size(self) -> int:
        """Capacity of the staging buffer in bytes."""
        return self._buffer_size

    @property
    def bits_written(self) -> int:
        """Total number of bits accepted so far, padding included."""
        return self._total

    @property
    def closed(self) -> bool:
        """Whether :meth:`end` has been called."""
        return self._buffer is None

    def __enter__(self):
        """Use the packer as a context manager.

        :returns: This packer.
        :rtype: BitPacker
        """
        return self

    def __exit__(self, exc_type, exc, tb):
        """End the stream on a clean exit from the ``with`` block.

        On an exception the stream is left open and the exception
        propagates.

        :returns: ``False``, so exceptions are never suppressed.
        :rtype: bool
        """
        if exc_type is None and not self.closed:
            self.end()
        return False

    def _check_open(self) -> None:
        """Reject operations on an ended stream.

        :returns: None
        :rtype: None
        :raises StreamClosed: If :meth:`end` has been called.
        """
        if self._buffer is None:
            raise StreamClosed()

    def _advance(self) -> None:
        """Move the cursor to the next byte, flushing at capacity."""
        self._pos += 1
        if self._pos == self._buffer_size:
            self.flush()

    def write_byte(self, value: int) -> None:
        """Write a full byte at the current bit position.

        When the stream is not byte-aligned, the low ``8 - offset`` bits
        complete the current byte and the remaining high bits start the
        next one; the bit offset itself is unchanged.

        :param value: Byte to write; only the lowest 8 bits are used.
        :type value: int
        :returns: None
        :rtype: None
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        value &= 0xFF

        if self._intra == 0:
            self._buffer[self._pos] = value
            self._advance()
        else:
            intra = self._intra
            self._buffer[self._pos] |= (value << intra) & 0xFF
            self._advance()
            self._buffer[self._pos] = value >> (8 - intra)

        self._total += 8

    def write_unsigned(self, value: int, length: int) -> None:
        """Write the lowest ``length`` bits of ``value`` (at most 8).

        Higher bits of ``value`` are discarded. Wider values must go through
        :meth:`write_unsigned_be` or :meth:`write_unsigned_le`.

        :param value: Integer to write.
        :type value: int
        :param length: Number of bits to write (0-8).
        :type length: int
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``length`` is negative or above 8.
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        if length > 8:
            raise InvalidArgument(
                "You need to specify an endianness "
                "when writing more than 8 bits"
            )
        if length < 0:
            raise InvalidArgument(f"Bit length must not be negative: {length}")

        value &= (1 << length) - 1

        # Bits that still fit into the current byte.
        current = 8 - self._intra
        self._buffer[self._pos] |= (value << self._intra) & 0xFF

        self._total += length
        self._intra += length
        if self._intra >= 8:
            self._intra -= 8
            self._advance()
            if current < length:
                self._buffer[self._pos] = value >> current

    def write_bits(self, data: BytesLike, length: int) -> None:
        """Write ``length`` bits taken from ``data``.

        Bits are read least-significant first, starting at bit 0 of
        ``data[0]``::

            | 76543210 | FEDCBA98 | ...

        A byte-aligned write whose whole bytes do not fit into the staging
        buffer flushes it and passes those bytes to the sink directly.

        :param data: Source bytes holding the bits, aligned at position 0.
        :type data: bytes | bytearray | memoryview
        :param length: Number of valid bits in ``data``.
        :type length: int
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``length`` is negative.
        :raises InsufficientData: If ``data`` holds fewer than ``length`` bits.
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        if length < 0:
            raise InvalidArgument(f"Bit length must not be negative: {length}")
        if not isinstance(data, (bytes, bytearray)):
            data = bytes(data)

        remainder = length % 8
        whole = length // 8

        if len(data) < whole or (remainder > 0 and len(data) == whole):
            raise InsufficientData(length, len(data) * 8)

        if self._intra == 0:
            if self._pos + whole < self._buffer_size:
                if whole > 0:
                    self._buffer[self._pos:self._pos + whole] = data[:whole]
                    self._pos += whole
            else:
                self.flush()
                logger.debug("Passing %d aligned bytes through to sink", whole)
                self.sink.write(bytes(data[:whole]))
            self._total += whole * 8
        else:
            for pos in range(whole):
                self.write_byte(data[pos])

        if remainder:
            self.write_unsigned(data[whole], remainder)

    def write_unsigned_be(self, value: int, length: int) -> None:
        """Write an unsigned big endian integer of ``length`` bits.

        The partial high-order bits (``length % 8`` of them) go first,
        followed by the whole bytes, most significant first.

        :param value: Integer to write; bits above ``length`` are dropped.
        :type value: int
        :param length: Total number of bits.
        :type length: int
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``length`` is negative.
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        if length < 0:
            raise InvalidArgument(f"Bit length must not be negative: {length}")

        remainder = length % 8
        whole_bits = length - remainder

        if remainder:
            self.write_unsigned(value >> whole_bits, remainder)

        for shift in range(whole_bits - 8, -1, -8):
            self.write_byte(value >> shift)

    def write_unsigned_le(self, value: int, length: int) -> None:
        """Write an unsigned little endian integer of ``length`` bits.

        Whole bytes go first, least significant first, followed by the
        partial high-order bits.

        :param value: Integer to write; bits above ``length`` are dropped.
        :type value: int
        :param length: Total number of bits.
        :type length: int
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``length`` is negative.
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        if length < 0:
            raise InvalidArgument(f"Bit length must not be negative: {length}")

        remainder = length % 8
        whole_bits = length - remainder

        for shift in range(0, whole_bits, 8):
            self.write_byte(value >> shift)

        if remainder:
            self.write_unsigned(value >> whole_bits, remainder)

    def align(self, boundary: Optional[int] = 1) -> None:
        """Pad with zero bits up to the next multiple of ``boundary`` bytes.

        Padding is computed from the total number of bits written, so it is
        unaffected by flushes. A missing, zero or negative boundary means 1.

        :param boundary: Alignment in bytes (1 to ``MAX_ALIGN_BYTES``).
        :type boundary: Optional[int]
        :returns: None
        :rtype: None
        :raises InvalidArgument: If ``boundary`` exceeds ``MAX_ALIGN_BYTES``.
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        if not boundary or boundary < 0:
            boundary = 1
        if boundary > len(_NULLS):
            raise InvalidArgument(
                f"Maximum boundary align size is {len(_NULLS)}"
            )

        valid = self._total % (boundary * 8)
        if valid > 0:
            self.write_bits(_NULLS, boundary * 8 - valid)

    def flush(self) -> None:
        """Emit all completed bytes and start a fresh staging buffer.

        The byte in progress (if any) is carried over to position 0 of the
        new buffer, so the bit offset is preserved. The new buffer is in
        place before the sink is called, so an error raised by the sink
        leaves the packer usable; the chunk it refused is dropped.

        :returns: None
        :rtype: None
        :raises StreamClosed: If the stream has been ended.
        """
        self._check_open()
        old, pos = self._buffer, self._pos

        buffer = bytearray(self._buffer_size)
        if pos < self._buffer_size:
            buffer[0] = old[pos]
        self._buffer = buffer
        self._pos = 0

        if pos > 0:
            logger.debug("Flushing %d bytes", pos)
            self.sink.write(bytes(old[:pos]))

    def end(self) -> None:
        """Pad to a byte boundary, flush and notify the sink of the end.

        The staging buffer is released; every later operation raises
        :class:`StreamClosed`.

        :returns: None
        :rtype: None
        :raises StreamClosed: If the stream has already been ended.
        """
        self._check_open()
        self.align()
        self.flush()
        logger.debug("Ending stream after %d bits", self._total)
        self.sink.end()
        self._buffer = None
        self._pos = 0
