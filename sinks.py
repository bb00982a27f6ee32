from typing import BinaryIO, Callable, List, Optional

from errors import StreamClosed


class Sink:
    """Consumer of the chunks emitted by a :class:`bitops.BitPacker`.

    A sink receives finalized, immutable chunks in write order followed by
    exactly one end-of-stream notification. Chunk boundaries carry no
    meaning: the output is the concatenation of all chunks.
    """

    def write(self, chunk: bytes) -> None:
        """Accept the next chunk of finalized bytes.

        :param chunk: Bytes emitted by the packer.
        :type chunk: bytes
        :returns: None
        :rtype: None
        """
        raise NotImplementedError

    def end(self) -> None:
        """Accept the end-of-stream notification.

        :returns: None
        :rtype: None
        """
        raise NotImplementedError


class BufferSink(Sink):
    """In-memory sink that keeps every chunk it receives.

    :ivar chunks: Chunks in the order they were emitted.
    :type chunks: List[bytes]
    :ivar ended: Whether the end-of-stream notification was received.
    :type ended: bool
    """

    def __init__(self):
        """Initialize an empty sink.

        :returns: None
        :rtype: None
        """
        self.chunks: List[bytes] = []
        self.ended = False

    def write(self, chunk: bytes) -> None:
        """Store a copy of ``chunk``.

        :param chunk: Bytes emitted by the packer.
        :type chunk: bytes
        :returns: None
        :rtype: None
        :raises StreamClosed: If the end of stream was already received.
        """
        if self.ended:
            raise StreamClosed()
        self.chunks.append(bytes(chunk))

    def end(self) -> None:
        """Mark the sink as ended.

        :returns: None
        :rtype: None
        """
        self.ended = True

    def getvalue(self) -> bytes:
        """Return the concatenation of all chunks received so far.

        :returns: Output bytes.
        :rtype: bytes
        """
        return b"".join(self.chunks)


class FileSink(Sink):
    """Sink writing chunks to a binary file object.

    :ivar fileobj: Destination opened in binary write mode.
    :type fileobj: BinaryIO
    :ivar close_on_end: Whether ``end`` closes ``fileobj``.
    :type close_on_end: bool
    :ivar bytes_written: Total number of bytes written to ``fileobj``.
    :type bytes_written: int
    :ivar chunk_count: Number of chunks received.
    :type chunk_count: int
    """

    def __init__(self, fileobj: BinaryIO, close: bool = False):
        """Wrap ``fileobj``.

        :param fileobj: Binary file object to write to.
        :type fileobj: BinaryIO
        :param close: Close ``fileobj`` on end of stream.
        :type close: bool
        :returns: None
        :rtype: None
        """
        self.fileobj = fileobj
        self.close_on_end = close
        self.bytes_written = 0
        self.chunk_count = 0

    def write(self, chunk: bytes) -> None:
        """Write ``chunk`` to the file object.

        :param chunk: Bytes emitted by the packer.
        :type chunk: bytes
        :returns: None
        :rtype: None
        """
        self.fileobj.write(chunk)
        self.bytes_written += len(chunk)
        self.chunk_count += 1

    def end(self) -> None:
        """Flush the file object, closing it if requested.

        :returns: None
        :rtype: None
        """
        self.fileobj.flush()
        if self.close_on_end:
            self.fileobj.close()


class CallbackSink(Sink):
    """Sink forwarding chunks and the end notification to callables.

    :ivar on_data: Called as ``on_data(chunk)`` for every chunk.
    :type on_data: Callable[[bytes], None]
    :ivar on_end: Called once without arguments at end of stream.
    :type on_end: Optional[Callable[[], None]]
    """

    def __init__(
        self,
        on_data: Callable[[bytes], None],
        on_end: Optional[Callable[[], None]] = None,
    ):
        """Store the callables.

        :param on_data: Receives every chunk.
        :type on_data: Callable[[bytes], None]
        :param on_end: Called at end of stream, if given.
        :type on_end: Optional[Callable[[], None]]
        :returns: None
        :rtype: None
        """
        self.on_data = on_data
        self.on_end = on_end

    def write(self, chunk: bytes) -> None:
        """Pass ``chunk`` to ``on_data``.

        :param chunk: Bytes emitted by the packer.
        :type chunk: bytes
        :returns: None
        :rtype: None
        """
        self.on_data(chunk)

    def end(self) -> None:
        """Call ``on_end`` if one was given.

        :returns: None
        :rtype: None
        """
        if self.on_end is not None:
            self.on_end()
