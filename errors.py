class BitstreamError(Exception):
    """Base class for all errors raised by the bit packer and its sinks."""


class InvalidArgument(BitstreamError, ValueError):
    """An operation was called with an unsupported argument.

    Raised for unsigned writes wider than 8 bits without an endianness,
    negative bit lengths, invalid buffer sizes and alignment boundaries
    above :data:`bitops.MAX_ALIGN_BYTES`.
    """


class InsufficientData(BitstreamError, ValueError):
    """A bulk write was given fewer source bytes than its bit length needs.

    :ivar expected: Number of bits the caller asked to write.
    :type expected: int
    :ivar actual: Number of bits actually present in the source data.
    :type actual: int
    """

    def __init__(self, expected: int, actual: int):
        """Build the error from the requested and available bit counts.

        :param expected: Requested bit count.
        :type expected: int
        :param actual: Bits available in the supplied data.
        :type actual: int
        :returns: None
        :rtype: None
        """
        super().__init__(f"{expected} bits expected, but {actual} passed")
        self.expected = expected
        self.actual = actual


class StreamClosed(BitstreamError):
    """A write was attempted after the stream was ended."""

    def __init__(self, message: str = "Stream is closed"):
        """Build the error.

        :param message: Error message.
        :type message: str
        :returns: None
        :rtype: None
        """
        super().__init__(message)
