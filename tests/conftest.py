import sys
from pathlib import Path
import importlib
import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bitops import BitPacker  # noqa: E402
from sinks import BufferSink  # noqa: E402

BUFFER_SIZES = [1024, 8, 3, 1]


@pytest.fixture()
def m():
    """Lazily import the main module for tests to avoid module-level import."""
    return importlib.import_module("main")


@pytest.fixture(params=BUFFER_SIZES, ids=lambda s: f"buf{s}")
def buffer_size(request):
    """Staging buffer sizes every packing scenario is run with."""
    return request.param


@pytest.fixture()
def packer(buffer_size):
    """Open packer writing into a fresh ``BufferSink``."""
    return BitPacker(BufferSink(), buffer_size)


class LsbBitReader:
    """Test-only reader for LSB-first packed output."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def read(self, nbits: int) -> int:
        value = 0
        for i in range(nbits):
            byte = self.data[self.pos // 8]
            value |= ((byte >> (self.pos % 8)) & 1) << i
            self.pos += 1
        return value


@pytest.fixture()
def reader_fn():
    """Factory building an ``LsbBitReader`` over packed bytes."""
    return LsbBitReader
