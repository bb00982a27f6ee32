import argparse
import logging
import os
import sys

from typing import List, Optional, Tuple
from bitops import DEFAULT_BUFFER_SIZE, BitPacker
from errors import BitstreamError
from sinks import BufferSink, FileSink

#: Field kinds taking ``VALUE:LEN`` and the packer method each one calls
_SIZED_FIELDS = {
    "u": "write_unsigned",
    "be": "write_unsigned_be",
    "le": "write_unsigned_le",
}


def get_parser():
    """Create and configure the CLI argument parser.

    :returns: Configured argument parser.
    :rtype: argparse.ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Pack bit fields of arbitrary width into a byte stream"
    )
    subparsers = parser.add_subparsers(
        title="subcommands", dest="cmd", required=True
    )

    pack = subparsers.add_parser(
        "pack",
        aliases=["p"],
        help="Pack fields in order",
        epilog=(
            "fields: u:VALUE:LEN (LEN <= 8), be:VALUE:LEN, le:VALUE:LEN, "
            "byte:VALUE, bits:HEX:LEN, align[:BYTES], flush"
        ),
    )
    pack.add_argument("field", nargs="+", help="Fields to write, in order")
    pack.add_argument(
        "-o", "--output", help="Output file (default: print hex to stdout)"
    )
    pack.add_argument(
        "-b",
        "--buffer-size",
        type=int,
        default=DEFAULT_BUFFER_SIZE,
        help=f"Staging buffer size in bytes (default: {DEFAULT_BUFFER_SIZE})",
    )
    pack.add_argument(
        "-x",
        "--hex",
        action="store_true",
        help="Also print the packed bytes as hex when writing to a file",
    )
    pack.add_argument(
        "-v", "--verbose", action="store_true", help="Log flushes to stderr"
    )

    return parser


def _parse_int(text: str) -> int:
    """Parse an integer literal, honouring ``0x``/``0b``/``0o`` prefixes.

    :param text: Literal to parse.
    :type text: str
    :returns: Parsed value.
    :rtype: int
    :raises ValueError: If ``text`` is not an integer literal.
    """
    return int(text, 0)


def parse_field(token: str) -> Tuple[str, tuple]:
    """Translate a command line field into a packer call.

    :param token: Field such as ``u:5:3``, ``be:0x1234:16`` or ``align:4``.
    :type token: str
    :returns: Name of the :class:`BitPacker` method and its arguments.
    :rtype: Tuple[str, tuple]
    :raises ValueError: If the field is malformed.
    """
    kind, _, rest = token.partition(":")
    parts = rest.split(":") if rest else []

    try:
        if kind in _SIZED_FIELDS and len(parts) == 2:
            return _SIZED_FIELDS[kind], (
                _parse_int(parts[0]), _parse_int(parts[1])
            )
        if kind == "byte" and len(parts) == 1:
            return "write_byte", (_parse_int(parts[0]),)
        if kind == "bits" and len(parts) == 2:
            return "write_bits", (
                bytes.fromhex(parts[0]), _parse_int(parts[1])
            )
        if kind == "align" and len(parts) <= 1:
            return "align", tuple(_parse_int(p) for p in parts)
        if kind == "flush" and not parts:
            return "flush", ()
    except ValueError:
        raise ValueError(f"Malformed field: {token}") from None
    raise ValueError(f"Unknown field: {token}")


def apply_fields(
    packer: BitPacker, fields: List[Tuple[str, tuple]]
) -> None:
    """Run parsed fields against ``packer`` in order.

    :param packer: Open packer to write to.
    :type packer: BitPacker
    :param fields: Output of :func:`parse_field` for each field.
    :type fields: List[Tuple[str, tuple]]
    :returns: None
    :rtype: None
    """
    for method, args in fields:
        getattr(packer, method)(*args)


def _fmt_hex(data: bytes) -> str:
    """Format bytes as space separated upper-case hex pairs.

    :param data: Bytes to format.
    :type data: bytes
    :returns: Hex string such as ``FE ED 07``.
    :rtype: str
    """
    return " ".join(f"{b:02X}" for b in data)


def _fmt_bits(n: int) -> str:
    """Format a bit count together with its size in whole bytes.

    :param n: Number of bits.
    :type n: int
    :returns: Human-readable string.
    :rtype: str
    """
    whole, rest = divmod(n, 8)
    if rest:
        return f"{n} bits ({whole} bytes + {rest} bits)"
    return f"{n} bits ({whole} bytes)"


def pack_fields(
    tokens: List[str],
    output_path: Optional[str],
    buffer_size: int,
    show_hex: bool,
) -> bytes:
    """Pack command line fields and write or print the result.

    All fields are parsed before anything is written. File output goes to
    ``<output_path>.tmp`` and replaces ``output_path`` only once the stream
    has ended, so a rejected field leaves an existing file untouched.

    :param tokens: Raw fields from the command line.
    :type tokens: List[str]
    :param output_path: Destination file, or ``None`` to print hex.
    :type output_path: Optional[str]
    :param buffer_size: Staging buffer size passed to the packer.
    :type buffer_size: int
    :param show_hex: Print the packed bytes even when writing a file.
    :type show_hex: bool
    :returns: The packed bytes.
    :rtype: bytes
    :raises ValueError: If a field is malformed.
    :raises BitstreamError: If the packer rejects a field.
    """
    fields = [parse_field(t) for t in tokens]

    if output_path is None:
        sink = BufferSink()
        packer = BitPacker(sink, buffer_size)
        apply_fields(packer, fields)
        packer.end()
        data = sink.getvalue()
        chunks = len(sink.chunks)
    else:
        tmp_path = output_path + ".tmp"
        try:
            with open(tmp_path, "w+b") as out:
                sink = FileSink(out)
                packer = BitPacker(sink, buffer_size)
                apply_fields(packer, fields)
                packer.end()
                out.seek(0)
                data = out.read()
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        os.replace(tmp_path, output_path)
        chunks = sink.chunk_count

    if output_path is None or show_hex:
        print(_fmt_hex(data))
    print("Bits written: ", _fmt_bits(packer.bits_written))
    print("Bytes written: ", len(data))
    print("Chunks emitted: ", chunks)
    return data


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI tool.

    :param argv: Arguments to parse instead of ``sys.argv``.
    :type argv: Optional[List[str]]
    :returns: Process exit status.
    :rtype: int
    """
    parser = get_parser()
    args = parser.parse_args(argv)

    if getattr(args, "verbose", False):
        logging.basicConfig(
            level=logging.DEBUG, format="%(name)s: %(message)s"
        )

    if args.cmd in ["pack", "p"]:
        try:
            pack_fields(args.field, args.output, args.buffer_size, args.hex)
        except (BitstreamError, ValueError) as e:
            print(f"[!] {e}")
            return 1
        except OSError as e:
            print(f"[!] Cannot write output file: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
