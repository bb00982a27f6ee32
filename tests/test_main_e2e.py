def test_pack_prints_hex(capsys, m):
    status = m.main(["pack", "u:0xFF:3", "u:0:4", "u:1:1", "u:0:2", "u:7:3"])
    out = capsys.readouterr().out
    assert status == 0
    assert "87 1C" in out
    assert "Bytes written:  2" in out


def test_pack_to_file(tmp_path, capsys, m):
    path = tmp_path / "out.bin"
    status = m.main(
        ["pack", "be:0x1234:16", "u:5:3", "-o", str(path), "-b", "1", "-x"]
    )
    out = capsys.readouterr().out
    assert status == 0
    assert path.read_bytes() == bytes([0x12, 0x34, 0x05])
    assert "12 34 05" in out
    assert "Chunks emitted:  3" in out


def test_pack_to_file_without_hex(tmp_path, capsys, m):
    path = tmp_path / "out.bin"
    status = m.main(["pack", "bits:feed:16", "-o", str(path)])
    out = capsys.readouterr().out
    assert status == 0
    assert path.read_bytes() == b"\xfe\xed"
    assert "FE ED" not in out


def test_pack_same_output_for_any_buffer_size(capsys, m):
    fields = ["u:3:2", "bits:0102030405:37", "le:0xBEEF:16", "align:4", "byte:9"]
    outputs = []
    for size in ("1024", "8", "3", "1"):
        assert m.main(["pack", *fields, "-b", size]) == 0
        outputs.append(capsys.readouterr().out.splitlines()[0])
    assert len(set(outputs)) == 1


def test_pack_reports_bad_field(tmp_path, capsys, m):
    path = tmp_path / "out.bin"
    status = m.main(["pack", "u:1:1", "q:1", "-o", str(path)])
    out = capsys.readouterr().out
    assert status == 1
    assert "[!] Unknown field: q:1" in out
    assert not path.exists()


def test_pack_reports_packer_errors(capsys, m):
    assert m.main(["pack", "align:50"]) == 1
    assert "Maximum boundary align size is 32" in capsys.readouterr().out

    assert m.main(["pack", "u:1:9"]) == 1
    assert "endianness" in capsys.readouterr().out

    assert m.main(["pack", "bits:ff:12"]) == 1
    assert "12 bits expected, but 8 passed" in capsys.readouterr().out

    assert m.main(["pack", "flush", "-b", "0"]) == 1
    assert "[!]" in capsys.readouterr().out


def test_rejected_field_keeps_existing_file(tmp_path, capsys, m):
    path = tmp_path / "out.bin"
    path.write_bytes(b"precious")
    assert m.main(["pack", "u:1:1", "align:50", "-o", str(path)]) == 1
    assert m.main(["pack", "flush", "-b", "0", "-o", str(path)]) == 1
    assert "[!]" in capsys.readouterr().out
    assert path.read_bytes() == b"precious"
    assert not (tmp_path / "out.bin.tmp").exists()


def test_successful_pack_replaces_existing_file(tmp_path, capsys, m):
    path = tmp_path / "out.bin"
    path.write_bytes(b"old contents")
    assert m.main(["pack", "byte:0x42", "-o", str(path)]) == 0
    assert path.read_bytes() == b"\x42"
    assert not (tmp_path / "out.bin.tmp").exists()
