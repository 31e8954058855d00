import os

import pytest

from streamkit.files import (
    create_dir,
    file_exists,
    file_size,
    find_executable,
    format_file_size,
    read_file,
    remove_dir,
    remove_file,
    write_file,
)


def test_write_then_read_round_trip(tmp_path):
    path = tmp_path / "data.bin"
    write_file(path, b"hello world")
    assert read_file(path) == b"hello world"


def test_write_truncates_existing_file(tmp_path):
    path = tmp_path / "data.bin"
    write_file(path, b"a long first version")
    write_file(path, b"short")
    assert read_file(path) == b"short"


def test_file_size_matches_written_length(tmp_path):
    path = tmp_path / "data.bin"
    write_file(path, b"x" * 37)
    assert file_size(path) == 37


def test_file_size_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        file_size(tmp_path / "missing")


def test_file_exists(tmp_path):
    path = tmp_path / "f.txt"
    assert file_exists(path) is False
    write_file(path, b"")
    assert file_exists(path) is True


def test_create_dir_makes_parents(tmp_path):
    target = tmp_path / "a" / "b" / "c"
    create_dir(target)
    create_dir(target)
    assert target.is_dir()


def test_remove_file(tmp_path):
    path = tmp_path / "f.txt"
    write_file(path, b"1")
    remove_file(path)
    assert file_exists(path) is False


def test_remove_file_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        remove_file(tmp_path / "missing")


def test_remove_dir_removes_tree(tmp_path):
    root = tmp_path / "tree"
    create_dir(root / "sub")
    write_file(root / "sub" / "f.txt", b"1")
    remove_dir(root)
    assert file_exists(root) is False


def test_remove_dir_missing_is_quiet(tmp_path):
    remove_dir(tmp_path / "missing")
    assert file_exists(tmp_path / "missing") is False


def test_format_file_size_negative():
    assert format_file_size(-5) == "0 B"


def test_format_file_size_bytes():
    assert format_file_size(512) == "512 B"


def test_format_file_size_units():
    assert format_file_size(1024) == "1.0 KB"
    assert format_file_size(1024**3) == "1.0 GB"
    assert format_file_size(2048).endswith(" KB")
    assert format_file_size(5 * 1024**2).endswith(" MB")


def test_format_file_size_is_monotonic_in_unit():
    assert format_file_size(1023).endswith(" B")
    assert format_file_size(1024 * 1024 - 1).endswith(" KB")


def test_find_executable_in_working_directory(tmp_path, monkeypatch):
    write_file(tmp_path / "tool.exe", b"")
    monkeypatch.chdir(tmp_path)
    assert find_executable("tool.exe") == os.path.join(str(tmp_path), "tool.exe")


def test_find_executable_on_path(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    create_dir(bin_dir)
    write_file(bin_dir / "other.exe", b"")
    work = tmp_path / "work"
    create_dir(work)
    monkeypatch.chdir(work)
    monkeypatch.setenv("PATH", str(bin_dir))
    assert find_executable("other.exe") == os.path.join(str(bin_dir), "other.exe")


def test_find_executable_not_found_returns_name(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PATH", str(tmp_path))
    assert find_executable("no-such-tool-anywhere.exe") == "no-such-tool-anywhere.exe"