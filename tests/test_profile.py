import os

import pytest

from execbox.profile import Profile


def test_header_and_dirs(tmp_path):
    r = tmp_path / "read"
    w = tmp_path / "write"
    r.mkdir()
    w.mkdir()
    out = Profile(writable_dir=[str(w)], readable_dir=[str(r)]).build()
    assert out.startswith("(version 1)\n\n(deny default)\n")
    assert f'\n(allow file-read* (subpath "{os.path.realpath(r)}"))\n' in out
    assert f'\n(allow file-write* (subpath "{os.path.realpath(w)}"))\n' in out
    assert '(deny file-read* (subpath "/Users"))' in out
    assert "(allow network-outbound)" not in out


def test_read_lines_come_before_deny(tmp_path):
    out = Profile(readable_dir=[str(tmp_path)]).build()
    assert out.index("(allow file-read*") < out.index("(deny file-read*")


def test_network(tmp_path):
    out = Profile(writable_dir=[str(tmp_path)], network=True).build()
    assert out.endswith("))\n(allow network-outbound)\n")


def test_empty_read_dirs():
    out = Profile().build()
    assert "; allow read from dir\n\n; deny users" in out
    assert out.endswith("; allow write to dir\n")


def test_symlinks_are_resolved(tmp_path):
    target = tmp_path / "target"
    target.mkdir()
    link = tmp_path / "link"
    link.symlink_to(target)
    out = Profile(readable_dir=[str(link)]).build()
    assert f'(subpath "{os.path.realpath(target)}")' in out
    assert f'(subpath "{link}")' not in out


def test_missing_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Profile(readable_dir=[str(tmp_path / "absent")]).build()