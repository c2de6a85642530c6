import io
import os
import tempfile

from execbox.files import FileCollector, FileInput, FileReader
from execbox.model import Cmd, CmdCopyOutFile, Environment, FileErrorType
from execbox.pipes import PipeCollector
from execbox.status import RunnerStatus
from execbox.transfer import copy_in, copy_out_and_collect

import threading


class DirEnv(Environment):
    def __init__(self, root):
        self.root = str(root)

    def execve(self, cancel, param):
        raise RuntimeError("not runnable")

    def work_dir(self):
        return self.root

    def open(self, path, flags, mode):
        fd = os.open(os.path.join(self.root, path), flags, mode)
        readonly = (flags & os.O_ACCMODE) == os.O_RDONLY
        return os.fdopen(fd, "rb" if readonly else "wb")


def new_store():
    return tempfile.TemporaryFile()


def read_all(f):
    f.seek(0)
    return f.read()


def test_copy_in_writes_files(tmp_path):
    env = DirEnv(tmp_path)
    errors = copy_in(env, {"a": FileReader(io.BytesIO(b"AAA"))})
    assert errors == []
    assert (tmp_path / "a").read_bytes() == b"AAA"


def test_copy_in_missing_source(tmp_path):
    errors = copy_in(DirEnv(tmp_path), {"a": FileInput(str(tmp_path / "missing"))})
    assert [e.type for e in errors] == [FileErrorType.COPY_IN_OPEN_FILE]
    assert errors[0].name == "a"


def test_copy_out_success_and_optional(tmp_path):
    (tmp_path / "res").write_bytes(b"result")
    cmd = Cmd(copy_out=[CmdCopyOutFile("res"), CmdCopyOutFile("none", optional=True)])
    out = copy_out_and_collect(DirEnv(tmp_path), cmd, [], new_store)
    assert out.error == ""
    assert list(out.files) == ["res"]
    assert read_all(out.files["res"]) == b"result"


def test_copy_out_missing_required(tmp_path):
    cmd = Cmd(copy_out=[CmdCopyOutFile("none")])
    out = copy_out_and_collect(DirEnv(tmp_path), cmd, [], new_store)
    assert [e.type for e in out.file_errors] == [FileErrorType.COPY_OUT_OPEN]
    assert out.error
    assert out.runner_status is None


def test_copy_out_size_exceeded(tmp_path):
    (tmp_path / "big").write_bytes(b"x" * 10)
    cmd = Cmd(copy_out=[CmdCopyOutFile("big")], copy_out_max=5)
    out = copy_out_and_collect(DirEnv(tmp_path), cmd, [], new_store)
    assert out.file_errors[0].type == FileErrorType.COPY_OUT_SIZE_EXCEEDED
    assert "big" not in out.files


def test_pipe_collector_over_limit(tmp_path):
    buf = new_store()
    buf.write(b"123456")
    done = threading.Event()
    done.set()
    out = copy_out_and_collect(DirEnv(tmp_path), Cmd(), [PipeCollector(done, buf, 5, "stdout")], new_store)
    assert out.files["stdout"] is buf
    assert out.file_errors[0].type == FileErrorType.COLLECT_SIZE_EXCEEDED
    assert out.runner_status == RunnerStatus.OUTPUT_LIMIT_EXCEEDED


def test_container_collector(tmp_path):
    (tmp_path / "log").write_bytes(b"ok")
    cmd = Cmd(files=[FileCollector("log", 10), FileCollector("log", 10)])
    out = copy_out_and_collect(DirEnv(tmp_path), cmd, [], new_store)
    assert out.file_errors == []
    assert read_all(out.files["log"]) == b"ok"


def test_container_collector_over_limit(tmp_path):
    (tmp_path / "log").write_bytes(b"abcdef")
    cmd = Cmd(files=[FileCollector("log", 2)])
    out = copy_out_and_collect(DirEnv(tmp_path), cmd, [], new_store)
    assert read_all(out.files["log"]) == b"abc"
    assert out.file_errors[0].type == FileErrorType.COLLECT_SIZE_EXCEEDED
    assert out.runner_status == RunnerStatus.OUTPUT_LIMIT_EXCEEDED


def test_copy_out_dir(tmp_path):
    work = tmp_path / "w"
    work.mkdir()
    (work / "f").write_bytes(b"data")
    dst = tmp_path / "dump"
    out = copy_out_and_collect(DirEnv(work), Cmd(copy_out_dir=str(dst)), [], new_store)
    assert out.error == ""
    assert (dst / "f").read_bytes() == b"data"