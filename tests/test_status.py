import pytest

from execbox.status import RunnerStatus, Status, convert_status, string_to_status


def test_labels():
    assert str(string_to_status('"Accepted"')) == "Accepted"
    assert str(convert_status(RunnerStatus.TIME_LIMIT_EXCEEDED)) == "Time Limit Exceeded"
    assert str(string_to_status('"Invalid"')) == "Invalid"


@pytest.mark.parametrize("status", list(Status))
def test_round_trip(status):
    assert string_to_status(f'"{status}"') is status


def test_unquoted_is_rejected():
    with pytest.raises(ValueError):
        string_to_status("Accepted")


def test_unknown_is_rejected():
    with pytest.raises(ValueError):
        string_to_status('"Nope"')


@pytest.mark.parametrize(
    "runner, expected",
    [
        (RunnerStatus.NORMAL, Status.ACCEPTED),
        (RunnerStatus.SIGNALLED, Status.SIGNALLED),
        (RunnerStatus.NONZERO_EXIT_STATUS, Status.NONZERO_EXIT_STATUS),
        (RunnerStatus.MEMORY_LIMIT_EXCEEDED, Status.MEMORY_LIMIT_EXCEEDED),
        (RunnerStatus.TIME_LIMIT_EXCEEDED, Status.TIME_LIMIT_EXCEEDED),
        (RunnerStatus.OUTPUT_LIMIT_EXCEEDED, Status.OUTPUT_LIMIT_EXCEEDED),
        (RunnerStatus.DISALLOWED_SYSCALL, Status.DANGEROUS_SYSCALL),
        (RunnerStatus.RUNNER_ERROR, Status.INTERNAL_ERROR),
        (RunnerStatus.INVALID, Status.INTERNAL_ERROR),
    ],
)
def test_convert_status(runner, expected):
    assert convert_status(runner) is expected