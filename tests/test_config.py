import pytest

from lxdash.config import (
    DEBUG_LEVEL,
    DebugLevel,
    log,
    thumbnail_size,
)


def test_default_level_threshold(capsys):
    assert DEBUG_LEVEL == DebugLevel.WARN
    assert log(DEBUG_LEVEL, "shown") == "shown"
    assert log(DebugLevel.TRACE, "hidden") is None
    assert capsys.readouterr().out == "shown\n"


def test_log_prints_warnings(capsys):
    text = log(DebugLevel.WARN, "value %d", 7)
    assert text == "value 7"
    assert capsys.readouterr().out == "value 7\n"


def test_log_keeps_trailing_newline(capsys):
    log(DebugLevel.ERROR, "oops\n")
    assert capsys.readouterr().out == "oops\n"


def test_log_filters_trace(capsys):
    assert log(DebugLevel.TRACE, "hidden") is None
    assert capsys.readouterr().out == ""


def test_log_none_level_is_silent(capsys):
    assert log(DebugLevel.NONE, "nothing") is None
    assert capsys.readouterr().out == ""


def test_log_rejects_unknown_level():
    with pytest.raises(ValueError):
        log(42, "bad")


def test_thumbnail_size_example():
    assert thumbnail_size(640, 20, 5) == (120, 168)


@pytest.mark.parametrize("screen, margin, per_row", [(640, 20, 5), (1280, 33, 7), (720, 0, 3)])
def test_thumbnail_fits_row(screen, margin, per_row):
    width, height = thumbnail_size(screen, margin, per_row)
    assert width * per_row <= screen - 2 * margin
    assert (width + 1) * per_row > screen - 2 * margin
    assert height >= width


def test_thumbnail_rejects_zero_items():
    with pytest.raises(ValueError):
        thumbnail_size(640, 20, 0)