import io
import re

from tinylog.logger import Logger, LogLevel


def _logger(level=LogLevel.DEBUG):
    out = io.StringIO()
    return Logger("node-01", level, out), out


def test_info_line_format():
    log, out = _logger()
    log.info("hello %d", 3)
    line = out.getvalue()
    match = re.fullmatch(r"\x1b\[32m\[INFO  (\d+)\] node-01\x1b\[0m hello 3\n", line)
    assert match is not None
    assert int(match.group(1)) > 0
    assert line.endswith("node-01\x1b[0m hello 3\n")


def test_level_filtering():
    log, out = _logger(LogLevel.WARN)
    log.debug("a")
    log.info("b")
    assert out.getvalue() == ""
    log.warn("c")
    assert out.getvalue().startswith("\033[33m[WARN  ")


def test_error_appends_error_text():
    log, out = _logger()
    log.error(ValueError("boom"), "failed at %s", "x")
    line = out.getvalue()
    assert line.startswith("\033[31m[ERROR ")
    assert line.endswith(" failed at x: boom\n")


def test_message_without_args_kept_literally():
    log, out = _logger()
    log.debug("100% done")
    assert out.getvalue().endswith(" 100% done\n")
    assert out.getvalue().startswith("\033[34m[DEBUG ")


def test_levels_are_ordered():
    log, out = _logger(LogLevel.INFO)
    log.debug("d")
    log.info("i")
    log.warn("w")
    log.error(ValueError("e"), "x")
    lines = out.getvalue().splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("\033[32m[INFO  ")
    assert lines[1].startswith("\033[33m[WARN  ")
    assert lines[2].startswith("\033[31m[ERROR ")