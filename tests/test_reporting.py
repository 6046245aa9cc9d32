import io
import json

import pytest
from rich.console import Console

from dxilremap.logging import configure_logging, get_logger
from dxilremap.reporting import (
    JsonLinesReporter,
    PlainReporter,
    RichReporter,
    TaskStatus,
    get_reporter,
    set_reporter,
    set_verbosity,
    task,
)


def test_plain_task_line_includes_stats():
    buf = io.StringIO()
    set_reporter(PlainReporter(stream=buf, use_color=False))
    with task("handles", "Patch createHandle calls") as final:
        final["handles"] = 3
    out = buf.getvalue()
    assert "✔ Patch createHandle calls" in out
    assert "[handles=3]" in out


def test_failed_task_is_marked_and_reraised():
    buf = io.StringIO()
    set_reporter(JsonLinesReporter(stream=buf))
    with pytest.raises(RuntimeError):
        with task("assemble", "Assemble"):
            raise RuntimeError("boom")
    events = [json.loads(ln) for ln in buf.getvalue().splitlines()]
    assert events[-1]["event"] == "task_end"
    assert events[-1]["status"] == TaskStatus.FAILED.name.lower()


def test_logger_records_reach_reporter():
    buf = io.StringIO()
    set_reporter(PlainReporter(stream=buf, use_color=False))
    configure_logging(0)
    log = get_logger()
    log.warning("record %d drifted", 4)
    log.debug("hidden at default verbosity")
    out = buf.getvalue()
    assert "WARN: record 4 drifted" in out
    assert "hidden" not in out


def test_verbose_output_is_gated():
    buf = io.StringIO()
    set_reporter(PlainReporter(stream=buf, use_color=False))
    set_verbosity(1)
    configure_logging(1)
    get_logger().debug("g_Tex: createHandle index 0 -> 3")
    assert "VERB1: g_Tex: createHandle index 0 -> 3" in buf.getvalue()
    configure_logging(0)


def test_rich_reporter_escapes_markup():
    buf = io.StringIO()
    console = Console(file=buf, force_terminal=False, width=200)
    rep = RichReporter(console=console)
    rep.status("patched [4 x %\"class.Texture2D<float>\"]")
    rep.start_task("declarations", "Patch resource declarations")
    rep.end_task("declarations", declarations=2)
    rep.flush()
    out = buf.getvalue()
    assert '[4 x %"class.Texture2D<float>"]' in out
    assert "[declarations=2]" in out


def test_json_task_events_and_section():
    buf = io.StringIO()
    set_reporter(JsonLinesReporter(stream=buf))
    with task("handles", "Patch createHandle calls") as final:
        final["handles"] = 2
    get_reporter().section("Resources")
    events = [json.loads(ln) for ln in buf.getvalue().splitlines()]
    assert [e["event"] for e in events] == ["task_start", "task_end", "section"]
    assert events[0] == {
        "event": "task_start",
        "id": "handles",
        "name": "Patch createHandle calls",
    }
    assert events[1]["handles"] == 2
    assert events[2]["title"] == "Resources"
