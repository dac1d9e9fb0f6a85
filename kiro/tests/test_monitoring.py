"""Tests for logging setup and the debug panel."""

import io

from loguru import logger
from rich.console import Console

from kiro.assistant.assistant import create_assistant
from kiro.assistant.config import Config
from kiro.assistant.monitoring import configure_logging, render_debug_panel


class IdleChat:
    async def send_chat(self, system_prompt, user_prompt, history=None):
        raise AssertionError("not expected")


def test_configure_logging_writes_file(tmp_path):
    log_file = tmp_path / "logs" / "kiro.log"

    configure_logging("WARNING", log_file)
    logger.debug("debug line for the file sink")
    logger.complete()

    assert log_file.exists()
    assert "debug line for the file sink" in log_file.read_text()

    configure_logging()


def test_render_debug_panel():
    assistant = create_assistant(Config(), chat=IdleChat())
    assistant.tracker.track_usage(1_200_000)
    assistant.cache.set("k", "v")
    assistant.cache.get("k")

    buffer = io.StringIO()
    tables = render_debug_panel(assistant, Console(file=buffer, width=120))

    assert [t.title for t in tables] == ["Daily Token Usage", "Response Cache", "Request Coordinator"]
    output = buffer.getvalue()
    assert "1,200,000" in output
    assert "80.00%" in output
    assert "WARNING" in output
    assert "hit_rate" in output
    assert "pending_requests" in output


def test_render_debug_panel_without_console():
    assistant = create_assistant(Config(), chat=IdleChat())

    tables = render_debug_panel(assistant)

    assert len(tables) == 3
