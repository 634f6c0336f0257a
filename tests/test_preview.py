import asyncio
import shlex
import socket
import sys

import httpx
import pytest

from buildwright.config import PreviewConfig, ScreenshotConfig
from buildwright.exceptions import PreviewUnreachableError
from buildwright.tools.preview import PreviewController
from buildwright.tools.screenshot import ScreenshotService, _filter

PYTHON = shlex.quote(sys.executable)


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _config(command: str, **overrides) -> PreviewConfig:
    values = dict(command=command, port=_free_port(), startup_timeout=15.0, settle_delay=0.0, stop_timeout=3.0)
    values.update(overrides)
    return PreviewConfig(**values)


def test_start_restart_stop_static_server(tmp_path):
    (tmp_path / "index.html").write_text("<h1>hello</h1>")
    preview = PreviewController(tmp_path, _config(f"{PYTHON} -m http.server {{port}} --bind 127.0.0.1"))

    async def go():
        try:
            port = await preview.start()
            assert port == preview.port
            assert preview.is_running()
            async with httpx.AsyncClient() as http:
                page = await http.get(preview.url + "/index.html")
            assert "hello" in page.text

            first = preview._proc
            await preview.restart()
            assert preview.is_running()
            assert preview._proc is not first
            assert first.returncode is not None
        finally:
            await preview.stop()
        assert not preview.is_running()

    asyncio.run(go())


def test_server_that_dies_reports_its_output(tmp_path):
    command = f"{PYTHON} -c \"import sys; print('SyntaxError: bad token'); sys.exit(1)\""
    preview = PreviewController(tmp_path, _config(command))

    async def go():
        with pytest.raises(PreviewUnreachableError) as exc:
            await preview.start()
        return exc.value

    err = asyncio.run(go())
    assert "exited with code 1" in str(err)
    assert "SyntaxError: bad token" in err.output
    assert not preview.is_running()


def test_server_that_never_listens_times_out(tmp_path):
    command = f"{PYTHON} -c \"import time; time.sleep(30)\""
    preview = PreviewController(tmp_path, _config(command, startup_timeout=1.0))

    async def go():
        with pytest.raises(PreviewUnreachableError, match="did not answer"):
            await preview.start()

    asyncio.run(go())
    assert not preview.is_running()


def test_missing_command_is_unreachable(tmp_path):
    preview = PreviewController(tmp_path, _config("definitely-not-a-real-binary-xyz {port}"))
    with pytest.raises(PreviewUnreachableError, match="Could not launch"):
        asyncio.run(preview.start())


def test_screenshots_disabled_returns_none():
    shots = ScreenshotService(ScreenshotConfig(enabled=False))
    shots.console_errors = ["stale"]
    assert asyncio.run(shots.capture("http://127.0.0.1:1")) is None
    assert shots.console_errors == []


def test_console_noise_is_filtered():
    errors = [
        "Failed to load resource: the server responded with a status of 404 (favicon.ico)",
        "[vite] connecting...",
        "Uncaught ReferenceError: Trail is not defined",
    ]
    assert _filter(errors) == ["Uncaught ReferenceError: Trail is not defined"]


def test_literal_braces_in_command_are_left_alone(tmp_path):
    # A dict literal in the command must not be taken for a placeholder
    command = f"{PYTHON} -c \"import sys; codes = {{'bad': 3}}; print('boom {{port}}'); sys.exit(codes['bad'])\""
    preview = PreviewController(tmp_path, _config(command))

    async def go():
        with pytest.raises(PreviewUnreachableError) as exc:
            await preview.start()
        return exc.value

    err = asyncio.run(go())
    assert "exited with code 3" in str(err)
    assert f"boom {preview.port}" in err.output
