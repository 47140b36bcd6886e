"""Tests for the copy-code action."""

from __future__ import annotations

import asyncio

from stream_chat import CodeCopier, CopyState


class TestCodeCopier:
    async def test_success(self):
        written = []
        copier = CodeCopier(written.append)

        assert copier.label == "Copy"
        assert await copier.copy("print('hi')")

        assert written == ["print('hi')"]
        assert copier.state == CopyState.COPIED
        assert copier.label == "Copied!"
        assert copier.copied_code == "print('hi')"

    async def test_async_writer(self):
        written = []

        async def write(text):
            written.append(text)

        copier = CodeCopier(write)
        assert await copier.copy("x = 1")
        assert written == ["x = 1"]

    async def test_failure(self, caplog):
        def write(text):
            raise PermissionError("clipboard denied")

        copier = CodeCopier(write)

        assert not await copier.copy("x = 1")

        assert copier.state == CopyState.FAILED
        assert copier.label == "Copy failed"
        assert copier.copied_code is None
        assert "clipboard denied" in caplog.text

    async def test_resets_after_delay(self):
        copier = CodeCopier(lambda text: None, reset_after=0.02)

        await copier.copy("x")
        assert copier.state == CopyState.COPIED

        await asyncio.sleep(0.1)
        assert copier.state == CopyState.IDLE
        assert copier.label == "Copy"

    async def test_second_copy_restarts_timer(self):
        copier = CodeCopier(lambda text: None, reset_after=0.1)

        await copier.copy("a")
        await asyncio.sleep(0.06)
        await copier.copy("b")
        await asyncio.sleep(0.06)

        assert copier.state == CopyState.COPIED
        assert copier.copied_code == "b"

    def test_default_feedback_window(self):
        assert CodeCopier(lambda text: None).reset_after == 2.0
