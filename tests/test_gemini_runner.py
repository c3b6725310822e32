"""Tests for the Gemini CLI runner"""

import sys

import pytest

from autopr.errors import JobTimeoutError, UpstreamError
from autopr.implementation.gemini_runner import GeminiCLIRunner, GenerationResult

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")


def make_script(tmp_path, body):
    script = tmp_path / "fake-gemini"
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(0o755)
    return str(script)


class TestGenerationResult:
    def test_preview_truncates(self):
        result = GenerationResult(exit_code=0, stdout="x" * 600, stderr="", duration=1.0)
        assert result.success
        assert result.preview(500) == "x" * 500 + "..."

    def test_failure(self):
        assert not GenerationResult(exit_code=2, stdout="", stderr="", duration=0.1).success


class TestGeminiCLIRunner:
    def test_build_command(self):
        runner = GeminiCLIRunner("gemini")
        assert runner.build_command("do it") == ["gemini", "-p", "do it", "--yolo"]

        runner = GeminiCLIRunner("gemini", extra_args=["--model", "pro"])
        assert runner.build_command("do it") == ["gemini", "-p", "do it", "--model", "pro"]

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        runner = GeminiCLIRunner(make_script(tmp_path, 'echo "cwd=$(pwd) args=$*"'), extra_args=["--yolo"])

        result = await runner.run("implement it", tmp_path, timeout=10)

        assert result.success
        assert "-p implement it --yolo" in result.stdout
        assert f"cwd={tmp_path.resolve()}" in result.stdout

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tmp_path):
        runner = GeminiCLIRunner(make_script(tmp_path, "echo boom >&2\nexit 3"), extra_args=[])

        with pytest.raises(UpstreamError) as exc_info:
            await runner.run("x", tmp_path, timeout=10)

        assert "code 3" in exc_info.value.message
        assert "boom" in exc_info.value.message
        assert exc_info.value.service == "gemini-cli"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        runner = GeminiCLIRunner(make_script(tmp_path, "exec sleep 5"), extra_args=[])

        with pytest.raises(JobTimeoutError) as exc_info:
            await runner.run("x", tmp_path, timeout=0.2)

        assert exc_info.value.error_type == "timeout"
        assert exc_info.value.timeout == 0.2

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        runner = GeminiCLIRunner("definitely-not-a-gemini-binary")
        assert not runner.check_available()

        with pytest.raises(UpstreamError):
            await runner.run("x", tmp_path, timeout=1)
