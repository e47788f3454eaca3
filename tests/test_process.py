"""Tests for run_command."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from biomelsp.process import run_command

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh")


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_output_and_exit_code(self) -> None:
        result = await run_command("sh", ["-c", "echo out; echo err >&2; exit 3"])

        assert result.exit_code == 3
        assert result.status == "error"
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert not result.success
        assert result.command == "sh -c echo out; echo err >&2; exit 3"

    @pytest.mark.asyncio
    async def test_cwd_and_env(self, tmp_path: Path) -> None:
        result = await run_command("sh", ["-c", 'pwd; echo "$BIOME_TEST"'], cwd=tmp_path, env={"BIOME_TEST": "yes"})

        assert result.success
        lines = result.stdout.splitlines()
        assert Path(lines[0]).resolve() == tmp_path.resolve()
        assert lines[1] == "yes"

    @pytest.mark.asyncio
    async def test_missing_command(self, tmp_path: Path) -> None:
        result = await run_command(tmp_path / "no-such-binary")

        assert result.exit_code == 127
        assert result.status == "error"
        assert "Command not found" in result.stderr

    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_output(self) -> None:
        result = await run_command("sh", ["-c", "echo partial; exec sleep 5"], timeout=0.5)

        assert result.status == "timeout"
        assert result.exit_code is None
        assert result.stdout == "partial\n"
        assert result.duration_ms < 5000
