"""Tests for the nested daemon launcher and readiness poller."""

from __future__ import annotations

import subprocess
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import make_sandbox_settings

from burrow.config import DaemonConfig
from burrow.daemon import (
    daemon_command,
    docker_cli_env,
    launch_daemon,
    probe_daemon,
    wait_for_daemon,
)
from burrow.environment import resolve_layout
from burrow.errors import DaemonNotReadyError, ExitCode
from burrow.types import DaemonProcess, DaemonState
from burrow.utils import CommandResult


@pytest.fixture
def layout(sandbox):
    return resolve_layout(sandbox)


def _settings(tmp_path, **daemon):
    return make_sandbox_settings(
        tmp_path,
        daemon=DaemonConfig(config_path=tmp_path / "daemon.json", **daemon),
    )


class TestDaemonCommand:
    def test_binds_socket_tcp_and_data_root(self, tmp_path):
        s = _settings(tmp_path)
        argv = daemon_command(s, resolve_layout(s))
        assert argv == [
            "dockerd",
            "--host=unix:///var/run/docker.sock",
            "--host=tcp://0.0.0.0:2376",
            f"--data-root={tmp_path / 'data' / 'docker'}",
            f"--config-file={tmp_path / 'daemon.json'}",
        ]

    def test_tcp_endpoint_optional(self, tmp_path):
        s = _settings(tmp_path, tcp=None)
        argv = daemon_command(s, resolve_layout(s))
        assert not any(a.startswith("--host=tcp") for a in argv)


class TestLaunchDaemon:
    def test_returns_immediately_with_handle(self, sandbox, layout):
        proc = MagicMock(pid=4242)
        with patch("burrow.daemon.subprocess.Popen", return_value=proc) as mock_popen:
            daemon = launch_daemon(sandbox, layout)

        mock_popen.assert_called_once()
        assert mock_popen.call_args.kwargs["stdin"] == subprocess.DEVNULL
        proc.wait.assert_not_called()
        assert daemon.pid == 4242
        assert daemon.state == DaemonState.STARTING

    def test_spawn_failure_marks_failed_without_raising(self, sandbox, layout):
        with patch("burrow.daemon.subprocess.Popen", side_effect=FileNotFoundError("dockerd")):
            daemon = launch_daemon(sandbox, layout)

        assert daemon.state == DaemonState.FAILED
        assert daemon.proc is None


class TestDockerCliEnv:
    def test_points_at_relocated_home_and_socket(self, sandbox, layout):
        env = docker_cli_env(sandbox, layout, base={"PATH": "/usr/bin", "HOME": "/nope"})
        assert env == {
            "PATH": "/usr/bin",
            "HOME": str(layout.home),
            "DOCKER_HOST": "unix:///var/run/docker.sock",
        }


class TestProbeDaemon:
    @pytest.mark.asyncio
    async def test_runs_docker_info(self, sandbox, layout):
        ok = CommandResult(returncode=0, stdout="", stderr="")
        with patch("burrow.daemon.run_command", AsyncMock(return_value=ok)) as mock_run:
            assert await probe_daemon(sandbox, layout) is True
        assert mock_run.call_args.args == ("docker", "info")

    @pytest.mark.asyncio
    async def test_failure_is_not_ready(self, sandbox, layout):
        failed = CommandResult(returncode=1, stdout="", stderr="Cannot connect")
        with patch("burrow.daemon.run_command", AsyncMock(return_value=failed)):
            assert await probe_daemon(sandbox, layout) is False


class TestWaitForDaemon:
    @pytest.mark.asyncio
    async def test_ready_on_fifth_attempt(self, tmp_path):
        s = _settings(tmp_path, readiness_timeout=90)
        daemon = DaemonProcess(socket=s.daemon.socket, tcp=s.daemon.tcp)
        sleep = AsyncMock()
        probe = AsyncMock(side_effect=[False, False, False, False, True])

        with patch("burrow.daemon.probe_daemon", probe):
            attempts = await wait_for_daemon(daemon, s, resolve_layout(s), sleep=sleep)

        assert attempts == 5
        assert daemon.state == DaemonState.READY
        assert sleep.await_count == 4
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_immediately_ready_never_sleeps(self, tmp_path):
        s = _settings(tmp_path)
        daemon = DaemonProcess(socket=s.daemon.socket, tcp=s.daemon.tcp)
        sleep = AsyncMock()

        with patch("burrow.daemon.probe_daemon", AsyncMock(return_value=True)):
            assert await wait_for_daemon(daemon, s, resolve_layout(s), sleep=sleep) == 1

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("deadline", [1, 30, 90])
    async def test_deadline_exhausted_fails_without_retry(self, tmp_path, deadline):
        s = _settings(tmp_path, readiness_timeout=deadline)
        daemon = DaemonProcess(socket=s.daemon.socket, tcp=s.daemon.tcp)
        sleep = AsyncMock()
        probe = AsyncMock(return_value=False)

        with (
            patch("burrow.daemon.probe_daemon", probe),
            pytest.raises(DaemonNotReadyError) as exc_info,
        ):
            await wait_for_daemon(daemon, s, resolve_layout(s), sleep=sleep)

        assert probe.await_count == deadline
        assert sleep.await_count < deadline + 1
        assert daemon.state == DaemonState.FAILED
        assert exc_info.value.exit_code == ExitCode.DAEMON_NOT_READY
        assert exc_info.value.attempts == deadline
