# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the runner process transport."""

from __future__ import annotations

import subprocess
import sys
import time
from pathlib import Path

import pytest

from selfprof.errors import (
    InvalidStateError,
    LaunchFailedError,
    NonZeroExitError,
    ProcessTimeoutError,
    UnexpectedExitError,
)
from selfprof.process import ProfilerProcess, ServiceMessage

PREFIX = "##test"

ECHO_RUNNER = """
import sys
print('##test["connected"]', flush=True)
for line in sys.stdin:
    print(line.rstrip(), flush=True)
"""

SLOW_CONNECT_RUNNER = """
import sys
import time
time.sleep(0.5)
print('##test["connected"]', flush=True)
sys.stdin.read()
"""


def start(runner: Path, **kwargs) -> ProfilerProcess:
    return ProfilerProcess.start(runner, [], prefix=PREFIX, presentable_name="test runner", **kwargs)


def test_responses_are_consumed_in_order(runner_script) -> None:
    runner = runner_script(
        """
        import sys
        print('##test["saved",{"n":"1"}]', flush=True)
        print("plain output", flush=True)
        print('##test["saved",{"n":"2"}]', flush=True)
        sys.stdin.read()
        """
    )
    process = start(runner)
    try:
        first = process.await_response("saved", 10)
        second = process.await_response("saved", 10)
    finally:
        process.close_input()

    assert first == ServiceMessage("saved", '"n":"1"')
    assert second == ServiceMessage("saved", '"n":"2"')
    assert process.await_finished(10) == 0
    assert "plain output" in process.stdout_lines


def test_failed_wait_does_not_consume_output(runner_script) -> None:
    runner = runner_script(
        """
        import sys
        print('##test["saved"]', flush=True)
        sys.stdin.read()
        """
    )
    process = start(runner)
    try:
        with pytest.raises(ProcessTimeoutError):
            process.await_response("other", 0.3)
        assert process.await_response("saved", 10) == ServiceMessage("saved")
    finally:
        process.terminate()


def test_exit_before_response_reports_streams(runner_script) -> None:
    runner = runner_script(
        """
        import sys
        print("attaching", flush=True)
        print("boom", file=sys.stderr, flush=True)
        """
    )
    process = start(runner)

    with pytest.raises(UnexpectedExitError) as excinfo:
        process.await_response("saved", 10)

    assert excinfo.value.stderr == ("boom",)
    assert "attaching" in excinfo.value.stdout
    assert "*** Standard Error ***" in str(excinfo.value)


def test_response_printed_right_before_exit_is_seen(runner_script) -> None:
    runner = runner_script("""print('##test["saved"]', flush=True)\n""")
    process = start(runner)

    assert process.await_response("saved", 10) == ServiceMessage("saved")


def test_send_writes_formatted_command(runner_script) -> None:
    process = start(runner_script(ECHO_RUNNER))
    try:
        process.await_connected(10)
        process.send("get-snapshot", ("name", "s1"))
        message = process.await_response("get-snapshot", 10)
    finally:
        process.close_input()

    assert message == ServiceMessage("get-snapshot", 'name:"s1"')
    assert process.await_finished(10) == 0


def test_send_is_rejected_when_api_controlled(runner_script) -> None:
    process = start(runner_script(ECHO_RUNNER), readiness=lambda: True)
    try:
        assert process.api_controlled
        with pytest.raises(InvalidStateError):
            process.send("disconnect")
    finally:
        process.terminate()


def test_connect_fails_when_api_never_becomes_ready(runner_script) -> None:
    timeout = 2.0
    process = start(runner_script(SLOW_CONNECT_RUNNER), readiness=lambda: False)
    started = time.monotonic()
    try:
        with pytest.raises(ProcessTimeoutError, match="did not become ready"):
            process.await_connected(timeout)
    finally:
        process.terminate()

    elapsed = time.monotonic() - started
    assert timeout - 0.1 <= elapsed < timeout + 5


def test_connect_waits_for_readiness(runner_script) -> None:
    calls: list[int] = []

    def readiness() -> bool:
        calls.append(1)
        return len(calls) >= 3

    process = start(runner_script(ECHO_RUNNER), readiness=readiness)
    try:
        process.await_connected(10)
    finally:
        process.terminate()

    assert len(calls) == 3


def test_processor_runs_before_waiter_returns(runner_script) -> None:
    seen: list[ServiceMessage] = []
    runner = runner_script(
        """
        import sys
        print('##test["snapshot-saved",{"filename":"/tmp/a"}]', flush=True)
        sys.stdin.read()
        """
    )
    process = start(runner, processor=seen.append)
    try:
        message = process.await_response("snapshot-saved", 10)
    finally:
        process.terminate()

    assert seen == [message]


def test_non_zero_exit_carries_diagnostics(runner_script) -> None:
    runner = runner_script(
        """
        import sys
        print("bad target", file=sys.stderr, flush=True)
        sys.exit(3)
        """
    )
    process = start(runner)

    with pytest.raises(NonZeroExitError) as excinfo:
        process.await_finished(10)

    assert excinfo.value.returncode == 3
    assert excinfo.value.stderr == ("bad target",)


def test_finish_timeout(runner_script) -> None:
    process = start(runner_script("import sys\nsys.stdin.read()\n"))
    try:
        with pytest.raises(ProcessTimeoutError):
            process.await_finished(0.2)
    finally:
        process.terminate()

    assert process.has_exited()


def test_missing_executable_fails_to_launch(tmp_path: Path) -> None:
    with pytest.raises(LaunchFailedError):
        start(tmp_path / "missing-runner")


def test_process_without_pipes_is_rejected() -> None:
    popen = subprocess.Popen([sys.executable, "-c", "pass"], stdout=subprocess.PIPE, text=True)
    try:
        with pytest.raises(InvalidStateError, match="pipes"):
            ProfilerProcess(popen, prefix=PREFIX, presentable_name="test runner")
    finally:
        popen.communicate()
