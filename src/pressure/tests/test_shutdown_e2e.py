"""Drives the real uvicorn process: SIGTERM handling and exit codes."""
import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[3]

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _start_service(**env_overrides):
    port = _free_port()
    env = dict(os.environ)
    env.update({
        "HOST": "127.0.0.1",
        "PORT": str(port),
        "MAX_DURATION_MS": "10000",
        "CHUNK_BYTES": "1000000",
        "LOG_DIR": "",
        "PYTHONPATH": str(ROOT),
    })
    env.update(env_overrides)
    proc = subprocess.Popen(
        [sys.executable, "-m", "src.pressure.server"],
        cwd=ROOT, env=env, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
    )
    base = f"http://127.0.0.1:{port}"

    deadline = time.time() + 20
    while time.time() < deadline:
        try:
            if httpx.get(f"{base}/health", timeout=1).status_code == 200:
                return proc, base
        except httpx.HTTPError:
            pass
        if proc.poll() is not None:
            break
        time.sleep(0.1)
    proc.kill()
    pytest.fail("service did not come up")


def _stress_in_background(base: str, duration_ms: int, results: list) -> threading.Thread:
    def run():
        try:
            results.append(httpx.get(f"{base}/stress?duration={duration_ms}&chunks=1", timeout=15))
        except httpx.HTTPError as e:
            results.append(e)

    t = threading.Thread(target=run, daemon=True)
    t.start()
    return t


def _wait_in_flight(base: str, n: int) -> None:
    deadline = time.time() + 5
    while time.time() < deadline:
        if httpx.get(f"{base}/health", timeout=2).json()["inFlight"] >= n:
            return
        time.sleep(0.02)
    pytest.fail("stress request never started")


def test_idle_sigterm_exits_zero():
    proc, _ = _start_service(DRAIN_DEADLINE_MS="5000")
    proc.send_signal(signal.SIGTERM)
    assert proc.wait(timeout=10) == 0


def test_health_served_during_stress():
    proc, base = _start_service()
    try:
        results = []
        t = _stress_in_background(base, 2000, results)
        _wait_in_flight(base, 1)

        start = time.monotonic()
        r = httpx.get(f"{base}/health", timeout=5)
        assert r.status_code == 200
        assert time.monotonic() - start < 1.0

        t.join(10)
        assert results[0].status_code == 200
        assert results[0].json()["durationMs"] >= 2000
    finally:
        proc.kill()
        proc.wait()


def test_deadline_forces_exit_one_during_long_stress():
    proc, base = _start_service(DRAIN_DEADLINE_MS="1000")
    results = []
    _stress_in_background(base, 5000, results)
    _wait_in_flight(base, 1)

    sent = time.monotonic()
    proc.send_signal(signal.SIGTERM)
    code = proc.wait(timeout=10)
    waited = time.monotonic() - sent

    assert code == 1
    assert waited < 3.0


def test_health_served_with_many_stress_requests():
    proc, base = _start_service(MAX_CONCURRENT_PRESSURE="8")
    try:
        results = []
        for _ in range(45):
            _stress_in_background(base, 4000, results)
        _wait_in_flight(base, 8)

        start = time.monotonic()
        r = httpx.get(f"{base}/health", timeout=2.5)
        assert r.status_code == 200
        assert r.json()["inFlight"] <= 8
        assert time.monotonic() - start < 1.5
    finally:
        proc.kill()
        proc.wait()
