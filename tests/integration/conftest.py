from __future__ import annotations

import os
import socket
import subprocess
import sys
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest


def _pick_free_port() -> int:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            return int(sock.getsockname()[1])
    except PermissionError:
        pytest.skip("Socket operations are blocked in this environment.")


def _wait_for_health(base_url: str, timeout_s: float = 20.0) -> None:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        try:
            response = httpx.get(f"{base_url}/health", timeout=1.0)
            if response.status_code == 200:
                return
        except httpx.TransportError:
            pass
        time.sleep(0.2)
    raise TimeoutError(f"Server did not become healthy within {timeout_s:.1f}s")


def _start_server(env: dict[str, str], port: int, cwd: Path) -> subprocess.Popen[str]:
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "medireport.api.main:app",
        "--host",
        "127.0.0.1",
        "--port",
        str(port),
    ]
    return subprocess.Popen(  # noqa: S603
        cmd,
        cwd=str(cwd),
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        text=True,
    )


@pytest.fixture
def postgres_url() -> str:
    if os.getenv("RUN_POSTGRES_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_POSTGRES_INTEGRATION_TESTS=1 and MEDIREPORT_DATABASE_URL "
            "to run integration tests against PostgreSQL."
        )
    database_url = os.getenv("MEDIREPORT_DATABASE_URL")
    if not database_url:
        pytest.skip("MEDIREPORT_DATABASE_URL is required for integration tests.")
    return database_url


@pytest.fixture
def api_base_url(postgres_url: str) -> Iterator[str]:
    port = _pick_free_port()
    base_url = f"http://127.0.0.1:{port}"
    env = os.environ.copy()
    env["MEDIREPORT_DATABASE_URL"] = postgres_url
    env["MEDIREPORT_LOG_JSON"] = "true"

    server = _start_server(env=env, port=port, cwd=Path.cwd())
    try:
        _wait_for_health(base_url)
        yield base_url
    finally:
        server.terminate()
        try:
            server.wait(timeout=5)
        except subprocess.TimeoutExpired:
            server.kill()
            server.wait(timeout=5)


def http_request(
    base_url: str,
    method: str,
    path: str,
    *,
    user: str,
    payload: dict[str, Any] | None = None,
) -> tuple[int, Any]:
    response = httpx.request(
        method,
        f"{base_url}{path}",
        json=payload,
        headers={"X-User-Id": user},
        timeout=20.0,
    )
    return response.status_code, response.json()


@pytest.fixture
def call_api():
    return http_request
