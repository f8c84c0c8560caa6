from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _isolate_queuedash_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Prevent a developer's exported dashboard settings (tokens, read-only, ports) from
    # leaking into tests that build configuration from the environment.
    for name in (
        "QUEUEDASH_AUTH_TOKEN",
        "QUEUEDASH_AUTH_TOKENS",
        "QUEUEDASH_READ_ONLY",
        "QUEUEDASH_HOST",
        "QUEUEDASH_PORT",
        "QUEUEDASH_BASE_PATH",
        "QUEUEDASH_HEARTBEAT_S",
        "QUEUEDASH_SILENCE_POLL_ACCESS_LOG",
    ):
        monkeypatch.delenv(name, raising=False)
