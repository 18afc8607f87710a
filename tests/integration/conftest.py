"""Integration-test fixtures isolating the pipeline from the host environment."""

from __future__ import annotations

from collections.abc import Iterator
import io
import os

import pytest

from chapterflow.telemetry.logger import configure_logging


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Hide provider keys and `CHAPTERFLOW_*` settings; reset log sinks afterwards."""

    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    for name in list(os.environ):
        if name.startswith("CHAPTERFLOW_"):
            monkeypatch.delenv(name, raising=False)
    yield
    # CLI runs log to streams that are closed once the invocation returns.
    configure_logging(io.StringIO())
