from __future__ import annotations

import pytest

from flow_ix.config import Config
from flow_ix.wallet.signer import InMemorySigner

from .helpers import NODE, RecordingSigner


@pytest.fixture(scope="session")
def signer() -> InMemorySigner:
    return InMemorySigner.from_hex("1f" * 32)


@pytest.fixture
def recorder(signer: InMemorySigner) -> RecordingSigner:
    return RecordingSigner(signer)


@pytest.fixture
def config() -> Config:
    return Config(node=NODE, max_retries=2, backoff_base_s=0.0, timeout_s=2.0)
