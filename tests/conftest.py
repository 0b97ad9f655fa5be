import pytest
from prometheus_client import CollectorRegistry

from streamwindow.commit.scheduler import ManualFrameScheduler, ManualTimer
from streamwindow.domain.models import TransactionRecord
from streamwindow.metrics import StreamMetrics


def make_tx(tx_id: str, observed_at_ms: int | None = 1_000, **fields) -> TransactionRecord:
    """Transaction summary with stable defaults for the compared fields."""
    base = {
        "sender": "0xsender",
        "nonce": 1,
        "tx_type": 2,
        "source_id": "rpc",
        "chain_id": 1,
    }
    base.update(fields)
    return TransactionRecord(id=tx_id, observed_at_ms=observed_at_ms, **base)


@pytest.fixture
def tx():
    return make_tx


@pytest.fixture
def frames() -> ManualFrameScheduler:
    return ManualFrameScheduler()


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Isolated registry so collectors never clash between tests."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> StreamMetrics:
    return StreamMetrics(registry)
