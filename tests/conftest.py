import pytest

from tests.mocks.clients import FakeSleep


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch):
    monkeypatch.setenv("ASSEMBLYAI_API_KEY", "test-key")
    for name in (
        "LOTION_BATCH_SIZE",
        "LOTION_INTER_BATCH_DELAY_SECONDS",
        "LOTION_INTRA_BATCH_DELAY_SECONDS",
        "LOTION_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()
