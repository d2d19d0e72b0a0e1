import pytest
from coach.config import Settings


class FakeClock:
    """Manually advanced monotonic clock for gate timing."""
    def __init__(self, t: float = 100.0):
        self.t = t
    def __call__(self) -> float:
        return self.t
    def advance(self, dt: float) -> None:
        self.t += dt


@pytest.fixture
def settings(tmp_path):
    return Settings(
        FEEDBACK_LOG_PATH=str(tmp_path / "feedback.json"),
        ORACLE_API_KEY="test-key",
        ELEVENLABS_API_KEY="test-key",
    )

@pytest.fixture
def clock():
    return FakeClock()
