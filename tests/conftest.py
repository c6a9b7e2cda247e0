import pytest
from fastapi.testclient import TestClient

from config import Settings
from domain import PriorityClass, Slot, Token, TokenAllocationEngine
from main import create_app


def make_token(token_id: str, priority: PriorityClass) -> Token:
    return Token(id=token_id, patient_id=f"P-{token_id}", priority=priority)


@pytest.fixture
def engine() -> TokenAllocationEngine:
    return TokenAllocationEngine()


@pytest.fixture
def slot(engine: TokenAllocationEngine) -> Slot:
    return engine.add_slot(Slot(id="S1", doctor_id="DOC001", start_time="9:00", end_time="10:00", capacity=5))


@pytest.fixture
def full_slot(engine: TokenAllocationEngine, slot: Slot) -> Slot:
    """Slot S1 filled in booking order with weights [4, 5, 1, 3, 5]."""
    for token_id, priority in [
        ("T1", PriorityClass.ONLINE),
        ("T2", PriorityClass.WALK_IN),
        ("T3", PriorityClass.PAID),
        ("T4", PriorityClass.FOLLOW_UP),
        ("T5", PriorityClass.WALK_IN),
    ]:
        engine.book(slot.id, make_token(token_id, priority))
    return slot


@pytest.fixture
def app():
    return create_app(Settings(max_capacity=10, max_delay_minutes=120))


@pytest.fixture
def client(app):
    return TestClient(app)
