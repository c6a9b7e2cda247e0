import pytest

from domain import (
    PRIORITY_WEIGHT,
    PriorityClass,
    Slot,
    Token,
    TokenStatus,
    format_time_label,
    parse_priority,
    parse_time_label,
)


def _token(token_id: str, priority: PriorityClass) -> Token:
    return Token(id=token_id, patient_id=f"P-{token_id}", priority=priority)


def _slot(capacity: int = 3) -> Slot:
    return Slot(id="S1", doctor_id="DOC001", start_time="9:00", end_time="10:00", capacity=capacity)


def test_priority_weights_are_fixed() -> None:
    assert [PRIORITY_WEIGHT[p] for p in PriorityClass] == [1, 2, 3, 4, 5]


def test_token_generates_id_and_starts_booked() -> None:
    token = Token(patient_id="P1", priority="ONLINE")
    assert token.id
    assert token.priority is PriorityClass.ONLINE
    assert token.status is TokenStatus.BOOKED
    assert token.weight == 4


def test_token_keeps_given_id() -> None:
    assert _token("T1", PriorityClass.PAID).id == "T1"


def test_unknown_priority_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid priority level"):
        Token(patient_id="P1", priority="vip")
    with pytest.raises(ValueError):
        parse_priority(None)


def test_update_status_allows_any_transition() -> None:
    token = _token("T1", PriorityClass.WALK_IN)
    before = token.updated_at

    token.update_status(TokenStatus.COMPLETED)
    token.update_status(TokenStatus.BOOKED)
    token.update_status("no_show")

    assert token.status is TokenStatus.NO_SHOW
    assert token.updated_at >= before


def test_slot_requires_positive_capacity() -> None:
    with pytest.raises(ValueError):
        _slot(capacity=0)


def test_has_capacity_tracks_admitted_count() -> None:
    slot = _slot(capacity=2)
    slot.admit(_token("T1", PriorityClass.ONLINE))
    assert slot.has_capacity()
    slot.admit(_token("T2", PriorityClass.ONLINE))
    assert not slot.has_capacity()


def test_enqueue_orders_by_weight_and_keeps_arrival_order() -> None:
    slot = _slot()
    positions = [
        slot.enqueue_waiting(_token("W1", PriorityClass.WALK_IN)),
        slot.enqueue_waiting(_token("O1", PriorityClass.ONLINE)),
        slot.enqueue_waiting(_token("W2", PriorityClass.WALK_IN)),
        slot.enqueue_waiting(_token("P1", PriorityClass.PAID)),
        slot.enqueue_waiting(_token("O2", PriorityClass.ONLINE)),
    ]

    assert [t.id for t in slot.waiting_list] == ["P1", "O1", "O2", "W1", "W2"]
    assert positions == [1, 1, 3, 1, 3]
    weights = [t.weight for t in slot.waiting_list]
    assert weights == sorted(weights)


def test_dequeue_returns_head_or_none() -> None:
    slot = _slot()
    assert slot.dequeue_waiting() is None
    slot.enqueue_waiting(_token("O1", PriorityClass.ONLINE))
    slot.enqueue_waiting(_token("F1", PriorityClass.FOLLOW_UP))
    assert slot.dequeue_waiting().id == "F1"
    assert [t.id for t in slot.waiting_list] == ["O1"]


def test_remove_waiting_preserves_order_of_rest() -> None:
    slot = _slot()
    for token_id in ["A", "B", "C"]:
        slot.enqueue_waiting(_token(token_id, PriorityClass.ONLINE))

    assert slot.remove_waiting("B").id == "B"
    assert slot.remove_waiting("B") is None
    assert [t.id for t in slot.waiting_list] == ["A", "C"]


def test_remove_admitted_reports_success() -> None:
    slot = _slot()
    slot.admit(_token("T1", PriorityClass.ONLINE))
    assert slot.remove_admitted("T1") is True
    assert slot.remove_admitted("T1") is False


def test_lookups_report_waiting_position() -> None:
    slot = _slot()
    slot.admit(_token("T1", PriorityClass.ONLINE))
    slot.enqueue_waiting(_token("W1", PriorityClass.ONLINE))
    slot.enqueue_waiting(_token("W2", PriorityClass.ONLINE))

    assert slot.get_token("T1").id == "T1"
    assert slot.get_token("W1") is None
    location = slot.find_waiting("W2")
    assert location.waiting_position == 2
    assert location.waiting
    assert slot.find_waiting("nope") is None
    assert slot.contains("T1") and slot.contains("W1")
    assert not slot.contains("nope")


@pytest.mark.parametrize(
    "label, minutes",
    [("9:00", 540), ("09:05", 545), ("23:59", 1439), ("0:00", 0)],
)
def test_parse_time_label(label: str, minutes: int) -> None:
    assert parse_time_label(label) == minutes


@pytest.mark.parametrize("label", ["24:00", "9:60", "9", "nine:00", ""])
def test_parse_time_label_rejects_garbage(label: str) -> None:
    with pytest.raises(ValueError):
        parse_time_label(label)


def test_format_time_label_wraps_within_day() -> None:
    assert format_time_label(600) == "10:00"
    assert format_time_label(24 * 60 + 15) == "0:15"
