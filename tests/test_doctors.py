import pytest

from doctors import DoctorRegistry
from domain import ConflictError, NotFoundError


@pytest.fixture
def registry() -> DoctorRegistry:
    return DoctorRegistry()


def test_create_generates_id(registry) -> None:
    doctor = registry.create_doctor("Dr. Smith")
    assert doctor.id
    assert registry.get_doctor(doctor.id) is doctor


def test_create_rejects_duplicate_id(registry) -> None:
    registry.create_doctor("Dr. Smith", doctor_id="DOC001")
    with pytest.raises(ConflictError):
        registry.create_doctor("Dr. Jones", doctor_id="DOC001")


def test_update_delete_and_missing(registry) -> None:
    registry.create_doctor("Dr. Smith", doctor_id="DOC001")

    assert registry.update_doctor("DOC001", "Dr. Smithers").name == "Dr. Smithers"
    registry.delete_doctor("DOC001")

    assert registry.list_doctors() == []
    with pytest.raises(NotFoundError):
        registry.get_doctor("DOC001")
    with pytest.raises(NotFoundError):
        registry.delete_doctor("DOC001")


def test_attach_slot_keeps_order(registry) -> None:
    registry.create_doctor("Dr. Lee", doctor_id="DOC003")
    registry.attach_slot("DOC003", "S1")
    registry.attach_slot("DOC003", "S2")
    assert registry.get_doctor("DOC003").slot_ids == ["S1", "S2"]
