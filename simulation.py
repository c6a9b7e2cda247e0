from config import configure_logging, get_settings
from doctors import DoctorRegistry
from domain import AllocationError, PriorityClass, Slot, Token, TokenAllocationEngine


def print_slot(engine: TokenAllocationEngine, slot_id: str) -> None:
    status = engine.slot_status(slot_id)
    print(f"\nSlot {status.slot_id} ({status.start_time}-{status.end_time})")
    print(f"  Available capacity: {status.available_capacity}/{status.capacity}")
    print("  Admitted:")
    for t in status.tokens:
        print(f"    #{t.id} {t.patient_id} [{t.priority.value}] status={t.status.value}")
    print("  Waiting list:")
    for t in status.waiting_list:
        print(f"    #{t.id} {t.patient_id} [{t.priority.value}] status={t.status.value}")


def run_simulation() -> TokenAllocationEngine:
    """
    Simulate one OPD day with 3 doctors.

    Demonstrates:
    - Slot capacity limits.
    - Priority ordering of the waiting list.
    - Promotion from the waiting list after cancellation.
    - Emergency preemption of the lowest-priority patient.
    - Extending a delayed slot.
    """
    engine = TokenAllocationEngine()
    doctors = DoctorRegistry()

    for doctor_id, name in [("DOC001", "Dr. Smith"), ("DOC002", "Dr. Johnson"), ("DOC003", "Dr. Lee")]:
        doctors.create_doctor(name, doctor_id=doctor_id)
        for hour in range(9, 12):
            slot = Slot(
                id=f"{doctor_id}-{hour}",
                doctor_id=doctor_id,
                start_time=f"{hour}:00",
                end_time=f"{hour + 1}:00",
                capacity=5,
            )
            engine.add_slot(slot)
            doctors.attach_slot(doctor_id, slot.id)

    print("Doctors created:", ", ".join(d.name for d in doctors.list_doctors()))

    bookings = [
        ("T001", "P001", PriorityClass.ONLINE),
        ("T002", "P002", PriorityClass.WALK_IN),
        ("T003", "P003", PriorityClass.PAID),
        ("T004", "P004", PriorityClass.FOLLOW_UP),
        ("T005", "P005", PriorityClass.WALK_IN),
        ("T006", "P006", PriorityClass.ONLINE),
        ("T007", "P007", PriorityClass.PAID),
    ]
    for token_id, patient_id, priority in bookings:
        res = engine.book("DOC001-9", Token(id=token_id, patient_id=patient_id, priority=priority))
        print(f"{token_id} ({priority.value}): {res.message}")

    try:
        engine.book("DOC001-9", Token(id="T001", patient_id="P001", priority=PriorityClass.ONLINE))
    except AllocationError as exc:
        print("Duplicate rejected:", exc)

    res = engine.cancel("DOC001-9", "T003")
    print("Cancelled:", res.token.id)
    if res.promoted_token:
        print("Promoted from waiting list:", res.promoted_token.id)

    res = engine.insert_emergency("DOC001-9", Token(id="E001", patient_id="P100", priority=PriorityClass.EMERGENCY))
    print("Emergency inserted:", res.token.id)
    if res.preempted_token:
        print("Preempted to waiting list:", res.preempted_token.id)

    res = engine.extend_slot_end("DOC001-9", 30)
    print(res.message, "-> new end", res.new_end_time)

    print("\nFinal schedule for", doctors.get_doctor("DOC001").name)
    for slot in engine.get_slots_by_doctor("DOC001"):
        print_slot(engine, slot.id)

    return engine


if __name__ == "__main__":
    configure_logging(get_settings().log_level)
    run_simulation()
