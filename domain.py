from __future__ import annotations

import copy
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class PriorityClass(str, Enum):
    PAID = "paid"
    EMERGENCY = "emergency"
    FOLLOW_UP = "follow_up"
    ONLINE = "online"
    WALK_IN = "walk_in"


class TokenStatus(str, Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Lower weight = higher priority.
PRIORITY_WEIGHT = {
    PriorityClass.PAID: 1,
    PriorityClass.EMERGENCY: 2,
    PriorityClass.FOLLOW_UP: 3,
    PriorityClass.ONLINE: 4,
    PriorityClass.WALK_IN: 5,
}

SLOT_FULL_MESSAGE = "Slot is full, added to waiting list"

_TIME_LABEL = re.compile(r"^(\d{1,2}):(\d{2})$")
_MINUTES_PER_DAY = 24 * 60


class AllocationError(Exception):
    """Base class for failures raised by the allocation engine."""


class NotFoundError(AllocationError):
    pass


class ConflictError(AllocationError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def parse_priority(value) -> PriorityClass:
    """Coerce a priority name (case-insensitive) into a PriorityClass.

    Raises ValueError for anything outside the fixed priority table.
    """
    if isinstance(value, PriorityClass):
        return value
    try:
        return PriorityClass(str(value).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Invalid priority level: {value!r}") from exc


def parse_time_label(label: str) -> int:
    """Return minutes since midnight for an ``H:MM`` label."""
    match = _TIME_LABEL.match(label.strip())
    if not match:
        raise ValueError(f"Invalid time label: {label!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time label: {label!r}")
    return hours * 60 + minutes


def format_time_label(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes % _MINUTES_PER_DAY, 60)
    return f"{hours}:{minutes:02d}"


@dataclass
class Token:
    patient_id: str
    priority: PriorityClass
    id: str = ""
    status: TokenStatus = TokenStatus.BOOKED
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id()
        self.priority = parse_priority(self.priority)
        self.status = TokenStatus(self.status)

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHT[self.priority]

    def update_status(self, new_status: TokenStatus) -> None:
        # Any status may replace any other; there is no transition table.
        self.status = TokenStatus(new_status)
        self.updated_at = utcnow()


@dataclass
class Slot:
    doctor_id: str
    start_time: str
    end_time: str
    capacity: int
    id: str = ""
    tokens: Dict[str, Token] = field(default_factory=dict)
    waiting_list: List[Token] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id()
        if self.capacity < 1:
            raise ValueError("Slot capacity must be at least 1")

    def has_capacity(self) -> bool:
        return len(self.tokens) < self.capacity

    def admit(self, token: Token) -> None:
        self.tokens[token.id] = token

    def enqueue_waiting(self, token: Token) -> int:
        """Insert ``token`` ahead of the first strictly lower-priority entry.

        Equal weights keep arrival order. Returns the 1-based position.
        """
        for index, waiting in enumerate(self.waiting_list):
            if waiting.weight > token.weight:
                self.waiting_list.insert(index, token)
                return index + 1
        self.waiting_list.append(token)
        return len(self.waiting_list)

    def dequeue_waiting(self) -> Optional[Token]:
        if not self.waiting_list:
            return None
        return self.waiting_list.pop(0)

    def remove_waiting(self, token_id: str) -> Optional[Token]:
        for index, waiting in enumerate(self.waiting_list):
            if waiting.id == token_id:
                return self.waiting_list.pop(index)
        return None

    def remove_admitted(self, token_id: str) -> bool:
        return self.tokens.pop(token_id, None) is not None

    def get_token(self, token_id: str) -> Optional[Token]:
        return self.tokens.get(token_id)

    def find_waiting(self, token_id: str) -> Optional[TokenLocation]:
        for index, waiting in enumerate(self.waiting_list):
            if waiting.id == token_id:
                return TokenLocation(token=waiting, slot=self, waiting_position=index + 1)
        return None

    def contains(self, token_id: str) -> bool:
        return token_id in self.tokens or self.find_waiting(token_id) is not None


@dataclass
class TokenLocation:
    token: Token
    slot: Slot
    # 1-based; None when the token holds an admitted place.
    waiting_position: Optional[int] = None

    @property
    def waiting(self) -> bool:
        return self.waiting_position is not None


@dataclass
class AllocationResult:
    accepted: bool
    message: str
    token: Token
    waiting_position: Optional[int] = None
    promoted_token: Optional[Token] = None
    preempted_token: Optional[Token] = None


@dataclass
class SlotStatus:
    slot_id: str
    doctor_id: str
    start_time: str
    end_time: str
    capacity: int
    tokens: List[Token]
    waiting_list: List[Token]
    available_capacity: int


@dataclass
class DelayResult:
    slot_id: str
    delay_minutes: int
    new_end_time: str
    message: str


class TokenAllocationEngine:
    """
    In-memory slot admission engine.

    Responsibilities:
    - Enforces per-slot capacity, queueing overflow by PRIORITY_WEIGHT.
    - Promotes the waiting-list head when an admitted token is cancelled.
    - Lets emergency tokens preempt the lowest-priority occupant.
    - Serializes every operation behind one lock so callers on different
      threads never see a half-updated slot.
    """

    def __init__(self) -> None:
        self.slots: Dict[str, Slot] = {}
        self._lock = threading.RLock()

    def reset(self) -> None:
        with self._lock:
            self.slots.clear()

    def add_slot(self, slot: Slot) -> Slot:
        with self._lock:
            if slot.id in self.slots:
                raise ConflictError(f"Slot {slot.id} already exists")
            self.slots[slot.id] = slot
        logger.info("Slot added: %s (doctor=%s, capacity=%s)", slot.id, slot.doctor_id, slot.capacity)
        return slot

    def get_slot(self, slot_id: str) -> Slot:
        with self._lock:
            slot = self.slots.get(slot_id)
        if slot is None:
            raise NotFoundError("Slot not found")
        return slot

    def get_all_slots(self) -> List[Slot]:
        with self._lock:
            return list(self.slots.values())

    def get_slots_by_doctor(self, doctor_id: str) -> List[Slot]:
        return [slot for slot in self.get_all_slots() if slot.doctor_id == doctor_id]

    def _ensure_unique(self, slot: Slot, token_id: str) -> None:
        if slot.contains(token_id):
            raise ConflictError("Duplicate booking not allowed")
        for other in self.slots.values():
            if other is not slot and other.contains(token_id):
                raise ConflictError(f"Token {token_id} is already held by slot {other.id}")

    def book(self, slot_id: str, token: Token) -> AllocationResult:
        with self._lock:
            slot = self.get_slot(slot_id)
            self._ensure_unique(slot, token.id)

            if slot.has_capacity():
                slot.admit(token)
                logger.info("Token booked: %s (slot=%s, patient=%s)", token.id, slot_id, token.patient_id)
                return AllocationResult(accepted=True, message="Token booked successfully", token=token)

            position = slot.enqueue_waiting(token)
            logger.info("Token queued: %s (slot=%s, position=%s)", token.id, slot_id, position)
            return AllocationResult(
                accepted=False,
                message=SLOT_FULL_MESSAGE,
                token=token,
                waiting_position=position,
            )

    def cancel(self, slot_id: str, token_id: str) -> AllocationResult:
        with self._lock:
            slot = self.get_slot(slot_id)

            cancelled = slot.get_token(token_id)
            if cancelled is not None:
                slot.remove_admitted(token_id)
                cancelled.update_status(TokenStatus.CANCELLED)

                # One cancellation promotes at most one waiting token.
                promoted = slot.dequeue_waiting()
                if promoted is not None:
                    slot.admit(promoted)
                    logger.info("Token promoted from waiting list: %s (slot=%s)", promoted.id, slot_id)

                logger.info("Token cancelled: %s (slot=%s)", token_id, slot_id)
                return AllocationResult(
                    accepted=True,
                    message="Token cancelled and waiting list updated",
                    token=cancelled,
                    promoted_token=promoted,
                )

            removed = slot.remove_waiting(token_id)
            if removed is not None:
                removed.update_status(TokenStatus.CANCELLED)
                logger.info("Token cancelled from waiting list: %s (slot=%s)", token_id, slot_id)
                return AllocationResult(
                    accepted=True,
                    message="Token cancelled from waiting list",
                    token=removed,
                )

        raise NotFoundError("Token not found")

    def insert_emergency(self, slot_id: str, token: Token) -> AllocationResult:
        with self._lock:
            slot = self.get_slot(slot_id)
            self._ensure_unique(slot, token.id)
            token.priority = PriorityClass.EMERGENCY

            preempted: Optional[Token] = None
            if not slot.has_capacity():
                candidate: Optional[Token] = None
                highest_weight = 0
                # Strict comparison keeps the first token that reaches the max.
                for admitted in slot.tokens.values():
                    if admitted.weight > highest_weight:
                        highest_weight = admitted.weight
                        candidate = admitted

                if candidate is not None and highest_weight > token.weight:
                    slot.remove_admitted(candidate.id)
                    slot.enqueue_waiting(candidate)
                    preempted = candidate
                    logger.info(
                        "Token preempted for emergency: %s (emergency=%s, slot=%s)",
                        candidate.id,
                        token.id,
                        slot_id,
                    )

            # Admitted even when nothing could be preempted; the slot may
            # then hold capacity + 1 tokens.
            slot.admit(token)
            if len(slot.tokens) > slot.capacity:
                logger.warning(
                    "Emergency token %s pushed slot %s over capacity (%s/%s)",
                    token.id,
                    slot_id,
                    len(slot.tokens),
                    slot.capacity,
                )
            logger.info("Emergency token inserted: %s (slot=%s)", token.id, slot_id)
            return AllocationResult(
                accepted=True,
                message="Emergency token inserted",
                token=token,
                preempted_token=preempted,
            )

    def slot_status(self, slot_id: str) -> SlotStatus:
        with self._lock:
            slot = self.get_slot(slot_id)
            # sorted() is stable, so equal weights keep admission order.
            admitted = sorted(slot.tokens.values(), key=lambda t: t.weight)
            return SlotStatus(
                slot_id=slot.id,
                doctor_id=slot.doctor_id,
                start_time=slot.start_time,
                end_time=slot.end_time,
                capacity=slot.capacity,
                tokens=[copy.copy(t) for t in admitted],
                waiting_list=[copy.copy(t) for t in slot.waiting_list],
                available_capacity=slot.capacity - len(slot.tokens),
            )

    def extend_slot_end(self, slot_id: str, delay_minutes: int) -> DelayResult:
        with self._lock:
            slot = self.get_slot(slot_id)
            end = parse_time_label(slot.end_time) + delay_minutes
            if end >= _MINUTES_PER_DAY:
                logger.warning("Slot %s end time wrapped past midnight", slot_id)
            slot.end_time = format_time_label(end)

        logger.info("Slot timing extended: %s by %s min (end=%s)", slot_id, delay_minutes, slot.end_time)
        return DelayResult(
            slot_id=slot_id,
            delay_minutes=delay_minutes,
            new_end_time=slot.end_time,
            message=f"Slot timing extended by {delay_minutes} minutes",
        )

    def update_slot(
        self,
        slot_id: str,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> Slot:
        with self._lock:
            slot = self.get_slot(slot_id)
            if capacity is not None and capacity < 1:
                raise ValueError("Slot capacity must be at least 1")
            if start_time:
                slot.start_time = start_time
            if end_time:
                slot.end_time = end_time
            if capacity:
                # Lowering capacity never evicts tokens already admitted.
                slot.capacity = capacity
        logger.info("Slot updated: %s", slot_id)
        return slot

    def find_token(self, token_id: str) -> TokenLocation:
        with self._lock:
            for slot in self.slots.values():
                token = slot.get_token(token_id)
                if token is not None:
                    return TokenLocation(token=token, slot=slot)
                location = slot.find_waiting(token_id)
                if location is not None:
                    return location
        raise NotFoundError("Token not found")

    def update_token_status(self, token_id: str, status: TokenStatus) -> Token:
        with self._lock:
            token = self.find_token(token_id).token
            token.update_status(status)
        logger.info("Token status updated: %s -> %s", token_id, token.status.value)
        return token
