from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from domain import ConflictError, NotFoundError, new_id, utcnow

logger = logging.getLogger(__name__)


@dataclass
class Doctor:
    name: str
    id: str = ""
    created_at: datetime = field(default_factory=utcnow)
    slot_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = new_id()


class DoctorRegistry:
    """Create/read/update/delete store for doctors, keyed by id."""

    def __init__(self) -> None:
        self.doctors: Dict[str, Doctor] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self.doctors.clear()

    def create_doctor(self, name: str, doctor_id: Optional[str] = None) -> Doctor:
        with self._lock:
            if doctor_id and doctor_id in self.doctors:
                raise ConflictError("Doctor already exists")
            doctor = Doctor(name=name, id=doctor_id or "")
            self.doctors[doctor.id] = doctor
        logger.info("Doctor created: %s (%s)", doctor.id, name)
        return doctor

    def list_doctors(self) -> List[Doctor]:
        with self._lock:
            return list(self.doctors.values())

    def get_doctor(self, doctor_id: str) -> Doctor:
        with self._lock:
            doctor = self.doctors.get(doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor not found")
        return doctor

    def update_doctor(self, doctor_id: str, name: str) -> Doctor:
        doctor = self.get_doctor(doctor_id)
        doctor.name = name
        logger.info("Doctor updated: %s (%s)", doctor_id, name)
        return doctor

    def delete_doctor(self, doctor_id: str) -> None:
        with self._lock:
            if self.doctors.pop(doctor_id, None) is None:
                raise NotFoundError("Doctor not found")
        logger.info("Doctor deleted: %s", doctor_id)

    def attach_slot(self, doctor_id: str, slot_id: str) -> None:
        self.get_doctor(doctor_id).slot_ids.append(slot_id)
