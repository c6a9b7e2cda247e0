import logging
import time
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from config import Settings, configure_logging, get_settings
from doctors import Doctor, DoctorRegistry
from domain import (
    AllocationResult,
    ConflictError,
    NotFoundError,
    PriorityClass,
    Slot,
    Token,
    TokenAllocationEngine,
    TokenStatus,
)

logger = logging.getLogger(__name__)

TimeLabel = Annotated[str, Field(pattern=r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$", examples=["9:00"])]


class CreateDoctorRequest(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=2, max_length=100)


class UpdateDoctorRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)


class CreateSlotRequest(BaseModel):
    id: Optional[str] = None
    doctor_id: str
    start_time: TimeLabel
    end_time: TimeLabel
    capacity: Optional[int] = Field(None, ge=1)  # falls back to settings.default_capacity


class UpdateSlotRequest(BaseModel):
    start_time: Optional[TimeLabel] = None
    end_time: Optional[TimeLabel] = None
    capacity: Optional[int] = Field(None, ge=1)


class DelayRequest(BaseModel):
    delay_minutes: int = Field(ge=1)


class BookTokenRequest(BaseModel):
    slot_id: str
    token_id: Optional[str] = None
    patient_id: str
    priority: PriorityClass


class CancelTokenRequest(BaseModel):
    slot_id: str
    token_id: str


class EmergencyTokenRequest(BaseModel):
    slot_id: str
    token_id: Optional[str] = None
    patient_id: str


class TokenStatusRequest(BaseModel):
    status: TokenStatus


class TokenResponse(BaseModel):
    id: str
    patient_id: str
    priority: PriorityClass
    status: TokenStatus
    created_at: str
    updated_at: str

    @classmethod
    def from_token(cls, t: Token) -> "TokenResponse":
        return cls(
            id=t.id,
            patient_id=t.patient_id,
            priority=t.priority,
            status=t.status,
            created_at=t.created_at.isoformat(),
            updated_at=t.updated_at.isoformat(),
        )


def to_token_response(t: Optional[Token]) -> Optional[TokenResponse]:
    return TokenResponse.from_token(t) if t else None


class SlotResponse(BaseModel):
    id: str
    doctor_id: str
    start_time: str
    end_time: str
    capacity: int
    tokens_count: int
    waiting_list_count: int
    available_capacity: int

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotResponse":
        return cls(
            id=slot.id,
            doctor_id=slot.doctor_id,
            start_time=slot.start_time,
            end_time=slot.end_time,
            capacity=slot.capacity,
            tokens_count=len(slot.tokens),
            waiting_list_count=len(slot.waiting_list),
            available_capacity=slot.capacity - len(slot.tokens),
        )


class SlotStatusResponse(BaseModel):
    slot_id: str
    doctor_id: str
    start_time: str
    end_time: str
    capacity: int
    tokens: List[TokenResponse]
    waiting_list: List[TokenResponse]
    available_capacity: int


class DoctorSummary(BaseModel):
    id: str
    name: str
    created_at: str
    slots_count: int


class DoctorDetail(BaseModel):
    id: str
    name: str
    created_at: str
    slots: List[SlotResponse]


class ScheduleResponse(BaseModel):
    doctor_id: str
    doctor_name: str
    slots: List[SlotStatusResponse]


class AllocationResponse(BaseModel):
    accepted: bool
    message: str
    token: TokenResponse
    waiting_position: Optional[int] = None
    promoted_token: Optional[TokenResponse] = None
    preempted_token: Optional[TokenResponse] = None


class DelayResponse(BaseModel):
    slot_id: str
    delay_minutes: int
    new_end_time: str
    message: str


class TokenLocationResponse(BaseModel):
    token: TokenResponse
    slot: SlotResponse
    waiting_position: Optional[int] = None


def get_engine(request: Request) -> TokenAllocationEngine:
    return request.app.state.engine


def get_doctors(request: Request) -> DoctorRegistry:
    return request.app.state.doctors


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def to_allocation_response(result: AllocationResult) -> AllocationResponse:
    return AllocationResponse(
        accepted=result.accepted,
        message=result.message,
        token=TokenResponse.from_token(result.token),
        waiting_position=result.waiting_position,
        promoted_token=to_token_response(result.promoted_token),
        preempted_token=to_token_response(result.preempted_token),
    )


def to_status_response(engine: TokenAllocationEngine, slot_id: str) -> SlotStatusResponse:
    snapshot = engine.slot_status(slot_id)
    return SlotStatusResponse(
        slot_id=snapshot.slot_id,
        doctor_id=snapshot.doctor_id,
        start_time=snapshot.start_time,
        end_time=snapshot.end_time,
        capacity=snapshot.capacity,
        tokens=[TokenResponse.from_token(t) for t in snapshot.tokens],
        waiting_list=[TokenResponse.from_token(t) for t in snapshot.waiting_list],
        available_capacity=snapshot.available_capacity,
    )


def to_doctor_summary(doctor: Doctor) -> DoctorSummary:
    return DoctorSummary(
        id=doctor.id,
        name=doctor.name,
        created_at=doctor.created_at.isoformat(),
        slots_count=len(doctor.slot_ids),
    )


router = APIRouter()


@router.get("/health")
def health(request: Request) -> dict:
    return {
        "status": "success",
        "message": f"{request.app.state.settings.app_name} is running",
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
    }


@router.post("/doctors", response_model=DoctorSummary, status_code=status.HTTP_201_CREATED)
def create_doctor(body: CreateDoctorRequest, doctors: DoctorRegistry = Depends(get_doctors)) -> DoctorSummary:
    doctor = doctors.create_doctor(name=body.name, doctor_id=body.id)
    return to_doctor_summary(doctor)


@router.get("/doctors", response_model=List[DoctorSummary])
def list_doctors(doctors: DoctorRegistry = Depends(get_doctors)) -> List[DoctorSummary]:
    return [to_doctor_summary(d) for d in doctors.list_doctors()]


@router.get("/doctors/{doctor_id}", response_model=DoctorDetail)
def get_doctor(
    doctor_id: str,
    doctors: DoctorRegistry = Depends(get_doctors),
    engine: TokenAllocationEngine = Depends(get_engine),
) -> DoctorDetail:
    doctor = doctors.get_doctor(doctor_id)
    return DoctorDetail(
        id=doctor.id,
        name=doctor.name,
        created_at=doctor.created_at.isoformat(),
        slots=[SlotResponse.from_slot(s) for s in engine.get_slots_by_doctor(doctor.id)],
    )


@router.put("/doctors/{doctor_id}", response_model=DoctorSummary)
def update_doctor(
    doctor_id: str,
    body: UpdateDoctorRequest,
    doctors: DoctorRegistry = Depends(get_doctors),
) -> DoctorSummary:
    return to_doctor_summary(doctors.update_doctor(doctor_id, body.name))


@router.delete("/doctors/{doctor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_doctor(doctor_id: str, doctors: DoctorRegistry = Depends(get_doctors)) -> Response:
    doctors.delete_doctor(doctor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/doctors/{doctor_id}/schedule", response_model=ScheduleResponse)
def get_schedule(
    doctor_id: str,
    doctors: DoctorRegistry = Depends(get_doctors),
    engine: TokenAllocationEngine = Depends(get_engine),
) -> ScheduleResponse:
    doctor = doctors.get_doctor(doctor_id)
    return ScheduleResponse(
        doctor_id=doctor.id,
        doctor_name=doctor.name,
        slots=[to_status_response(engine, s.id) for s in engine.get_slots_by_doctor(doctor.id)],
    )


@router.post("/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(
    body: CreateSlotRequest,
    doctors: DoctorRegistry = Depends(get_doctors),
    engine: TokenAllocationEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> SlotResponse:
    capacity = body.capacity or settings.default_capacity
    if capacity > settings.max_capacity:
        raise HTTPException(
            status_code=422,
            detail=f"capacity must be at most {settings.max_capacity}",
        )

    doctor = doctors.get_doctor(body.doctor_id)
    slot = Slot(
        id=body.id or "",
        doctor_id=doctor.id,
        start_time=body.start_time,
        end_time=body.end_time,
        capacity=capacity,
    )
    engine.add_slot(slot)
    doctors.attach_slot(doctor.id, slot.id)
    return SlotResponse.from_slot(slot)


@router.get("/slots/doctor/{doctor_id}", response_model=List[SlotResponse])
def get_doctor_slots(
    doctor_id: str,
    doctors: DoctorRegistry = Depends(get_doctors),
    engine: TokenAllocationEngine = Depends(get_engine),
) -> List[SlotResponse]:
    doctor = doctors.get_doctor(doctor_id)
    return [SlotResponse.from_slot(s) for s in engine.get_slots_by_doctor(doctor.id)]


@router.get("/slots/{slot_id}/status", response_model=SlotStatusResponse)
def get_slot_status(slot_id: str, engine: TokenAllocationEngine = Depends(get_engine)) -> SlotStatusResponse:
    return to_status_response(engine, slot_id)


@router.get("/slots/{doctor_id}/{start_time}/status", response_model=SlotStatusResponse)
def get_slot_status_by_time(
    doctor_id: str,
    start_time: str,
    doctors: DoctorRegistry = Depends(get_doctors),
    engine: TokenAllocationEngine = Depends(get_engine),
) -> SlotStatusResponse:
    doctor = doctors.get_doctor(doctor_id)
    for slot in engine.get_slots_by_doctor(doctor.id):
        if slot.start_time == start_time:
            return to_status_response(engine, slot.id)
    raise NotFoundError("Slot not found")


@router.put("/slots/{slot_id}", response_model=SlotResponse)
def update_slot(
    slot_id: str,
    body: UpdateSlotRequest,
    engine: TokenAllocationEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> SlotResponse:
    if body.capacity is not None and body.capacity > settings.max_capacity:
        raise HTTPException(
            status_code=422,
            detail=f"capacity must be at most {settings.max_capacity}",
        )
    slot = engine.update_slot(
        slot_id,
        start_time=body.start_time,
        end_time=body.end_time,
        capacity=body.capacity,
    )
    return SlotResponse.from_slot(slot)


@router.post("/slots/{slot_id}/delay", response_model=DelayResponse)
def delay_slot(
    slot_id: str,
    body: DelayRequest,
    engine: TokenAllocationEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> DelayResponse:
    if body.delay_minutes > settings.max_delay_minutes:
        raise HTTPException(
            status_code=422,
            detail=f"delay_minutes must be at most {settings.max_delay_minutes}",
        )
    try:
        result = engine.extend_slot_end(slot_id, body.delay_minutes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DelayResponse(
        slot_id=result.slot_id,
        delay_minutes=result.delay_minutes,
        new_end_time=result.new_end_time,
        message=result.message,
    )


@router.post("/tokens/book", response_model=AllocationResponse)
def book_token(
    body: BookTokenRequest,
    response: Response,
    engine: TokenAllocationEngine = Depends(get_engine),
) -> AllocationResponse:
    token = Token(id=body.token_id or "", patient_id=body.patient_id, priority=body.priority)
    result = engine.book(body.slot_id, token)
    if not result.accepted:
        # Queued on the waiting list rather than admitted.
        response.status_code = status.HTTP_202_ACCEPTED
    return to_allocation_response(result)


@router.post("/tokens/cancel", response_model=AllocationResponse)
def cancel_token(body: CancelTokenRequest, engine: TokenAllocationEngine = Depends(get_engine)) -> AllocationResponse:
    return to_allocation_response(engine.cancel(body.slot_id, body.token_id))


@router.post("/tokens/emergency", response_model=AllocationResponse)
def insert_emergency_token(
    body: EmergencyTokenRequest,
    engine: TokenAllocationEngine = Depends(get_engine),
) -> AllocationResponse:
    token = Token(id=body.token_id or "", patient_id=body.patient_id, priority=PriorityClass.EMERGENCY)
    return to_allocation_response(engine.insert_emergency(body.slot_id, token))


@router.get("/tokens/{token_id}/status", response_model=TokenLocationResponse)
def get_token_status(token_id: str, engine: TokenAllocationEngine = Depends(get_engine)) -> TokenLocationResponse:
    location = engine.find_token(token_id)
    return TokenLocationResponse(
        token=TokenResponse.from_token(location.token),
        slot=SlotResponse.from_slot(location.slot),
        waiting_position=location.waiting_position,
    )


@router.put("/tokens/{token_id}/status", response_model=TokenResponse)
def update_token_status(
    token_id: str,
    body: TokenStatusRequest,
    engine: TokenAllocationEngine = Depends(get_engine),
) -> TokenResponse:
    return TokenResponse.from_token(engine.update_token_status(token_id, body.status))


@router.post("/admin/reset")
def reset_all(request: Request) -> dict:
    """Reset in-memory data (useful during development / simulation)."""
    request.app.state.engine.reset()
    request.app.state.doctors.reset()
    return {"detail": "State cleared"}


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, docs_url=None)
    app.state.settings = settings
    app.state.engine = TokenAllocationEngine()
    app.state.doctors = DoctorRegistry()
    app.state.started_at = time.monotonic()

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConflictError, conflict_handler)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s", request.method, request.url.path)
        return await call_next(request)

    @app.get("/docs", include_in_schema=False)
    async def custom_swagger_ui() -> object:
        """
        Serve Swagger UI with a custom page title that does not include 'Swagger UI'.
        Also hides version/OAS badges.
        """
        resp = get_swagger_ui_html(openapi_url=app.openapi_url, title=settings.app_name)
        html = resp.body.decode("utf-8")
        css = """
<style>
  .swagger-ui .info .title small { display: none !important; }
  .swagger-ui .info .title .version-stamp { display: none !important; }
</style>
""".strip()
        html = html.replace("</head>", f"{css}</head>", 1)
        headers = dict(resp.headers)
        headers.pop("content-length", None)
        return HTMLResponse(html, status_code=resp.status_code, headers=headers)

    app.include_router(router)
    return app


app = create_app()
