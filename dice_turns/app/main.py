import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Callable, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder

from dice_detection.app.services.model_loader import (
    CancellationToken,
    ModelLoader,
    ModelNotReadyError,
    ModelRegistry,
)
from dice_detection.app.services.pipeline import CapturePipeline
from dice_detection.app.utils.video import decode_image_frame
from dice_turns.app.settings import get_settings
from dice_turns.core.models import ClassifierResult, CorrectionRequest
from dice_turns.services.roll_service import RollService


logger = logging.getLogger(__name__)
settings = get_settings()

model_registry = ModelRegistry()
model_loader = ModelLoader(model_registry, settings)
roll_service = RollService(CapturePipeline.from_settings(model_registry, settings))


def _log_load_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Model load failed: %s", exc)
    elif task.result() is not None:
        logger.info("Models ready for capture")


@asynccontextmanager
async def lifespan(app: FastAPI):
    token = CancellationToken()
    load_task: Optional[asyncio.Task] = None
    if settings.load_models_on_startup:
        load_task = model_loader.start(token)
        load_task.add_done_callback(_log_load_outcome)
        app.state.model_load_task = load_task
    try:
        yield
    finally:
        token.cancel()
        if load_task and not load_task.done():
            load_task.cancel()
            with suppress(asyncio.CancelledError):
                await load_task


app = FastAPI(title="Dice Tracker", version="0.1.0", lifespan=lifespan)


def get_service() -> RollService:
    return roll_service


def _apply_to_slot(action: Callable[[int], ClassifierResult], index: int) -> dict:
    try:
        result = action(index)
    except IndexError:
        raise HTTPException(status_code=404, detail=f"No die at index {index} in the current capture")
    return jsonable_encoder(result.model_dump() | {"index": index, "value": result.value, "state": result.state})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/models/status")
async def models_status() -> dict[str, bool]:
    return {"ready": model_registry.ready}


@app.post("/capture")
async def capture(
    image: UploadFile = File(...),
    service: RollService = Depends(get_service),
) -> dict:
    if not service.ready:
        raise HTTPException(status_code=503, detail="Models are still loading")
    data = await image.read()
    try:
        frame = decode_image_frame(data, settings.frame_size)
    except RuntimeError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    try:
        snapshot = await run_in_threadpool(service.capture, frame)
    except ModelNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return jsonable_encoder(snapshot)


# Handlers that call RollService are sync so they run in the threadpool.
@app.get("/capture")
def current_capture(service: RollService = Depends(get_service)) -> dict:
    return jsonable_encoder(service.snapshot())


@app.post("/capture/dice/{index}/confirm")
def confirm_die(index: int, service: RollService = Depends(get_service)) -> dict:
    return _apply_to_slot(service.confirm, index)


@app.put("/capture/dice/{index}")
def correct_die(
    index: int,
    correction: CorrectionRequest,
    service: RollService = Depends(get_service),
) -> dict:
    return _apply_to_slot(lambda slot: service.correct(slot, correction.value), index)


@app.post("/capture/dice/{index}/cycle")
def cycle_die(index: int, service: RollService = Depends(get_service)) -> dict:
    return _apply_to_slot(service.cycle, index)


@app.delete("/capture/dice/{index}/correction")
def reset_die(index: int, service: RollService = Depends(get_service)) -> dict:
    return _apply_to_slot(service.reset, index)


@app.post("/turns", status_code=201)
def commit_turn(service: RollService = Depends(get_service)) -> dict:
    turn = service.commit()
    return jsonable_encoder(turn.model_dump())


@app.get("/turns")
def list_turns(
    limit: Optional[int] = Query(default=None, ge=1),
    service: RollService = Depends(get_service),
) -> list[dict]:
    history = service.history(limit)
    return jsonable_encoder([turn.model_dump() for turn in history])
