"""Queue monitoring router.

Exposes the processor's operations for operators:
- Statistics for the main queue and dead-letter store
- Inspection, submission and removal of queued requests
- Manual processing passes and the online signal
- Dead-letter listing, export and replay
"""

from fastapi import APIRouter, Depends, HTTPException, Request as HttpRequest, Response

from api.schemas import OnlineUpdate, RequestCreate, SubmitResponse
from relayq.exceptions import CapacityExceededError, DuplicateIdError
from relayq.processing.processor import QueueProcessor

router = APIRouter()


def get_processor(request: HttpRequest) -> QueueProcessor:
    """FastAPI dependency for the app's QueueProcessor."""
    return request.app.state.processor


def _dead_letter_store(processor: QueueProcessor):
    store = processor.queue.dead_letter_store
    if store is None:
        raise HTTPException(status_code=404, detail="Dead letter store is disabled")
    return store


# ============================================================================
# Statistics
# ============================================================================

@router.get("/stats")
async def get_stats(processor: QueueProcessor = Depends(get_processor)):
    """Main queue + dead-letter statistics and processor state."""
    return processor.statistics()


# ============================================================================
# Queued requests
# ============================================================================

@router.get("/requests")
async def list_requests(processor: QueueProcessor = Depends(get_processor)):
    """All queued requests in delivery order."""
    requests = processor.queue.get_all()
    return {"data": [r.to_json() for r in requests], "count": len(requests)}


@router.get("/requests/{request_id}")
async def get_request(request_id: str, processor: QueueProcessor = Depends(get_processor)):
    request = processor.queue.get(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return {**request.to_json(), "retryStats": processor.queue.retry_stats(request_id)}


@router.post("/requests", status_code=201, response_model=SubmitResponse)
async def submit_request(
    body: RequestCreate,
    processor: QueueProcessor = Depends(get_processor),
):
    """Deliver immediately when online, otherwise queue."""
    try:
        delivered = await processor.submit(body.to_request())
    except DuplicateIdError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except CapacityExceededError as exc:
        raise HTTPException(status_code=507, detail=exc.message)
    return SubmitResponse(id=body.id, delivered=delivered, queued=not delivered)


@router.delete("/requests/{request_id}", status_code=204)
async def delete_request(request_id: str, processor: QueueProcessor = Depends(get_processor)):
    removed = await processor.queue.remove(request_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Request not found")
    return Response(status_code=204)


# ============================================================================
# Processing
# ============================================================================

@router.post("/process")
async def run_pass(processor: QueueProcessor = Depends(get_processor)):
    """Run a processing pass now."""
    result = await processor.process()
    return result.to_dict()


@router.put("/online")
async def set_online(body: OnlineUpdate, processor: QueueProcessor = Depends(get_processor)):
    """Feed the connectivity signal."""
    result = await processor.set_online(body.online)
    return {
        "online": processor.is_online,
        "pass": result.to_dict() if result else None,
    }


# ============================================================================
# Dead letters
# ============================================================================

@router.get("/dead-letter")
async def list_dead_letters(processor: QueueProcessor = Depends(get_processor)):
    store = _dead_letter_store(processor)
    letters = store.get_all()
    return {"data": [r.to_json() for r in letters], "count": len(letters)}


@router.get("/dead-letter/export")
async def export_dead_letters(processor: QueueProcessor = Depends(get_processor)):
    return _dead_letter_store(processor).export()


@router.post("/dead-letter/{request_id}/replay")
async def replay_dead_letter(request_id: str, processor: QueueProcessor = Depends(get_processor)):
    """Move a dead letter back into the main queue with a fresh retry budget."""
    _dead_letter_store(processor)
    try:
        replayed = await processor.replay_dead_letter(request_id)
    except DuplicateIdError as exc:
        raise HTTPException(status_code=409, detail=exc.message)
    except CapacityExceededError as exc:
        raise HTTPException(status_code=507, detail=exc.message)
    if not replayed:
        raise HTTPException(status_code=404, detail="Dead letter not found")
    return {"id": request_id, "replayed": True}
