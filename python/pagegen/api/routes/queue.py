"""Generation queue routes.

Routes are transport-only: each calls one WorkQueue operation.

- POST /queue: Enqueue a page (409 E_ALREADY_QUEUED if it is already pending)
- GET /queue: List items, optionally by status
- DELETE /queue/{page_id}: Remove a page's items, cancelling its trigger
- DELETE /queue: Clear the queue (emergency recovery)
- POST /queue/pause, POST /queue/resume
- GET /queue/stats: Counts by status, estimated completion, pause flag
- POST /queue/{page_id}/retry: Re-arm a failed item with backoff
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from pagegen.api.deps import get_work_queue
from pagegen.db.models import QueueStatus
from pagegen.errors import ApiError, ApiErrorCode, InvalidRequestError, NotFoundError
from pagegen.responses import success_response
from pagegen.schemas.queue import EnqueueRequest, QueueItemOut, QueueStatsOut
from pagegen.services.work_queue import WorkQueue

router = APIRouter(prefix="/queue")


@router.post("", status_code=201)
def enqueue_page(
    body: EnqueueRequest,
    queue: Annotated[WorkQueue, Depends(get_work_queue)],
) -> dict:
    if not queue.enqueue(body.page_id, body.index, body.block_selection):
        raise ApiError(ApiErrorCode.E_ALREADY_QUEUED, f"Page {body.page_id} is already queued")
    item = queue.get_item(body.page_id)
    return success_response(QueueItemOut.model_validate(item).model_dump(mode="json"))


@router.get("")
def list_queue(
    queue: Annotated[WorkQueue, Depends(get_work_queue)],
    status: Annotated[QueueStatus | None, Query()] = None,
) -> dict:
    items = queue.list_items(status)
    return success_response([QueueItemOut.model_validate(i).model_dump(mode="json") for i in items])


@router.get("/stats")
def queue_stats(queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> dict:
    stats = queue.stats()
    out = QueueStatsOut(
        **stats.to_dict(),
        estimated_completion=queue.estimated_completion(),
        paused=queue.is_paused(),
    )
    return success_response(out.model_dump(mode="json"))


@router.post("/pause")
def pause_queue(queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> dict:
    queue.pause()
    return success_response({"paused": True})


@router.post("/resume")
def resume_queue(queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> dict:
    queue.resume()
    return success_response({"paused": False})


@router.post("/{page_id}/retry")
def retry_page(page_id: int, queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> dict:
    item = queue.get_item(page_id)
    if item is None:
        raise NotFoundError(ApiErrorCode.E_QUEUE_ITEM_NOT_FOUND, "Queue item not found")
    if not queue.retry_failed(page_id):
        raise InvalidRequestError(message=item.error or "Queue item cannot be retried")
    return success_response(QueueItemOut.model_validate(queue.get_item(page_id)).model_dump(mode="json"))


@router.delete("/{page_id}", status_code=204)
def remove_page(page_id: int, queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> Response:
    if not queue.remove(page_id):
        raise NotFoundError(ApiErrorCode.E_QUEUE_ITEM_NOT_FOUND, "Queue item not found")
    return Response(status_code=204)


@router.delete("")
def clear_queue(queue: Annotated[WorkQueue, Depends(get_work_queue)]) -> dict:
    return success_response({"deleted": queue.clear()})
