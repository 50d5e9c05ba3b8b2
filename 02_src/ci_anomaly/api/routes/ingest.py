"""Inbound message routes."""

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Request

from ...app import IApplication
from ...transport import UnknownQueueError


class PublishResponse(BaseModel):
    """Response model for an accepted message."""

    status: str
    queue: str


def create_ingest_router(app: IApplication) -> APIRouter:
    """Create ingest router."""
    router = APIRouter(prefix="/api/queues", tags=["ingest"])

    @router.post("/{queue_name}/messages", status_code=202, response_model=PublishResponse)
    async def publish_message(queue_name: str, request: Request) -> dict:
        """Queue the raw request body for processing."""
        body = await request.body()
        try:
            await app.publish(queue_name, body)
        except UnknownQueueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"status": "queued", "queue": queue_name}

    return router
