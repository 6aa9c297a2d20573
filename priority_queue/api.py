"""FastAPI REST API for the priority queue."""

from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from priority_queue import __version__
from priority_queue.exceptions import InvalidInput
from priority_queue.formatting import format_for_chat
from priority_queue.service import QueueService


class EnqueueRequest(BaseModel):
    """Request to add a task."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = ""
    platform: str = "api"
    user_id: Optional[str] = Field(default=None, alias="userId")
    priority: Union[int, str, None] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class CompleteRequest(BaseModel):
    result: Any = None


class FailRequest(BaseModel):
    error: Any = None


class EnqueueResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    task_id: str = Field(serialization_alias="taskId")


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool


class QueueAPI:
    """REST API over a running QueueService."""

    def __init__(self, service: QueueService):
        """Initialize API with the service it fronts."""
        if service is None:
            raise ValueError("service is required")

        self._service = service

    def create_app(self) -> FastAPI:
        """Create FastAPI application."""
        app = FastAPI(
            title="Priority Task Queue API",
            description="Persistent priority task queue",
            version=__version__,
        )
        app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

        @app.get("/status")
        def get_status() -> Dict[str, Any]:
            """Get queue status."""
            return self._service.get_status()

        @app.get("/queue")
        def list_queue() -> List[Dict[str, Any]]:
            """List all tasks in queue order."""
            return [
                task.model_dump(mode="json", by_alias=True)
                for task in self._service.list_queue()
            ]

        @app.get("/chat")
        def get_chat_status() -> Dict[str, str]:
            """Get status formatted for chat platforms."""
            return {"text": format_for_chat(self._service.get_status())}

        @app.post("/enqueue", response_model=EnqueueResponse, response_model_by_alias=True)
        def enqueue(request: EnqueueRequest) -> EnqueueResponse:
            """Add a task."""
            try:
                task = self._service.enqueue(
                    request.content,
                    platform=request.platform,
                    user_id=request.user_id,
                    priority=request.priority,
                    metadata=request.metadata,
                    session_id=request.session_id,
                )
            except InvalidInput as e:
                raise HTTPException(status_code=400, detail=str(e))

            return EnqueueResponse(success=True, task_id=task.id)

        @app.post("/dequeue")
        def dequeue() -> Dict[str, Any]:
            """Start the next pending task."""
            task = self._service.dequeue()
            return {"success": task is not None, "taskId": task.id if task else None}

        @app.post("/complete", response_model=SuccessResponse)
        def complete(request: Optional[CompleteRequest] = None) -> SuccessResponse:
            """Complete the current task."""
            result = request.result if request else None
            return SuccessResponse(success=self._service.complete_task(result))

        @app.post("/fail", response_model=SuccessResponse)
        def fail(request: Optional[FailRequest] = None) -> SuccessResponse:
            """Fail the current task."""
            error = request.error if request and request.error is not None else "Unknown error"
            return SuccessResponse(success=self._service.fail_task(error))

        @app.post("/subtasks/{subtask_id}/complete", response_model=SuccessResponse)
        def complete_subtask(subtask_id: str) -> SuccessResponse:
            """Complete a sub-task of the current task."""
            return SuccessResponse(success=self._service.complete_subtask(subtask_id))

        @app.post("/pause", response_model=SuccessResponse)
        def pause() -> SuccessResponse:
            self._service.pause()
            return SuccessResponse(success=True)

        @app.post("/resume", response_model=SuccessResponse)
        def resume() -> SuccessResponse:
            self._service.resume()
            return SuccessResponse(success=True)

        @app.post("/clear", response_model=SuccessResponse)
        def clear() -> SuccessResponse:
            self._service.clear()
            return SuccessResponse(success=True)

        return app
