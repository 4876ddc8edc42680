# api.py
"""HTTP control plane over the scheduler operations."""
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .client import Client
from .errors import InvalidTransition, InvalidWorkflow, JobNotFound, UnknownWorkflowType, WorkflowNotFound
from .workflow import Workflow

# -------------------- Schemas --------------------

class CreateWorkflowRequest(BaseModel):
    type: str
    arguments: List[Any] = Field(default_factory=list)


class CreateWorkflowResponse(BaseModel):
    id: str


class StartWorkflowRequest(BaseModel):
    jobs: List[str] = Field(default_factory=list)


class StartWorkflowResponse(BaseModel):
    id: str
    enqueued: List[str]


class JobResponse(BaseModel):
    name: str
    klass: str
    status: str
    incoming: List[str]
    outgoing: List[str]
    failed: bool
    output: Any = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


class WorkflowResponse(BaseModel):
    id: str
    type: str
    status: str
    stopped: bool
    finished_jobs: int
    total_jobs: int
    jobs: List[JobResponse]


def workflow_response(flow: Workflow) -> WorkflowResponse:
    finished, total = flow.progress()
    return WorkflowResponse(
        id=flow.id,
        type=flow.klass,
        status=flow.status,
        stopped=flow.stopped,
        finished_jobs=finished,
        total_jobs=total,
        jobs=[
            JobResponse(
                name=j.name,
                klass=j.klass,
                status=j.phase,
                incoming=j.incoming,
                outgoing=j.outgoing,
                failed=j.failed,
                output=j.output,
                started_at=j.started_at,
                finished_at=j.finished_at,
            )
            for j in flow.jobs
        ],
    )


def create_app(client: Client) -> FastAPI:
    app = FastAPI(title="gush control plane")

    def find(workflow_id: str) -> Workflow:
        try:
            return client.find_workflow(workflow_id)
        except WorkflowNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    # -------------------- Endpoints --------------------

    @app.post("/workflows", response_model=CreateWorkflowResponse, status_code=201)
    def create_workflow(req: CreateWorkflowRequest):
        try:
            workflow_id = client.create_workflow(req.type, *req.arguments)
        except (UnknownWorkflowType, InvalidWorkflow) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return CreateWorkflowResponse(id=workflow_id)

    @app.get("/workflows", response_model=List[WorkflowResponse])
    def list_workflows():
        return [workflow_response(flow) for flow in client.all_workflows()]

    @app.get("/workflows/{workflow_id}", response_model=WorkflowResponse)
    def get_workflow(workflow_id: str):
        return workflow_response(find(workflow_id))

    @app.post("/workflows/{workflow_id}/start", response_model=StartWorkflowResponse)
    def start_workflow(workflow_id: str, req: Optional[StartWorkflowRequest] = None):
        jobs = req.jobs if req else []
        try:
            enqueued = client.start_workflow(workflow_id, jobs)
        except (WorkflowNotFound, JobNotFound) as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        return StartWorkflowResponse(id=workflow_id, enqueued=enqueued)

    @app.post("/workflows/{workflow_id}/stop", response_model=WorkflowResponse)
    def stop_workflow(workflow_id: str):
        try:
            client.stop_workflow(workflow_id)
        except WorkflowNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        return workflow_response(find(workflow_id))

    @app.delete("/workflows/{workflow_id}", status_code=204)
    def destroy_workflow(workflow_id: str):
        try:
            client.destroy_workflow(workflow_id)
        except WorkflowNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))

    return app
