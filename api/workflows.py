from __future__ import annotations

from pathlib import Path as FilePath
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Path, Request, UploadFile

from schemas.commands import DetailsUpdate, GuarantorAdd, PercentageUpdate, SubmitRequest
from schemas.loan import SupportingDocument
from schemas.session import MemberSession
from schemas.workflow import CommandResult, WorkflowStep
from services.registry import WorkflowRegistry, registry
from services.sacco_client import SaccoBackend
from services.workflow import LoanApplicationWorkflow
from utils.case import model_to_camel

router = APIRouter(prefix="/api/loan-workflows", tags=["loan-workflows"])

MSG_WORKFLOW_NOT_FOUND = "Loan application workflow not found"
MAX_DOCUMENT_BYTES = 10 * 1024 * 1024
ALLOWED_DOCUMENT_SUFFIXES = {".pdf", ".png", ".jpg", ".jpeg"}

# HTTP status for a failed command, by result kind
_FAILURE_STATUS = {
    "navigation": 409,
    "business_rule": 422,
    "validation": 422,
    "transport": 502,
}


def get_session(authorization: Optional[str] = Header(None)) -> MemberSession:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return MemberSession(access_token=token)


def get_backend(request: Request) -> SaccoBackend:
    return request.app.state.sacco_client


def get_registry() -> WorkflowRegistry:
    return registry


def _get_workflow(
    workflow_id: str,
    session: MemberSession = Depends(get_session),
    workflows: WorkflowRegistry = Depends(get_registry),
) -> LoanApplicationWorkflow:
    workflow = workflows.get(workflow_id, session)
    if workflow is None:
        raise HTTPException(status_code=404, detail=MSG_WORKFLOW_NOT_FOUND)
    return workflow


def _respond(workflow: LoanApplicationWorkflow, result: CommandResult) -> dict[str, Any]:
    """Return result and state in camelCase; failed commands become HTTP errors carrying the state."""
    state = model_to_camel(workflow.state())
    if not result.ok:
        raise HTTPException(
            status_code=_FAILURE_STATUS.get(result.kind, 400),
            detail={"code": result.code, "message": result.message, "state": state},
        )
    return {"result": model_to_camel(result), "state": state}


@router.post("", status_code=201)
async def create_workflow(
    session: MemberSession = Depends(get_session),
    backend: SaccoBackend = Depends(get_backend),
    workflows: WorkflowRegistry = Depends(get_registry),
):
    """Start a loan application and check eligibility. An ineligible member still gets a workflow to render."""
    workflow = workflows.create(backend, session)
    result = await workflow.start()
    return {"result": model_to_camel(result), "state": model_to_camel(workflow.state())}


@router.get("/{workflow_id}")
async def get_workflow(workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return model_to_camel(workflow.state())


@router.delete("/{workflow_id}", status_code=204)
async def discard_workflow(
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
    workflows: WorkflowRegistry = Depends(get_registry),
):
    workflows.discard(workflow.id)


@router.post("/{workflow_id}/eligibility")
async def recheck_eligibility(workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return _respond(workflow, await workflow.start())


@router.patch("/{workflow_id}/details")
async def update_details(body: DetailsUpdate, workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    result = workflow.update_details(
        amount=body.amount,
        term_months=body.term_months,
        purpose=body.purpose,
        needs_guarantors=body.needs_guarantors,
    )
    return _respond(workflow, result)


@router.post("/{workflow_id}/document")
async def attach_document(
    file: UploadFile = File(..., description="Supporting document (PDF, PNG or JPG, up to 10MB)"),
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
):
    if not file.filename or FilePath(file.filename).suffix.lower() not in ALLOWED_DOCUMENT_SUFFIXES:
        raise HTTPException(status_code=400, detail="Please upload a PDF, PNG or JPG file.")
    content = await file.read()
    if len(content) > MAX_DOCUMENT_BYTES:
        raise HTTPException(status_code=413, detail="Supporting documents are limited to 10MB.")
    document = SupportingDocument(
        filename=file.filename,
        content_type=file.content_type or "application/octet-stream",
        content=content,
    )
    return _respond(workflow, workflow.attach_document(document))


@router.get("/{workflow_id}/candidates")
async def list_candidates(workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    result = await workflow.refresh_candidates()
    response = _respond(workflow, result)
    return {"result": response["result"], "candidates": response["state"]["candidates"]}


@router.post("/{workflow_id}/guarantors")
async def add_guarantor(body: GuarantorAdd, workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return _respond(workflow, workflow.add_guarantor(body.guarantor_id))


@router.put("/{workflow_id}/guarantors/{guarantor_id}")
async def set_guarantor_percentage(
    guarantor_id: str,
    body: PercentageUpdate,
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
):
    return _respond(workflow, workflow.set_percentage(guarantor_id, body.percentage))


@router.delete("/{workflow_id}/guarantors/{guarantor_id}")
async def remove_guarantor(guarantor_id: str, workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return _respond(workflow, workflow.remove_guarantor(guarantor_id))


@router.post("/{workflow_id}/next")
async def next_step(workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return _respond(workflow, await workflow.next())


@router.post("/{workflow_id}/back")
async def previous_step(workflow: LoanApplicationWorkflow = Depends(_get_workflow)):
    return _respond(workflow, workflow.back())


@router.post("/{workflow_id}/goto/{step}")
async def go_to_step(
    step: int = Path(..., ge=1, le=4, description="1=eligibility, 2=details, 3=guarantors, 4=confirmation"),
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
):
    return _respond(workflow, await workflow.go_to(WorkflowStep(step)))


@router.post("/{workflow_id}/submit")
async def submit(
    body: Optional[SubmitRequest] = None,
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
):
    return _respond(workflow, await workflow.submit(body.message if body else None))


@router.post("/{workflow_id}/retry-failed")
async def retry_failed(
    body: Optional[SubmitRequest] = None,
    workflow: LoanApplicationWorkflow = Depends(_get_workflow),
):
    """Re-send only the guarantee requests that failed on the last submission."""
    return _respond(workflow, await workflow.retry_failed(body.message if body else None))
