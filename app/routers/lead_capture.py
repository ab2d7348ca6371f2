# app/routers/lead_capture.py
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status

from app.deps import get_analytics, get_form_sessions, get_lead_capture_pipeline
from app.schemas.lead_capture import (
    DraftOut,
    FieldValidationOut,
    FieldValueIn,
    FormatIn,
    FormatOut,
    FormEventIn,
    FormStateOut,
    FormValidationOut,
    LeadFormData,
    LeadSubmitInput,
    OfflineQueueOut,
    ProgressOut,
    SubmitResult,
)
from app.services.analytics import Ga4Notifier, capture_attribution
from app.services.lead_capture_service import LeadCapturePipeline
from app.services.lead_form_state import FormSessions, last_completed_field, progress_percentage
from app.services.lead_validation import (
    FIELD_VALIDATORS,
    check_field_type,
    format_birthday_input,
    format_phone_input,
    validate_field,
    validate_lead_form,
)

router = APIRouter(prefix="/lead-capture", tags=["lead-capture"])


def _client_key(client_id: Optional[str], request: Request) -> str:
    """Id do visitante mandado pelo front; sem ele, o IP da requisição."""
    if client_id:
        return client_id
    return request.client.host if request.client else ""


@router.post("/submit", response_model=SubmitResult)
def submit_lead(
    body: LeadSubmitInput,
    request: Request,
    background: BackgroundTasks,
    pipeline: LeadCapturePipeline = Depends(get_lead_capture_pipeline),
    notifier: Ga4Notifier = Depends(get_analytics),
    sessions: FormSessions = Depends(get_form_sessions),
):
    """
    Envia o lead do formulário público.
    Sempre 200: sucesso/falha vêm em `success` + `outcome`.
    """
    attribution = body.attribution or capture_attribution(
        request.query_params,
        referrer=request.headers.get("referer"),
        user_agent=request.headers.get("user-agent"),
        landing_page=request.query_params.get("landing_page", "/"),
    )

    client_id = _client_key(body.client_id, request)
    report = pipeline.submit(body.form, score=body.score, attribution=attribution, client_id=client_id)
    if report.result.outcome == "success":
        sessions.discard(client_id)

    # analytics só depois da resposta, nunca no caminho do envio
    background.add_task(notifier.publish, report.events, body.client_id)
    return report.result


@router.post("/validate", response_model=FormValidationOut)
def validate_form(body: LeadFormData):
    errors = validate_lead_form(body)
    return FormValidationOut(valid=not errors, errors=errors)


@router.post("/validate/{field}", response_model=FieldValidationOut)
def validate_single_field(field: str, body: FieldValueIn):
    if field not in FIELD_VALIDATORS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Campo desconhecido: {field}",
        )
    type_error = check_field_type(field, body.value)
    if type_error:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=type_error)
    return FieldValidationOut(field=field, error=validate_field(field, body.value))


@router.post("/progress", response_model=ProgressOut)
def form_progress(body: LeadFormData):
    return ProgressOut(
        progress=progress_percentage(body),
        last_completed_field=last_completed_field(body),
    )


@router.post("/format", response_model=FormatOut)
def format_inputs(body: FormatIn):
    return FormatOut(
        phone=format_phone_input(body.phone),
        birthday=format_birthday_input(body.birthday),
    )


@router.post("/replay", response_model=OfflineQueueOut, status_code=status.HTTP_202_ACCEPTED)
def replay_offline_queue(
    background: BackgroundTasks,
    pipeline: LeadCapturePipeline = Depends(get_lead_capture_pipeline),
):
    pending = pipeline.pending_offline()
    if pending:
        background.add_task(pipeline.replay_offline_queue)
    return OfflineQueueOut(pending=pending)


@router.get("/offline-queue", response_model=OfflineQueueOut)
def offline_queue_status(
    pipeline: LeadCapturePipeline = Depends(get_lead_capture_pipeline),
):
    return OfflineQueueOut(pending=pipeline.pending_offline())


@router.post("/form-events", response_model=FormStateOut)
def form_event(
    body: FormEventIn,
    request: Request,
    background: BackgroundTasks,
    sessions: FormSessions = Depends(get_form_sessions),
    notifier: Ga4Notifier = Depends(get_analytics),
):
    """
    Interação do visitante com o formulário: abre (view), edita um campo
    (update) ou marca/desmarca uma preferência. Salva o rascunho e publica
    form_view/form_start/form_progress/preferences_selected depois da resposta.
    """
    client_id = _client_key(body.client_id, request)
    try:
        state, events = sessions.handle(client_id, body.action, field=body.field, value=body.value)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Campo desconhecido: {body.field}",
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    background.add_task(notifier.publish, events, body.client_id)
    return FormStateOut(
        progress=state.progress,
        last_completed_field=state.last_completed_field,
        events=[e.name for e in events],
    )


@router.get("/draft", response_model=DraftOut)
def get_draft(
    request: Request,
    client_id: Optional[str] = Query(default=None, max_length=128),
    sessions: FormSessions = Depends(get_form_sessions),
):
    data = sessions.snapshot(_client_key(client_id, request))
    return DraftOut(
        name=data.name,
        email=data.email,
        phone=data.phone,
        birthday=data.birthday,
        preferences=data.preferences,
        progress=progress_percentage(data),
    )
