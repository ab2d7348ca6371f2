# app/schemas/lead_capture.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Resultado de uma tentativa de envio (taxonomia do pipeline)
Outcome = Literal[
    "validation_failed",
    "rate_limited",
    "duplicate_email",
    "honeypot_triggered",
    "queued_offline",
    "store_error",
    "success",
]

LeadQuality = Literal["low", "medium", "high"]

# campo -> mensagem; ausência da chave = campo válido
ValidationErrors = Dict[str, str]


class LeadFormData(BaseModel):
    """
    Rascunho editado pelo usuário no formulário público.
    `website` é o honeypot: humanos não veem o campo, bots preenchem.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    email: str = ""
    phone: str = ""
    birthday: str = ""  # DD/MM/AAAA
    preferences: List[str] = Field(default_factory=list)
    terms_accepted: bool = Field(default=False, alias="terms")
    honeypot: str = Field(default="", alias="website")


class LeadInsert(BaseModel):
    """Payload normalizado enviado ao Supabase (e guardado na fila offline)."""
    name: str
    email: str
    phone: str
    birthday: Optional[str] = None  # yyyy-mm-dd
    preferences: Optional[str] = None
    promo_code: Optional[str] = None


class LeadRecord(BaseModel):
    # espelho da tabela leads
    id: Optional[str] = None
    name: str
    email: str
    phone: str
    birthday: Optional[str] = None
    preferences: Optional[str] = None
    promo_code: Optional[str] = None
    created_at: Optional[datetime] = None


class SubmitResult(BaseModel):
    success: bool
    message: str
    outcome: Outcome
    record: Optional[LeadRecord] = None
    errors: ValidationErrors = Field(default_factory=dict)


class LeadScoreInputs(BaseModel):
    """Sinais de comportamento coletados na página."""
    time_on_page_seconds: float = Field(default=0, ge=0, alias="timeOnPage")
    scroll_depth_percent: float = Field(default=0, ge=0, le=100, alias="scrollDepth")
    cta_clicks: int = Field(default=0, ge=0, alias="ctaClicks")
    section_views: int = Field(default=0, ge=0, alias="sectionViews")
    completed_optional_fields: int = Field(default=0, ge=0, alias="completedOptionalFields")

    model_config = ConfigDict(populate_by_name=True)


class Attribution(BaseModel):
    utm_source: str = "direct"
    utm_medium: str = "none"
    utm_campaign: str = "none"
    utm_term: str = ""
    utm_content: str = ""
    referrer: str = "direct"
    landing_page: str = "/"
    device_type: Literal["mobile", "desktop"] = "desktop"
    timestamp: Optional[str] = None


class PipelineEvent(BaseModel):
    name: str
    params: Dict[str, Any] = Field(default_factory=dict)


class SubmissionReport(BaseModel):
    """
    Resultado do pipeline + eventos de analytics na ordem em que ocorreram.
    Os eventos só são despachados para o GA4 na borda (router).
    """
    result: SubmitResult
    events: List[PipelineEvent] = Field(default_factory=list)
    quality: Optional[LeadQuality] = None


# --------------------------------------------------
# Requests / responses dos endpoints
# --------------------------------------------------
class LeadSubmitInput(BaseModel):
    # id do visitante gerado no navegador; sem ele, usamos o IP
    client_id: Optional[str] = Field(default=None, max_length=128)
    form: LeadFormData
    score: Optional[LeadScoreInputs] = None
    attribution: Optional[Attribution] = None


class FieldValidationOut(BaseModel):
    field: str
    error: Optional[str] = None


# valores aceitos num campo do formulário (texto, checkbox, lista de tags)
FieldValue = Union[bool, str, List[str], None]


class FieldValueIn(BaseModel):
    value: FieldValue = None


class FormValidationOut(BaseModel):
    valid: bool
    errors: ValidationErrors


class ProgressOut(BaseModel):
    progress: int
    last_completed_field: Optional[str] = None


class FormatIn(BaseModel):
    phone: str = ""
    birthday: str = ""


class FormatOut(BaseModel):
    phone: str
    birthday: str


class OfflineQueueOut(BaseModel):
    pending: int


class FormEventIn(BaseModel):
    """Interação do visitante com o formulário (view, digitação, preferências)."""
    client_id: Optional[str] = Field(default=None, max_length=128)
    action: Literal["view", "update", "toggle_preference"]
    field: Optional[str] = None
    value: FieldValue = None


class FormStateOut(BaseModel):
    progress: int
    last_completed_field: Optional[str] = None
    events: List[str] = Field(default_factory=list)


class DraftOut(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    birthday: str = ""
    preferences: List[str] = Field(default_factory=list)
    progress: int = 0
