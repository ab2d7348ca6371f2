# app/services/analytics.py
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests

from app.schemas.lead_capture import Attribution, LeadScoreInputs, PipelineEvent
from app.services.lead_score import calculate_lead_score

FORM_NAME = "lead_capture"
GA4_COLLECT_URL = "https://www.google-analytics.com/mp/collect"

_MOBILE_UA_RE = re.compile(r"Mobile|Android|iPhone", re.IGNORECASE)


# --------------------------------------------------
# Atribuição (UTM, referrer, device)
# --------------------------------------------------
def capture_attribution(
    query: Mapping[str, str],
    referrer: Optional[str] = None,
    user_agent: Optional[str] = None,
    landing_page: str = "/",
) -> Attribution:
    return Attribution(
        utm_source=query.get("utm_source") or "direct",
        utm_medium=query.get("utm_medium") or "none",
        utm_campaign=query.get("utm_campaign") or "none",
        utm_term=query.get("utm_term") or "",
        utm_content=query.get("utm_content") or "",
        referrer=referrer or "direct",
        landing_page=landing_page or "/",
        device_type="mobile" if _MOBILE_UA_RE.search(user_agent or "") else "desktop",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# --------------------------------------------------
# Eventos do formulário
# --------------------------------------------------
def form_view_event() -> PipelineEvent:
    return PipelineEvent(name="form_view", params={"form_name": FORM_NAME, "form_location": "landing_page"})


def form_start_event(first_field: str) -> PipelineEvent:
    return PipelineEvent(name="form_start", params={"form_name": FORM_NAME, "first_field": first_field})


def form_progress_event(percentage: int, last_field: Optional[str]) -> PipelineEvent:
    return PipelineEvent(
        name="form_progress",
        params={
            "form_name": FORM_NAME,
            "progress_percentage": percentage,
            "last_field_completed": last_field or "",
        },
    )


def preferences_selected_event(prefs: List[str]) -> PipelineEvent:
    return PipelineEvent(
        name="preferences_selected",
        params={"preferences_count": len(prefs), "preferences": ",".join(prefs)},
    )


def form_submit_event(fields_count: int) -> PipelineEvent:
    return PipelineEvent(name="form_submit", params={"form_name": FORM_NAME, "form_fields_filled": fields_count})


def generate_lead_event(attribution: Optional[Attribution]) -> PipelineEvent:
    return PipelineEvent(
        name="generate_lead",
        params={
            "currency": "BRL",
            "value": 0,
            "lead_source": attribution.utm_source if attribution else "direct",
        },
    )


def form_error_event(error_type: str, error_message: str) -> PipelineEvent:
    return PipelineEvent(
        name="form_error",
        params={"form_name": FORM_NAME, "error_type": error_type, "error_message": error_message},
    )


def high_intent_lead_event(inputs: LeadScoreInputs) -> PipelineEvent:
    return PipelineEvent(
        name="high_intent_lead",
        params={
            "quality_score": calculate_lead_score(inputs),
            "time_on_page": inputs.time_on_page_seconds,
            "scroll_depth": inputs.scroll_depth_percent,
            "interactions": inputs.cta_clicks + inputs.section_views,
        },
    )


# --------------------------------------------------
# Envio para o GA4 (Measurement Protocol)
# --------------------------------------------------
class Ga4Notifier:
    """
    Fire-and-forget: nenhum erro daqui pode derrubar o pipeline.
    Sem GA4 configurado, só imprime os eventos.
    """

    def __init__(
        self,
        measurement_id: str = "",
        api_secret: str = "",
        timeout: float = 5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.measurement_id = measurement_id
        self.api_secret = api_secret
        self.timeout = timeout
        self._http = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.measurement_id and self.api_secret)

    def publish(self, events: Iterable[PipelineEvent], client_id: Optional[str] = None) -> None:
        events = list(events)
        if not events:
            return

        if not self.enabled:
            for ev in events:
                print(f"[GA4] {ev.name}", ev.params)
            return

        payload: Dict[str, Any] = {
            "client_id": client_id or str(uuid.uuid4()),
            "events": [{"name": ev.name, "params": ev.params} for ev in events],
        }

        try:
            resp = self._http.post(
                GA4_COLLECT_URL,
                params={"measurement_id": self.measurement_id, "api_secret": self.api_secret},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            print("WARN: falha ao enviar eventos para o GA4:", repr(e))
            return

        if resp.status_code >= 400:
            print("WARN: GA4 retornou status", resp.status_code, resp.text)
