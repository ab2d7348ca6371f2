# app/services/lead_form_state.py
from __future__ import annotations

import json
import threading
from collections import OrderedDict
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from app.schemas.lead_capture import LeadFormData, PipelineEvent
from app.services import analytics
from app.services.lead_validation import (
    PREFERENCES_OPTIONS,
    check_field_type,
    digits_only,
    format_birthday_input,
    format_phone_input,
)
from app.services.local_storage import NamespacedStorage

DRAFT_KEY = "lead_form_draft"
PROGRESS_MILESTONES = (33, 66, 100)
TRACKED_FIELDS = 5  # name, email, phone, birthday, preferences
MAX_FORM_SESSIONS = 1000


def draft_key(client_id: str = "") -> str:
    return f"{DRAFT_KEY}:{client_id}" if client_id else DRAFT_KEY


def count_filled_fields(data: LeadFormData) -> int:
    count = 0
    if data.name.strip():
        count += 1
    if data.email.strip():
        count += 1
    if len(digits_only(data.phone)) >= 10:
        count += 1
    if data.birthday.strip():
        count += 1
    if data.preferences:
        count += 1
    return count


def progress_percentage(data: LeadFormData) -> int:
    # round() do Python arredonda .5 para o par; aqui os valores são múltiplos de 20
    return int(round(count_filled_fields(data) / TRACKED_FIELDS * 100))


def last_completed_field(data: LeadFormData) -> Optional[str]:
    """Campo mais "avançado" preenchido, só para anotar o evento de progresso."""
    if data.preferences:
        return "preferences"
    if data.birthday.strip():
        return "birthday"
    if len(digits_only(data.phone)) >= 10:
        return "phone"
    if data.email.strip():
        return "email"
    if data.name.strip():
        return "name"
    return None


class LeadFormState:
    """
    Estado do formulário de uma instância: rascunho, progresso e os eventos
    de analytics que cada mudança gera (form_start, form_progress...).
    O rascunho é salvo na persistência local a cada alteração.
    """

    EDITABLE_FIELDS = ("name", "email", "phone", "birthday", "terms", "website")

    def __init__(
        self,
        storage: Optional[NamespacedStorage] = None,
        data: Optional[LeadFormData] = None,
        client_id: str = "",
    ) -> None:
        self._storage = storage
        self._draft_key = draft_key(client_id)
        self.data = data or self._restore_draft() or LeadFormData()
        self._viewed = False
        self._started = False
        self._last_milestone = 0

    # ----------------------------------------------
    # Rascunho
    # ----------------------------------------------
    def _restore_draft(self) -> Optional[LeadFormData]:
        if self._storage is None:
            return None
        raw = self._storage.get(self._draft_key)
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            # honeypot e termos nunca voltam do rascunho
            parsed.pop("honeypot", None)
            parsed.pop("terms_accepted", None)
            return LeadFormData(**parsed)
        except (ValueError, TypeError, ValidationError) as e:
            print("WARN: rascunho do formulário inválido, ignorando:", repr(e))
            return None

    def save_draft(self) -> None:
        if self._storage is None:
            return
        draft = self.data.model_dump(exclude={"honeypot", "terms_accepted"})
        self._storage.set(self._draft_key, json.dumps(draft, ensure_ascii=False))

    def clear_draft(self) -> None:
        if self._storage is not None:
            self._storage.remove(self._draft_key)

    # ----------------------------------------------
    # Progresso
    # ----------------------------------------------
    @property
    def progress(self) -> int:
        return progress_percentage(self.data)

    @property
    def last_completed_field(self) -> Optional[str]:
        return last_completed_field(self.data)

    def _milestone_events(self) -> List[PipelineEvent]:
        events: List[PipelineEvent] = []
        pct = self.progress
        for milestone in PROGRESS_MILESTONES:
            if pct >= milestone and self._last_milestone < milestone:
                events.append(analytics.form_progress_event(milestone, self.last_completed_field))
                self._last_milestone = milestone
        return events

    def _after_change(self, field: str) -> List[PipelineEvent]:
        events: List[PipelineEvent] = []
        if not self._started:
            self._started = True
            events.append(analytics.form_start_event(field))
        self.save_draft()
        events.extend(self._milestone_events())
        return events

    # ----------------------------------------------
    # Mudanças vindas da UI
    # ----------------------------------------------
    def view(self) -> List[PipelineEvent]:
        if self._viewed:
            return []
        self._viewed = True
        return [analytics.form_view_event()]

    def update(self, field: str, value: Any) -> List[PipelineEvent]:
        if field not in self.EDITABLE_FIELDS:
            raise KeyError(field)

        if field == "phone":
            self.data.phone = format_phone_input(str(value or ""))
        elif field == "birthday":
            self.data.birthday = format_birthday_input(str(value or ""))
        elif field == "terms":
            self.data.terms_accepted = value is True
        elif field == "website":
            self.data.honeypot = str(value or "")
        else:
            setattr(self.data, field, str(value or ""))

        return self._after_change(field)

    def toggle_preference(self, pref: str) -> List[PipelineEvent]:
        current = self.data.preferences
        if pref in current:
            self.data.preferences = [p for p in current if p != pref]
        else:
            self.data.preferences = [*current, pref]

        events = [analytics.preferences_selected_event(self.data.preferences)]
        events.extend(self._after_change("preferences"))
        return events

    def reset(self) -> None:
        self.data = LeadFormData()
        self._started = False
        self._last_milestone = 0
        self.clear_draft()


class FormSessions:
    """
    Um LeadFormState por visitante, em memória do processo.
    Acima de `max_sessions` o menos usado sai (o rascunho continua no storage).
    """

    def __init__(self, storage: Optional[NamespacedStorage], max_sessions: int = MAX_FORM_SESSIONS) -> None:
        self._storage = storage
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, LeadFormState]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _get(self, client_id: str) -> LeadFormState:
        state = self._sessions.pop(client_id, None)
        if state is None:
            state = LeadFormState(storage=self._storage, client_id=client_id)
        self._sessions[client_id] = state
        while len(self._sessions) > self._max_sessions:
            self._sessions.popitem(last=False)
        return state

    def snapshot(self, client_id: str) -> LeadFormData:
        with self._lock:
            return self._get(client_id).data.model_copy(deep=True)

    def handle(
        self,
        client_id: str,
        action: str,
        field: Optional[str] = None,
        value: Any = None,
    ) -> Tuple[LeadFormState, List[PipelineEvent]]:
        """
        Aplica uma interação da UI. KeyError para campo desconhecido,
        ValueError para valor com tipo errado ou preferência fora do catálogo.
        """
        with self._lock:
            state = self._get(client_id)

            if action == "view":
                return state, state.view()

            if action == "toggle_preference":
                if not isinstance(value, str) or value not in PREFERENCES_OPTIONS:
                    raise ValueError(f"Preferência inválida: {value!r}")
                return state, state.toggle_preference(value)

            if field not in LeadFormState.EDITABLE_FIELDS:
                raise KeyError(field)
            error = check_field_type(field, value)
            if error:
                raise ValueError(error)
            return state, state.update(field, value)

    def discard(self, client_id: str) -> None:
        with self._lock:
            self._sessions.pop(client_id, None)
