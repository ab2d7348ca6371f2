# app/services/abuse_gate.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from app.schemas.lead_capture import LeadFormData
from app.services.lead_store import LeadStore, StoreError
from app.services.lead_validation import sanitize
from app.services.local_storage import NamespacedStorage

RATE_LIMIT_KEY = "last_lead_submit"


def rate_limit_key(client_id: str = "") -> str:
    """Timestamp do último envio com sucesso, um por visitante."""
    return f"{RATE_LIMIT_KEY}:{client_id}" if client_id else RATE_LIMIT_KEY


GateStatus = Literal["pass", "honeypot", "rate_limited", "duplicate"]
DuplicateCheck = Literal["unique", "duplicate", "inconclusive", "skipped"]


@dataclass(frozen=True)
class GateDecision:
    status: GateStatus
    # "inconclusive" = consulta falhou e deixamos passar (fail-open)
    duplicate_check: DuplicateCheck = "skipped"
    detail: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.status == "pass"


class AbuseGate:
    """
    Anti-spam antes de qualquer escrita remota, sempre nesta ordem:
      1) honeypot preenchido -> finge sucesso
      2) rate-limit (último envio com sucesso do mesmo visitante há menos de N segundos)
      3) email já cadastrado no Supabase
    """

    def __init__(
        self,
        storage: NamespacedStorage,
        store: LeadStore,
        table: str = "leads",
        rate_limit_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._store = store
        self._table = table
        self._rate_limit_ms = rate_limit_seconds * 1000
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_honeypot_triggered(self, form: LeadFormData) -> bool:
        return bool(form.honeypot)

    def is_rate_limited(self, client_id: str = "") -> bool:
        raw = self._storage.get(rate_limit_key(client_id))
        if not raw:
            return False
        try:
            last_submit = int(raw)
        except ValueError:
            print("WARN: timestamp de rate-limit inválido, ignorando:", repr(raw))
            return False
        return self._now_ms() - last_submit < self._rate_limit_ms

    def record_submission(self, client_id: str = "") -> None:
        self._storage.set(rate_limit_key(client_id), str(self._now_ms()))

    def check_duplicate_email(self, email: str) -> DuplicateCheck:
        normalized = sanitize(email).lower()
        try:
            rows = self._store.query(self._table, {"email": normalized}, limit=1)
        except StoreError as e:
            print("[LeadCapture] Erro ao verificar email duplicado:", e.message)
            return "inconclusive"  # na dúvida, deixa seguir; a constraint do banco pega
        return "duplicate" if rows else "unique"

    def evaluate(self, form: LeadFormData, client_id: str = "") -> GateDecision:
        if self.is_honeypot_triggered(form):
            print("[LeadCapture] Honeypot ativado - spam bloqueado")
            return GateDecision(status="honeypot")

        if self.is_rate_limited(client_id):
            return GateDecision(status="rate_limited")

        dup = self.check_duplicate_email(form.email)
        if dup == "duplicate":
            return GateDecision(status="duplicate", duplicate_check=dup)
        return GateDecision(status="pass", duplicate_check=dup)
