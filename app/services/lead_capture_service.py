# app/services/lead_capture_service.py
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Set

from pydantic import ValidationError

from app.schemas.lead_capture import (
    Attribution,
    LeadFormData,
    LeadRecord,
    LeadScoreInputs,
    Outcome,
    PipelineEvent,
    SubmissionReport,
    SubmitResult,
    ValidationErrors,
)
from app.services import analytics
from app.services.abuse_gate import AbuseGate
from app.services.lead_form_state import count_filled_fields, draft_key
from app.services.lead_score import calculate_lead_score
from app.services.lead_store import LeadStore
from app.services.lead_validation import build_payload, validate_lead_form
from app.services.lead_writer import RetryingLeadWriter, RetryPolicy, Succeeded
from app.services.local_storage import NamespacedStorage
from app.services.offline_queue import OfflineQueue, ReplaySummary

MSG_SUCCESS = "Cadastro realizado com sucesso! Em breve entraremos em contato."
MSG_HONEYPOT = "Cadastro realizado com sucesso!"
MSG_VALIDATION = "Verifique os campos destacados antes de enviar."
MSG_RATE_LIMIT = "Aguarde um momento antes de enviar novamente."
MSG_DUPLICATE = "Este email já está cadastrado."
MSG_OFFLINE = "Você está offline. Seu cadastro será enviado assim que a conexão for restabelecida."
MSG_STORE_ERROR = "Erro ao realizar cadastro. Tente novamente em alguns instantes."


class LeadCapturePipeline:
    """
    Envio resiliente de um lead:
      honeypot -> validação -> rate-limit -> email duplicado
      -> insert com retry -> (offline? fila local : erro)

    Nunca lança: todo caminho termina num SubmitResult. Os eventos de
    analytics voltam junto no SubmissionReport, na ordem em que ocorreram.
    """

    def __init__(
        self,
        store: LeadStore,
        storage: NamespacedStorage,
        is_online: Callable[[], bool],
        table: str = "leads",
        rate_limit_seconds: float = 60.0,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._is_online = is_online
        self.gate = AbuseGate(
            storage=storage,
            store=store,
            table=table,
            rate_limit_seconds=rate_limit_seconds,
            clock=clock,
        )
        self.writer = RetryingLeadWriter(store=store, table=table, policy=policy, sleep=sleep)
        self.queue = OfflineQueue(storage)
        # um envio por vez por visitante; o segundo espera o primeiro
        self._in_flight: Set[str] = set()
        self._in_flight_changed = threading.Condition()

    # ----------------------------------------------
    # Helpers
    # ----------------------------------------------
    @staticmethod
    def _result(
        outcome: Outcome,
        success: bool,
        message: str,
        record: Optional[LeadRecord] = None,
        errors: Optional[ValidationErrors] = None,
    ) -> SubmitResult:
        return SubmitResult(
            success=success,
            message=message,
            outcome=outcome,
            record=record,
            errors=errors or {},
        )

    def _online(self) -> bool:
        try:
            return bool(self._is_online())
        except Exception as e:
            print("WARN: falha ao checar conectividade, assumindo online:", repr(e))
            return True

    @contextmanager
    def _client_slot(self, client_id: str) -> Iterator[None]:
        with self._in_flight_changed:
            while client_id in self._in_flight:
                self._in_flight_changed.wait()
            self._in_flight.add(client_id)
        try:
            yield
        finally:
            with self._in_flight_changed:
                self._in_flight.discard(client_id)
                self._in_flight_changed.notify_all()

    # ----------------------------------------------
    # Envio
    # ----------------------------------------------
    def submit(
        self,
        form: LeadFormData,
        score: Optional[LeadScoreInputs] = None,
        attribution: Optional[Attribution] = None,
        client_id: str = "",
    ) -> SubmissionReport:
        """Rate-limit e rascunho são por `client_id`; envios do mesmo visitante saem um de cada vez."""
        with self._client_slot(client_id):
            events: List[PipelineEvent] = []
            try:
                return self._submit(form, score, attribution, client_id, events)
            except Exception as e:
                print("ERRO [LeadCapture] falha inesperada no envio:", repr(e))
                events.append(analytics.form_error_event("api_error", str(e)))
                return SubmissionReport(
                    result=self._result("store_error", False, MSG_STORE_ERROR),
                    events=events,
                )

    def _submit(
        self,
        form: LeadFormData,
        score: Optional[LeadScoreInputs],
        attribution: Optional[Attribution],
        client_id: str,
        events: List[PipelineEvent],
    ) -> SubmissionReport:
        # 1) Honeypot: finge sucesso para não alertar o bot
        if self.gate.is_honeypot_triggered(form):
            print("[LeadCapture] Honeypot ativado - spam bloqueado")
            return SubmissionReport(
                result=self._result("honeypot_triggered", True, MSG_HONEYPOT),
                events=events,
            )

        # 2) Validação completa
        errors = validate_lead_form(form)
        if errors:
            events.append(analytics.form_error_event("validation", ", ".join(sorted(errors))))
            return SubmissionReport(
                result=self._result("validation_failed", False, MSG_VALIDATION, errors=errors),
                events=events,
            )

        # 3) Rate-limit + email duplicado
        decision = self.gate.evaluate(form, client_id)
        if decision.status == "rate_limited":
            events.append(analytics.form_error_event("rate_limit", MSG_RATE_LIMIT))
            return SubmissionReport(
                result=self._result("rate_limited", False, MSG_RATE_LIMIT),
                events=events,
            )

        events.append(analytics.form_submit_event(count_filled_fields(form)))

        if decision.status == "duplicate":
            events.append(analytics.form_error_event("email_duplicate", MSG_DUPLICATE))
            return SubmissionReport(
                result=self._result("duplicate_email", False, MSG_DUPLICATE),
                events=events,
            )

        # 4) Insert com retry
        payload = build_payload(form).model_dump()
        outcome = self.writer.write(payload)

        if isinstance(outcome, Succeeded):
            return self._on_success(form, outcome.record, score, attribution, client_id, events)

        if outcome.duplicate:
            events.append(analytics.form_error_event("api_error", MSG_DUPLICATE))
            return SubmissionReport(
                result=self._result("duplicate_email", False, MSG_DUPLICATE),
                events=events,
            )

        print("ERRO [LeadCapture] Falha após retries:", outcome.error.message)

        # 5) Sem conexão: guarda na fila local (ou em memória, se o storage falhar) e libera o usuário
        if not self._online():
            self.queue.enqueue(payload)
            return SubmissionReport(
                result=self._result("queued_offline", True, MSG_OFFLINE),
                events=events,
            )

        events.append(analytics.form_error_event("network_error", outcome.error.message or "Unknown error"))
        return SubmissionReport(
            result=self._result("store_error", False, MSG_STORE_ERROR),
            events=events,
        )

    def _on_success(
        self,
        form: LeadFormData,
        row: dict,
        score: Optional[LeadScoreInputs],
        attribution: Optional[Attribution],
        client_id: str,
        events: List[PipelineEvent],
    ) -> SubmissionReport:
        self.gate.record_submission(client_id)
        self._storage.remove(draft_key(client_id))

        events.append(analytics.generate_lead_event(attribution))

        quality = None
        if score is not None:
            optional_filled = sum(1 for filled in (form.birthday.strip(), form.preferences) if filled)
            score = score.model_copy(update={"completed_optional_fields": optional_filled})
            quality = calculate_lead_score(score)
            events.append(analytics.high_intent_lead_event(score))

        try:
            record: Optional[LeadRecord] = LeadRecord.model_validate(row)
        except ValidationError as e:
            print("WARN: registro retornado pelo Supabase em formato inesperado:", repr(e))
            record = None

        return SubmissionReport(
            result=self._result("success", True, MSG_SUCCESS, record=record),
            events=events,
            quality=quality,
        )

    # ----------------------------------------------
    # Fila offline
    # ----------------------------------------------
    def replay_offline_queue(self) -> ReplaySummary:
        """Best-effort: erros só vão para o log."""
        try:
            return self.queue.replay(self.writer)
        except Exception as e:
            print("WARN: falha ao reenviar fila offline:", repr(e))
            return ReplaySummary(remaining=len(self.queue))

    def pending_offline(self) -> int:
        return len(self.queue)
