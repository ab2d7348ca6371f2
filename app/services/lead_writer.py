# app/services/lead_writer.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from app.services.lead_store import LeadStore, StoreError


# --------------------------------------------------
# Estados da escrita com retry:
#   Attempting(n) -> Succeeded | Retrying(n+1, delay) -> ... -> Failed
# --------------------------------------------------
@dataclass(frozen=True)
class Attempting:
    attempt: int


@dataclass(frozen=True)
class Retrying:
    attempt: int  # próxima tentativa
    delay: float
    error: StoreError


@dataclass(frozen=True)
class Succeeded:
    record: Dict[str, Any]
    attempts: int


@dataclass(frozen=True)
class Failed:
    error: StoreError
    attempts: int

    @property
    def duplicate(self) -> bool:
        return self.error.is_unique_violation


WriteState = Union[Attempting, Retrying, Succeeded, Failed]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff linear: tentativa 1 falhou -> 2s, tentativa 2 -> 4s..."""
        return attempt * self.base_delay

    def after_failure(self, attempt: int, error: StoreError) -> Union[Retrying, Failed]:
        # violação de unicidade não muda com retry
        if error.is_unique_violation or attempt >= self.max_attempts:
            return Failed(error=error, attempts=attempt)
        return Retrying(attempt=attempt + 1, delay=self.delay_for(attempt), error=error)


@dataclass
class WriteTrace:
    states: List[WriteState] = field(default_factory=list)

    @property
    def delays(self) -> List[float]:
        return [s.delay for s in self.states if isinstance(s, Retrying)]


class RetryingLeadWriter:
    """
    Faz o insert no Supabase com retry. `sleep` é injetável para os testes
    não dependerem do relógio.
    """

    def __init__(
        self,
        store: LeadStore,
        table: str = "leads",
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._table = table
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def step(self, state: WriteState, payload: Dict[str, Any]) -> WriteState:
        if isinstance(state, Attempting):
            try:
                record = self._store.insert(self._table, payload)
            except StoreError as e:
                return self.policy.after_failure(state.attempt, e)
            return Succeeded(record=record, attempts=state.attempt)

        if isinstance(state, Retrying):
            print(
                f"[LeadCapture] Tentativa {state.attempt - 1} falhou, retentando em {state.delay}s...",
                state.error.message,
            )
            self._sleep(state.delay)
            return Attempting(attempt=state.attempt)

        return state

    def write(self, payload: Dict[str, Any], trace: Optional[WriteTrace] = None) -> Union[Succeeded, Failed]:
        state: WriteState = Attempting(attempt=1)
        while not isinstance(state, (Succeeded, Failed)):
            if trace is not None:
                trace.states.append(state)
            state = self.step(state, payload)
        if trace is not None:
            trace.states.append(state)
        return state

    def insert_once(self, payload: Dict[str, Any]) -> Union[Succeeded, Failed]:
        """Uma única tentativa, sem retry (usado no replay da fila offline)."""
        try:
            record = self._store.insert(self._table, payload)
        except StoreError as e:
            return Failed(error=e, attempts=1)
        return Succeeded(record=record, attempts=1)
