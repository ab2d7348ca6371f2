# app/services/offline_queue.py
from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, List

from app.services.lead_writer import RetryingLeadWriter, Succeeded
from app.services.local_storage import NamespacedStorage

OFFLINE_KEY = "offline_leads"


@dataclass(frozen=True)
class ReplaySummary:
    attempted: int = 0
    delivered: int = 0
    dropped: int = 0  # já existia no banco (23505)
    remaining: int = 0
    skipped: bool = False  # outro replay já estava rodando


class OfflineQueue:
    """
    Fila local (ordenada, append-only) de leads que não chegaram ao banco
    porque o cliente estava offline. Se o storage recusar a escrita, a entrada
    fica em memória até o próximo enqueue bem-sucedido ou o próximo replay.
    """

    def __init__(self, storage: NamespacedStorage) -> None:
        self._storage = storage
        # leitura+escrita da lista é um passo lógico só
        self._lock = threading.RLock()
        self._replaying = threading.Lock()
        self._memory: List[Dict[str, Any]] = []

    def _load(self) -> List[Dict[str, Any]]:
        raw = self._storage.get(OFFLINE_KEY)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except ValueError as e:
            print("WARN: fila offline corrompida, ignorando:", repr(e))
            return []
        return entries if isinstance(entries, list) else []

    def _save(self, entries: List[Dict[str, Any]]) -> bool:
        if not entries:
            return self._storage.remove(OFFLINE_KEY)
        return self._storage.set(OFFLINE_KEY, json.dumps(entries, ensure_ascii=False))

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._load() + list(self._memory)

    def __len__(self) -> int:
        return len(self.entries())

    def enqueue(self, payload: Dict[str, Any]) -> bool:
        """True se a fila foi persistida; False se a entrada ficou só em memória."""
        with self._lock:
            entries = self._load() + self._memory + [dict(payload)]
            saved = self._save(entries)
            if saved:
                self._memory = []
            else:
                self._memory.append(dict(payload))
        if saved:
            print("[LeadCapture] Lead salvo offline para reenvio posterior")
        else:
            print("ERRO [LeadCapture] Não foi possível salvar lead offline; mantido em memória")
        return saved

    def _discard(self, done: List[Dict[str, Any]]) -> int:
        """Remove uma ocorrência de cada entrada entregue, primeiro da memória."""
        with self._lock:
            entries = self._load()
            for entry in done:
                if entry in self._memory:
                    self._memory.remove(entry)
                elif entry in entries:
                    entries.remove(entry)
            self._save(entries)
            return len(entries) + len(self._memory)

    def replay(self, writer: RetryingLeadWriter) -> ReplaySummary:
        """
        Tenta reenviar cada entrada uma única vez, na ordem em que entrou.
        Duplicadas (23505) saem da fila; outras falhas ficam para o próximo ciclo.
        Nunca lança.
        """
        if not self._replaying.acquire(blocking=False):
            return ReplaySummary(skipped=True)

        try:
            pending = self.entries()
            if not pending:
                return ReplaySummary()

            print(f"[LeadCapture] Tentando reenviar {len(pending)} lead(s) offline...")
            done: List[Dict[str, Any]] = []
            delivered = dropped = 0

            for entry in pending:
                try:
                    outcome = writer.insert_once(entry)
                except Exception as e:
                    print("WARN: falha inesperada no reenvio offline:", repr(e))
                    continue

                if isinstance(outcome, Succeeded):
                    delivered += 1
                    done.append(entry)
                elif outcome.duplicate:
                    dropped += 1
                    done.append(entry)

            remaining = self._discard(done)
            if remaining == 0:
                print("[LeadCapture] Todos os leads offline reenviados com sucesso!")

            return ReplaySummary(
                attempted=len(pending),
                delivered=delivered,
                dropped=dropped,
                remaining=remaining,
            )
        finally:
            self._replaying.release()
