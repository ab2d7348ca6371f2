# app/services/lead_store.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from supabase import Client

UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """Erro reportado pelo banco remoto (ou pela conexão com ele)."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION or "duplicate" in (self.message or "").lower()


class LeadStore(Protocol):
    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    def query(self, table: str, filters: Dict[str, Any], limit: int = 1) -> List[Dict[str, Any]]: ...


def _get_resp_data(resp: Any) -> Any:
    """
    Extrai resp.data sem quebrar se resp for None ou não tiver .data.
    """
    if resp is None:
        print("WARN: Supabase response is None")
        return None

    data = getattr(resp, "data", None)
    if data is None:
        print("WARN: Supabase response without data. Full resp:", resp)
    return data


def _to_store_error(e: Exception) -> StoreError:
    code = getattr(e, "code", None)
    message = getattr(e, "message", None) or str(e) or repr(e)
    return StoreError(str(message), code=str(code) if code is not None else None)


class SupabaseLeadStore:
    """Adapter do supabase-py: toda exceção sai como StoreError."""

    def __init__(self, supa: Client) -> None:
        self._supa = supa

    def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._supa.table(table).insert(record).execute()
        except Exception as e:
            raise _to_store_error(e) from e

        data = _get_resp_data(resp)
        if isinstance(data, list) and data:
            return data[0]
        if isinstance(data, dict) and data:
            return data
        # insert sem retorno: devolve o que mandamos
        return dict(record)

    def query(self, table: str, filters: Dict[str, Any], limit: int = 1) -> List[Dict[str, Any]]:
        try:
            q = self._supa.table(table).select("*")
            for column, value in filters.items():
                q = q.eq(column, value)
            resp = q.limit(limit).execute()
        except Exception as e:
            raise _to_store_error(e) from e

        data = _get_resp_data(resp) or []
        if isinstance(data, dict):
            data = [data]
        return data
