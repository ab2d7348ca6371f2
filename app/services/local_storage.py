# app/services/local_storage.py
from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol


class LocalStorage(Protocol):
    """
    Persistência local chave/valor (equivalente ao localStorage do navegador).
    Pode lançar exceção (disco cheio, arquivo corrompido); quem usa trata.
    """

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Guarda todas as chaves num único arquivo JSON.
    Sobrevive a reinício do processo, mas não à remoção do arquivo.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Conteúdo inesperado em {self._path}: {type(data)}")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # escreve num temporário e troca, pra não deixar arquivo pela metade
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self._path)
        except Exception:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = str(value)
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


class NamespacedStorage:
    """
    Wrapper best-effort: prefixa as chaves e nunca deixa exceção da
    persistência escapar (loga e segue só em memória naquela chamada).
    """

    def __init__(self, backend: LocalStorage, namespace: str = "flor_") -> None:
        self._backend = backend
        self.namespace = namespace

    def key(self, name: str) -> str:
        return f"{self.namespace}{name}"

    def get(self, name: str) -> Optional[str]:
        try:
            return self._backend.get_item(self.key(name))
        except Exception as e:
            print(f"WARN: falha ao ler '{self.key(name)}' da persistência local:", repr(e))
            return None

    def set(self, name: str, value: str) -> bool:
        try:
            self._backend.set_item(self.key(name), value)
            return True
        except Exception as e:
            print(f"WARN: falha ao gravar '{self.key(name)}' na persistência local:", repr(e))
            return False

    def remove(self, name: str) -> bool:
        try:
            self._backend.remove_item(self.key(name))
            return True
        except Exception as e:
            print(f"WARN: falha ao remover '{self.key(name)}' da persistência local:", repr(e))
            return False


def build_local_storage(path: str, namespace: str) -> NamespacedStorage:
    backend: LocalStorage = JsonFileStorage(path) if path else MemoryStorage()
    return NamespacedStorage(backend, namespace=namespace)
