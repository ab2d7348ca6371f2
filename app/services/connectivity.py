# app/services/connectivity.py
from __future__ import annotations

from typing import Optional

import requests


class HttpConnectivity:
    """
    "Estou online?" = o host do banco responde a um HEAD.
    Qualquer resposta HTTP (até 5xx) conta como online; só erro de conexão
    ou timeout conta como offline.
    """

    def __init__(self, url: str, timeout: float = 3, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self._http = session or requests.Session()

    def __call__(self) -> bool:
        return self.is_online()

    def is_online(self) -> bool:
        if not self.url:
            # sem URL pra testar, assume online e deixa o erro aparecer
            return True
        try:
            self._http.head(self.url, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            print("WARN: sem conexão com", self.url, "-", repr(e))
            return False
        return True
