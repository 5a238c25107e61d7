# eureka_transport.py
import logging
from typing import Dict, Optional, Tuple

import requests

from eureka_errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class RequestsTransport:
    """
    Führt genau einen HTTP-Request gegen die Registry aus.
    Den Body liest nur ein GET; schreibende Aufrufe brauchen nur den Statuscode.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def perform(self, method: str, url: str, headers: Dict[str, str], body: Optional[bytes] = None,
                username: Optional[str] = None, password: Optional[str] = None) -> Tuple[bytes, int]:
        auth = (username, password or "") if username else None
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, headers=headers, data=body, auth=auth,
                                            timeout=self.timeout)
            response_body = response.content if method == "GET" else b""
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Verbindungsfehler bei {method} {url}: {e}", url=url) from e

        return response_body, response.status_code

    def close(self):
        self.session.close()
