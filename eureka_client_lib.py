# eureka_client_lib.py
import logging
import socket
import threading
from typing import List, Optional, Tuple

from eureka_codec import EurekaCodec
from eureka_errors import TransportError
from eureka_transport import RequestsTransport
from models import ApplicationRecord, ApplicationsRecord, InstanceRecord, InstanceStatus

URI_APPS = "/apps/"
URI_INSTANCES = "/instances/"


class MetricsStore:
    def __init__(self):
        self._lock = threading.Lock()
        self.successful_registrations_total = 0
        self.registration_errors_total = 0
        self.heartbeats_total = 0
        self.heartbeat_errors_total = 0
        self.reregistrations_total = 0
        self.service_registered_status = {}

    def increment_successful_registrations(self):
        with self._lock:
            self.successful_registrations_total += 1

    def increment_registration_errors(self):
        with self._lock:
            self.registration_errors_total += 1

    def increment_heartbeats(self):
        with self._lock:
            self.heartbeats_total += 1

    def increment_heartbeat_errors(self):
        with self._lock:
            self.heartbeat_errors_total += 1

    def increment_reregistrations(self):
        with self._lock:
            self.reregistrations_total += 1

    def set_service_registered_status(self, service_name, status: int):
        with self._lock:
            self.service_registered_status[service_name] = status

    def get_metrics_data(self):
        with self._lock:
            return {
                "successful_registrations_total": self.successful_registrations_total,
                "registration_errors_total": self.registration_errors_total,
                "heartbeats_total": self.heartbeats_total,
                "heartbeat_errors_total": self.heartbeat_errors_total,
                "reregistrations_total": self.reregistrations_total,
                "service_registered_status": self.service_registered_status.copy()
            }


def get_local_ip() -> str:
    """Erste IPv4-Adresse des Hosts, die keine Loopback-Adresse ist, sonst ""."""
    try:
        _, _, addresses = socket.gethostbyname_ex(socket.gethostname())
    except (socket.gaierror, socket.herror):
        addresses = []

    for address in addresses:
        if not address.startswith("127."):
            return address

    # Ohne Namensauflösung: Routing-Tabelle über einen UDP-Socket befragen (es wird nichts gesendet)
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(("10.255.255.255", 1))
            address = probe.getsockname()[0]
    except OSError:
        return ""
    return "" if address.startswith("127.") else address


class EurekaHttpClient:
    """
    Übersetzt Registrierung, Heartbeat, Statusänderung und Abfragen in HTTP-Requests
    gegen den aktuell aktiven Eureka-Server aus service_urls.

    Bei einem Transportfehler wird vor dem nächsten Aufruf reihum auf den nächsten
    Server gewechselt; der fehlgeschlagene Aufruf selbst wird nicht wiederholt.
    Der Heartbeat-Thread und Abfragen aus anderen Threads dürfen denselben Client
    nutzen; der Wechsel des Index läuft unter einem Lock.
    """

    def __init__(self, service_urls: List[str], username: Optional[str] = None, password: Optional[str] = None,
                 is_json: bool = True, transport=None, logger=None):
        if not service_urls:
            raise ValueError("service_urls darf nicht leer sein")

        self._service_urls = [url.rstrip("/") for url in service_urls]
        self._url_index = 0
        self._url_lock = threading.Lock()
        self.username = username
        self.password = password
        self.codec = EurekaCodec(is_json)
        self.headers = {
            "Accept": self.codec.content_type,
            "Content-Type": self.codec.content_type,
        }
        self.transport = transport or RequestsTransport()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def service_url(self) -> str:
        with self._url_lock:
            return self._service_urls[self._url_index]

    @property
    def url_index(self) -> int:
        return self._url_index

    @property
    def service_urls(self) -> List[str]:
        return list(self._service_urls)

    def register(self, instance: InstanceRecord) -> bool:
        body = self.codec.encode_instance(instance)
        url = f"{self.service_url}{URI_APPS}{instance.app}"
        self.logger.debug(f"Payload für Registrierung:\n{body.decode('utf-8')}")

        _, status_code = self._request("POST", url, body=body)
        return status_code in (200, 204)

    def deregister(self, app_name: str, instance_id: str) -> bool:
        url = f"{self.service_url}{URI_APPS}{app_name}/{instance_id}"
        _, status_code = self._request("DELETE", url)
        return status_code == 200

    def send_heartbeat(self, app_name: str, instance_id: str, status, last_dirty_timestamp,
                       overridden_status=None) -> int:
        url = (f"{self.service_url}{URI_APPS}{app_name}/{instance_id}"
               f"?status={_status_value(status)}&lastDirtyTimestamp={last_dirty_timestamp}")
        if overridden_status:
            url += f"&overriddenstatus={_status_value(overridden_status)}"

        _, status_code = self._request("PUT", url)
        return status_code

    def update_status(self, app_name: str, instance_id: str, status, last_dirty_timestamp) -> bool:
        url = (f"{self.service_url}{URI_APPS}{app_name}/{instance_id}/status"
               f"?value={_status_value(status)}&lastDirtyTimestamp={last_dirty_timestamp}")
        _, status_code = self._request("PUT", url)
        return status_code == 200

    def get_applications(self, *regions: str) -> ApplicationsRecord:
        url = f"{self.service_url}{URI_APPS}"
        if regions:
            url += "?regions=" + ",".join(regions)
        return self._query(url, ApplicationsRecord)

    def get_application(self, app_name: str) -> ApplicationRecord:
        return self._query(f"{self.service_url}{URI_APPS}{app_name}", ApplicationRecord)

    def get_instance(self, app_name: str, instance_id: str) -> InstanceRecord:
        return self._query(f"{self.service_url}{URI_APPS}{app_name}/{instance_id}", InstanceRecord)

    def get_instance_by_id(self, instance_id: str) -> InstanceRecord:
        return self._query(f"{self.service_url}{URI_INSTANCES}{instance_id}", InstanceRecord)

    def _query(self, url: str, record_cls):
        body, _ = self._request("GET", url)
        return self.codec.decode(body, record_cls)

    def _request(self, method: str, url: str, body: bytes = None) -> Tuple[bytes, int]:
        try:
            return self.transport.perform(method, url, self.headers, body=body,
                                          username=self.username, password=self.password)
        except TransportError:
            self._rotate()
            raise

    def _rotate(self):
        if len(self._service_urls) <= 1:
            return
        with self._url_lock:
            previous = self._service_urls[self._url_index]
            self._url_index = (self._url_index + 1) % len(self._service_urls)
            current = self._service_urls[self._url_index]
        self.logger.warning(f"Wechsle Eureka-Server von {previous} zu {current}")


def _status_value(status) -> str:
    return status.value if isinstance(status, InstanceStatus) else str(status)
