# discovery_client.py
import logging
import threading
from enum import Enum
from typing import Optional

from eureka_client_lib import EurekaHttpClient, MetricsStore, get_local_ip
from eureka_errors import EurekaError, ParameterError
from models import (DEFAULT_DATA_CENTER_INFO_CLASS, DEFAULT_HOST_NAME, DEFAULT_LEASE_DURATION,
                    DEFAULT_LEASE_RENEWAL_INTERVAL, ApplicationRecord, ApplicationsRecord, ClientConfig,
                    DataCenterInfo, InstanceRecord, InstanceStatus, LeaseInfo, PortInfo, current_millis)


class LifecycleState(str, Enum):
    UNREGISTERED = "UNREGISTERED"
    REGISTERED = "REGISTERED"
    REGISTERED_DIRTY = "REGISTERED_DIRTY"
    SHUTTING_DOWN = "SHUTTING_DOWN"
    TERMINATED = "TERMINATED"


def validate_config(config: ClientConfig):
    if not config.appName or not config.instanceId or not config.serviceUrls:
        raise ParameterError("parameter error: appName, instanceId und serviceUrls sind Pflichtfelder")


def build_instance_record(config: ClientConfig) -> InstanceRecord:
    renewal_interval = config.renewalIntervalInSecs if config.renewalIntervalInSecs > 0 else DEFAULT_LEASE_RENEWAL_INTERVAL
    duration = config.durationInSecs if config.durationInSecs > 0 else DEFAULT_LEASE_DURATION
    host_name = config.hostName or DEFAULT_HOST_NAME
    ip_addr = config.ipAddr or get_local_ip()

    # URLs abhängig von SSL
    if config.sslPreferred:
        scheme, active_port = "https", config.securePort
    else:
        scheme, active_port = "http", config.port

    now = current_millis()
    return InstanceRecord(
        instance_id=config.instanceId,
        host_name=host_name,
        app=config.appName,
        ip_addr=ip_addr,
        status=InstanceStatus.UP,
        port=PortInfo(port=config.port, enabled=not config.sslPreferred),
        secure_port=PortInfo(port=config.securePort, enabled=config.sslPreferred),
        data_center_info=DataCenterInfo(class_name=DEFAULT_DATA_CENTER_INFO_CLASS, name=config.dataCenterInfoName),
        lease_info=LeaseInfo(renewal_interval_in_secs=renewal_interval, duration_in_secs=duration),
        metadata={"management.port": str(config.port)},
        home_page_url=f"{scheme}://{host_name}:{active_port}/",
        status_page_url=f"{scheme}://{host_name}:{active_port}{config.infoEndpointPath}",
        health_check_url=f"{scheme}://{host_name}:{active_port}{config.healthEndpointPath}",
        vip_address=config.appName,
        secure_vip_address=config.appName,
        last_updated_timestamp=now,
        last_dirty_timestamp=now,
    )


class DiscoveryClient:
    """
    Verwaltet den Lebenszyklus einer Instanz bei Eureka: Registrierung beim Start,
    Heartbeat-Schleife in einem eigenen Thread, Neuregistrierung wenn die Registry
    die Instanz verloren hat (404) und Deregistrierung beim Herunterfahren.

    Der Datensatz wird nur vom Heartbeat-Thread verändert; die Ticks laufen
    streng nacheinander.
    """

    def __init__(self, config: ClientConfig, http_client: EurekaHttpClient = None,
                 metrics_store: MetricsStore = None, logger=None):
        validate_config(config)

        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.metrics_store = metrics_store or MetricsStore()
        self.instance = build_instance_record(config)
        self.eureka_client = http_client or EurekaHttpClient(
            config.serviceUrls, config.username, config.password,
            is_json=config.is_json_content_type(), logger=self.logger)
        self.heartbeat_interval = float(self.instance.lease_info.renewal_interval_in_secs)

        self._registered = False
        self._stop_event = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._shutdown_called = False
        self._terminated = False
        self._thread: Optional[threading.Thread] = None

    @property
    def app_name(self) -> str:
        return self.instance.app

    @property
    def service_name(self) -> str:
        # Metrik-Schlüssel: Servicename in Grossbuchstaben
        return self.app_name.upper()

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id

    @property
    def state(self) -> LifecycleState:
        if self._terminated:
            return LifecycleState.TERMINATED
        if self._stop_event.is_set():
            return LifecycleState.SHUTTING_DOWN
        if not self._registered:
            return LifecycleState.UNREGISTERED
        if self.instance.is_dirty:
            return LifecycleState.REGISTERED_DIRTY
        return LifecycleState.REGISTERED

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """
        Registriert die Instanz (falls konfiguriert) und startet die Heartbeat-Schleife,
        auch wenn die Registrierung fehlschlägt. Liefert, ob Eureka die Registrierung angenommen hat.
        """
        if self._thread is not None:
            raise RuntimeError(f"DiscoveryClient für {self.app_name} wurde bereits gestartet")

        self.logger.info(f"Starte Lebenszyklus für {self.app_name}/{self.instance_id}.")
        registered = False
        if self.config.registerWithEureka:
            registered = self._register()
        else:
            self.logger.info("Registrierung bei Eureka ist deaktiviert.")

        self._thread = threading.Thread(target=self._heartbeat_task, name=f"eureka-heartbeat-{self.app_name}",
                                        daemon=True)
        self._thread.start()
        return registered

    def _register(self) -> bool:
        self.logger.info(f"Versuche Registrierung bei {self.eureka_client.service_url} "
                         f"mit IP: {self.instance.ip_addr}, Port: {self.config.port}")
        try:
            accepted = self.eureka_client.register(self.instance)
        except EurekaError as e:
            self.logger.error(f"Verbindungsfehler bei Registrierung: {e}")
            accepted = False

        if accepted:
            self.logger.info("Erfolgreich bei Eureka registriert.")
            self._registered = True
            self.metrics_store.increment_successful_registrations()
            self.metrics_store.set_service_registered_status(self.service_name, 1)
        else:
            self.logger.warning("Registrierung wurde von Eureka nicht angenommen.")
            self.metrics_store.increment_registration_errors()
            self.metrics_store.set_service_registered_status(self.service_name, 0)
        return accepted

    def _heartbeat_task(self):
        self.logger.info(f"Starte Heartbeat-Schleife (Intervall {self.heartbeat_interval}s).")

        # wait() liefert True, sobald das Stopp-Signal gesetzt ist; es gewinnt gegen einen fälligen Tick
        while not self._stop_event.wait(timeout=self.heartbeat_interval):
            try:
                self.send_heartbeat()
            except EurekaError as e:
                self.logger.error(f"Fehler beim Heartbeat: {e}")
                self.metrics_store.increment_heartbeat_errors()
            except Exception as e:
                self.logger.exception(f"Unerwarteter Fehler in der Heartbeat-Schleife: {e}")
                self.metrics_store.increment_heartbeat_errors()

        self.logger.info("Stopp-Signal empfangen. Beende Heartbeat-Schleife.")

    def send_heartbeat(self) -> bool:
        """Ein Heartbeat-Tick. Transportfehler werden an den Aufrufer weitergereicht."""
        status_code = self.eureka_client.send_heartbeat(
            self.app_name, self.instance_id, self.instance.status, self.instance.last_dirty_timestamp)
        self.metrics_store.increment_heartbeats()

        if status_code in (200, 204):
            self.logger.debug("Heartbeat erfolgreich gesendet.")
            return True

        if status_code == 404:
            # Lease abgelaufen: Instanz neu registrieren
            self.logger.warning("Instanz bei Eureka nicht gefunden (404). Registriere neu.")
            self.instance.mark_dirty()
            self.metrics_store.increment_reregistrations()
            if self._register():
                self.instance.clear_dirty()
                return True
            return False

        self.logger.warning(f"Heartbeat nicht bestätigt ({status_code}).")
        return False

    def shutdown(self):
        """
        Stoppt die Heartbeat-Schleife, wartet auf ihr Ende und deregistriert die Instanz.
        Fehler bei der Deregistrierung werden nur geloggt.
        """
        with self._shutdown_lock:
            if self._shutdown_called:
                self.logger.debug("Shutdown wurde bereits ausgeführt.")
                return
            self._shutdown_called = True

        self.logger.info("Fahre DiscoveryClient herunter.")
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()

        if self.config.registerWithEureka or self._registered:
            try:
                if self.eureka_client.deregister(self.app_name, self.instance_id):
                    self.logger.info("Erfolgreich von Eureka deregistriert.")
                else:
                    self.logger.warning("Deregistrierung wurde von Eureka nicht bestätigt.")
            except EurekaError as e:
                self.logger.error(f"Verbindungsfehler bei Deregistrierung: {e}")

        self.metrics_store.set_service_registered_status(self.service_name, 0)
        self._registered = False
        self._terminated = True

    # nur die eigene Instanz kann aktualisiert werden
    def discovery_status_update(self, status) -> bool:
        return self.eureka_client.update_status(self.app_name, self.instance_id, status,
                                                self.instance.last_dirty_timestamp)

    def get_applications(self, *regions: str) -> ApplicationsRecord:
        return self.eureka_client.get_applications(*regions)

    def get_application(self, app_name: str) -> ApplicationRecord:
        return self.eureka_client.get_application(app_name)

    def get_instance(self, app_name: str, instance_id: str) -> InstanceRecord:
        return self.eureka_client.get_instance(app_name, instance_id)

    def get_instance_by_id(self, instance_id: str) -> InstanceRecord:
        return self.eureka_client.get_instance_by_id(instance_id)
