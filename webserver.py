from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse, StreamingResponse
import os
import logging
import threading
import time
from typing import Optional

from discovery_client import DiscoveryClient
from eureka_client_lib import MetricsStore
from eureka_config import (LOG_DIR, load_eureka_servers, load_service_configs, resolve_service_urls,
                           save_service_configs, setup_service_logger)
from eureka_errors import EmptyResponseError, EurekaError, ParameterError, ProtocolError
from metrics_exporter import render_prometheus_metrics
from models import ClientConfig, InstanceStatus

logger = logging.getLogger(__name__)

CONFIG_FILE = "services.json"
EUREKA_SERVERS_FILE = "eureka_server.json"


def create_app(config_file: str = CONFIG_FILE, servers_file: str = EUREKA_SERVERS_FILE,
               log_dir: str = LOG_DIR, client_factory=DiscoveryClient) -> FastAPI:
    app = FastAPI()
    metrics_store = MetricsStore()

    # In-memory registry
    clients = {}
    discovery_clients = {}
    start_lock = threading.Lock()
    eureka_server_urls = load_eureka_servers(servers_file)

    # Load clients from services.json if it exists
    if os.path.exists(config_file):
        try:
            for config in load_service_configs(config_file):
                name = config.appName.upper()
                clients[name] = config.model_copy(update={"appName": name})
                metrics_store.set_service_registered_status(name, 0)
            logger.info(f"{len(clients)} Clients aus {config_file} geladen.")
        except ValueError as e:
            logger.error(f"Fehler beim Laden von {config_file}: {e}")

    def save_clients_to_file():
        try:
            save_service_configs(config_file, list(clients.values()))
        except OSError as e:
            logger.error(f"Fehler beim Speichern von Clients: {e}")

    def get_config(name: str) -> ClientConfig:
        if name not in clients:
            raise HTTPException(status_code=404, detail="Client not found")
        return clients[name]

    def get_running_client(name: str) -> DiscoveryClient:
        get_config(name)
        discovery_client = discovery_clients.get(name)
        if discovery_client is None or not discovery_client.is_running():
            raise HTTPException(status_code=400, detail="Client not running")
        return discovery_client

    def registry_error(e: EurekaError) -> HTTPException:
        if isinstance(e, EmptyResponseError):
            return HTTPException(status_code=404, detail=str(e))
        if isinstance(e, ProtocolError):
            return HTTPException(status_code=502, detail=f"Ungültige Antwort der Registry: {e}")
        return HTTPException(status_code=502, detail=f"Registry nicht erreichbar: {e}")

    def query_client() -> DiscoveryClient:
        # Abfragen laufen über einen beliebigen laufenden Client
        for discovery_client in discovery_clients.values():
            if discovery_client.is_running():
                return discovery_client
        raise HTTPException(status_code=400, detail="No client running")

    @app.on_event("shutdown")
    def shutdown_handler():
        logger.info("Server wird heruntergefahren. Stoppe alle Clients...")
        for name, discovery_client in discovery_clients.items():
            if discovery_client.is_running():
                logger.info(f"Stoppe Client {name}")
                discovery_client.shutdown()
        logger.info("Alle Clients gestoppt.")

    @app.get("/clients")
    def list_clients():
        return [
            {
                "serviceName": name,
                "running": discovery_clients[name].is_running() if name in discovery_clients else False,
                "state": discovery_clients[name].state.value if name in discovery_clients else None,
            }
            for name in clients
        ]

    @app.post("/clients")
    def add_client(config: ClientConfig):
        name = config.appName.upper()
        if not name:
            raise HTTPException(status_code=400, detail="appName is required")
        if name in clients:
            raise HTTPException(status_code=400, detail="Client already exists")
        # Eureka führt Applikationsnamen in Grossbuchstaben
        clients[name] = config.model_copy(update={"appName": name})
        metrics_store.set_service_registered_status(name, 0)
        save_clients_to_file()
        return {"message": f"Client {name} added."}

    @app.delete("/clients/{name}")
    def delete_client(name: str):
        name = name.upper()
        get_config(name)
        if name in discovery_clients and discovery_clients[name].is_running():
            raise HTTPException(status_code=400, detail="Client is running. Stop it first.")
        clients.pop(name)
        discovery_clients.pop(name, None)
        save_clients_to_file()
        return {"message": f"Client {name} deleted."}

    @app.post("/clients/{name}/start")
    def start_client(name: str):
        name = name.upper()
        config = resolve_service_urls(get_config(name), eureka_server_urls)

        # Prüfen und Starten in einem Schritt, sonst bleibt ein zweiter Heartbeat-Thread verwaist
        with start_lock:
            if name in discovery_clients and discovery_clients[name].is_running():
                raise HTTPException(status_code=400, detail="Client already running")

            try:
                discovery_client = client_factory(config, metrics_store=metrics_store,
                                                  logger=setup_service_logger(name, log_dir))
            except ParameterError as e:
                raise HTTPException(status_code=400, detail=str(e))

            discovery_clients[name] = discovery_client
            registered = discovery_client.start()
        return {"message": f"Client {name} gestartet.", "registered": registered}

    @app.post("/clients/{name}/stop")
    def stop_client(name: str):
        name = name.upper()
        discovery_client = get_running_client(name)
        # Stoppt die Heartbeat-Schleife und deregistriert bei Eureka
        discovery_client.shutdown()
        return {"message": f"Client {name} stopped and deregistered."}

    @app.get("/clients/{name}/status")
    def client_status(name: str):
        name = name.upper()
        get_config(name)
        discovery_client = discovery_clients.get(name)
        if discovery_client is None:
            return {"serviceName": name, "state": None, "running": False}
        return {
            "serviceName": name,
            "state": discovery_client.state.value,
            "running": discovery_client.is_running(),
            "status": discovery_client.instance.status.value,
            "isDirty": discovery_client.instance.is_dirty,
            "lastDirtyTimestamp": discovery_client.instance.last_dirty_timestamp,
            "serviceUrl": discovery_client.eureka_client.service_url,
        }

    @app.put("/clients/{name}/status")
    def update_client_status(name: str, value: InstanceStatus):
        name = name.upper()
        discovery_client = get_running_client(name)
        try:
            accepted = discovery_client.discovery_status_update(value)
        except EurekaError as e:
            raise registry_error(e)
        return {"serviceName": name, "status": value.value, "accepted": accepted}

    @app.get("/clients/{name}/logs")
    def stream_logs(name: str):
        name = name.upper()
        log_path = os.path.join(log_dir, f"{name}.log")
        if not os.path.exists(log_path):
            raise HTTPException(status_code=404, detail="Logfile nicht gefunden")

        def log_streamer():
            with open(log_path, "r") as f:
                while True:
                    line = f.readline()
                    if line:
                        yield line
                    else:
                        time.sleep(1)

        return StreamingResponse(log_streamer(), media_type="text/plain")

    @app.get("/registry/apps")
    def registry_applications(regions: Optional[str] = None):
        region_list = [region for region in regions.split(",") if region] if regions else []
        try:
            applications = query_client().get_applications(*region_list)
        except EurekaError as e:
            raise registry_error(e)
        return applications.model_dump(mode="json", by_alias=True, exclude_none=True)

    @app.get("/registry/apps/{app_name}")
    def registry_application(app_name: str):
        try:
            application = query_client().get_application(app_name)
        except EurekaError as e:
            raise registry_error(e)
        return application.model_dump(mode="json", by_alias=True, exclude_none=True)

    @app.get("/metrics", response_class=PlainTextResponse)
    def metrics():
        return render_prometheus_metrics(metrics_store)

    return app


app = create_app()
