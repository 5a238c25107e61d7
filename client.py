# client.py
import logging
import os
import signal
import sys
import threading

from discovery_client import DiscoveryClient
from eureka_client_lib import MetricsStore
from eureka_config import (get_env_service_urls, load_service_configs, resolve_service_urls,
                           setup_service_logger)
from eureka_errors import ParameterError
from metrics_exporter import run_metrics_web_server

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("eureka-client")

CONFIG_FILE = os.getenv("EUREKA_SERVICES_FILE", "services.json")
METRICS_PORT = os.getenv("METRICS_PORT")

# Jeder Client-Prozess hat seine eigene Instanz von MetricsStore
metrics_store = MetricsStore()


def start_clients(configs, store: MetricsStore):
    clients = []
    for config in configs:
        service_name = config.appName.upper()
        config = resolve_service_urls(config.model_copy(update={"appName": service_name}))
        try:
            discovery_client = DiscoveryClient(config, metrics_store=store,
                                               logger=setup_service_logger(service_name))
        except ParameterError as e:
            logger.error(f"Service '{service_name}' wird übersprungen: {e}")
            continue

        store.set_service_registered_status(service_name, 0)
        registered = discovery_client.start()
        logger.info(f"Service '{service_name}' gestartet (registriert: {registered}).")
        clients.append(discovery_client)
    return clients


def shutdown_clients(clients):
    for discovery_client in clients:
        logger.info(f"Sende Stopp-Signal an Service '{discovery_client.app_name}'.")
        discovery_client.shutdown()
    logger.info("Alle Services versucht zu deregistrieren.")


def main():
    stop_event = threading.Event()

    def graceful_shutdown(signum, frame):
        logger.info("Empfange Herunterfahren-Signal. Starte graziöses Herunterfahren...")
        stop_event.set()

    # Signal-Handler für SIGINT (CTRL+C) und SIGTERM einrichten
    signal.signal(signal.SIGINT, graceful_shutdown)
    signal.signal(signal.SIGTERM, graceful_shutdown)

    logger.info(f"Verwende Eureka Server URL(s): {', '.join(get_env_service_urls())}")
    logger.info(f"Dieser Client wird Services aus '{CONFIG_FILE}' verwalten.")

    try:
        configs = load_service_configs(CONFIG_FILE)
    except FileNotFoundError:
        logger.error(f"Konfigurationsdatei '{CONFIG_FILE}' nicht gefunden.")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Ungültige Konfigurationsdatei '{CONFIG_FILE}': {e}")
        sys.exit(1)

    if METRICS_PORT:
        app_config = {"services": [config.appName for config in configs]}
        threading.Thread(target=run_metrics_web_server,
                         args=(metrics_store, app_config, "0.0.0.0", int(METRICS_PORT)),
                         daemon=True).start()

    clients = start_clients(configs, metrics_store)
    logger.info("Eureka Client gestartet. Drücke STRG+C zum Beenden.")

    # Hauptthread wartet auf das Stopp-Signal
    while not stop_event.wait(timeout=1):
        pass

    shutdown_clients(clients)
    sys.exit(0)


if __name__ == "__main__":
    main()
