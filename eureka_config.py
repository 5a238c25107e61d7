# eureka_config.py
import json
import logging
import os
from typing import List

from models import ClientConfig

DEFAULT_EUREKA_SERVER_URL = "http://localhost:8761/eureka"
LOG_DIR = "logs"

logger = logging.getLogger(__name__)


def get_env_service_urls() -> List[str]:
    # EUREKA_SERVER_URL darf mehrere, durch Komma getrennte Server enthalten
    raw = os.getenv("EUREKA_SERVER_URL", DEFAULT_EUREKA_SERVER_URL)
    return [url.strip() for url in raw.split(",") if url.strip()]


def load_service_configs(config_file: str) -> List[ClientConfig]:
    """Liest die Liste der Services; fehlende Datei und ungültiges JSON gehen an den Aufrufer."""
    with open(config_file, "r") as f:
        raw_services = json.load(f)

    if not isinstance(raw_services, list):
        raise ValueError(f"'{config_file}' muss eine Liste von Services enthalten")
    return [ClientConfig(**service) for service in raw_services]


def save_service_configs(config_file: str, configs: List[ClientConfig]):
    with open(config_file, "w") as f:
        json.dump([config.model_dump() for config in configs], f, indent=2)


def load_eureka_servers(servers_file: str) -> List[str]:
    if not os.path.exists(servers_file):
        logger.warning(f"{servers_file} nicht gefunden. Verwende EUREKA_SERVER_URL.")
        return []

    with open(servers_file, "r") as f:
        config = json.load(f)
    servers = config.get("servers", [])
    logger.info(f"{len(servers)} Eureka-Server geladen.")
    return servers


def resolve_service_urls(config: ClientConfig, servers: List[str] = None) -> ClientConfig:
    """Explizite serviceUrls gewinnen, danach die Serverliste, zuletzt die Umgebung."""
    if config.serviceUrls:
        return config
    urls = list(servers) if servers else get_env_service_urls()
    return config.model_copy(update={"serviceUrls": urls})


def setup_service_logger(name: str, log_dir: str = LOG_DIR) -> logging.Logger:
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)
        logger.info(f"Logverzeichnis '{log_dir}' wurde erstellt.")

    service_logger = logging.getLogger(name)
    service_logger.setLevel(logging.INFO)
    handler = logging.FileHandler(os.path.join(log_dir, f"{name}.log"))
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    handler.setFormatter(formatter)
    for old_handler in service_logger.handlers:
        old_handler.close()
    service_logger.handlers = [handler]
    return service_logger
