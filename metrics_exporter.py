# metrics_exporter.py
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, Any, Type

from eureka_client_lib import MetricsStore

# Logger für den Metrics Exporter
logger = logging.getLogger(__name__)

_COUNTERS = [
    ("successful_registrations_total", "Total number of successful service registrations."),
    ("registration_errors_total", "Total number of service registration errors."),
    ("heartbeats_total", "Total number of heartbeats answered by the registry."),
    ("heartbeat_errors_total", "Total number of heartbeats that failed at transport level."),
    ("reregistrations_total", "Total number of re-registrations after the registry lost the instance."),
]


def render_prometheus_metrics(metrics_store_instance: MetricsStore) -> str:
    """Metriken im Prometheus-Textformat."""
    metrics_data = metrics_store_instance.get_metrics_data()
    output = []

    for name, help_text in _COUNTERS:
        if output:
            output.append("")
        output.append(f"# HELP python_eureka_{name} {help_text}")
        output.append(f"# TYPE python_eureka_{name} counter")
        output.append(f"python_eureka_{name} {metrics_data[name]}")

    output.append("\n# HELP python_eureka_service_registered Status of service registration (1 if registered, 0 otherwise).")
    output.append("# TYPE python_eureka_service_registered gauge")
    for service_name, status in metrics_data['service_registered_status'].items():
        output.append(f"python_eureka_service_registered{{service_name=\"{service_name}\"}} {status}")

    return "\n".join(output) + "\n"


def create_metrics_handler(metrics_store_instance: MetricsStore, app_config: Dict[str, Any]) -> Type[BaseHTTPRequestHandler]:
    """
    Eine Fabrikfunktion, die eine CustomMetricsHandler-Klasse erstellt.
    Diese Klasse hat Zugriff auf die übergebene MetricsStore-Instanz
    und die Anwendungs-Konfigurationsdaten.
    """
    if metrics_store_instance is None:
        raise ValueError("metrics_store_instance darf nicht None sein")
    if app_config is None:
        raise ValueError("app_config darf nicht None sein")

    class CustomMetricsHandler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: Any) -> None:
            """HTTP-Zugriffe nur im Debug-Log"""
            logger.debug(format % args)

        def do_GET(self) -> None:
            if self.path == '/metrics':
                self._respond(200, 'text/plain; version=0.0.4; charset=utf-8',
                              render_prometheus_metrics(metrics_store_instance).encode('utf-8'))
            elif self.path == '/info':
                self._respond(200, 'application/json; charset=utf-8',
                              json.dumps(app_config, indent=2).encode('utf-8'))
            else:
                self._respond(404, 'text/plain; charset=utf-8', b'Not Found')

        def _respond(self, status: int, content_type: str, payload: bytes) -> None:
            self.send_response(status)
            self.send_header('Content-type', content_type)
            self.send_header('Content-Length', str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

    return CustomMetricsHandler


def create_metrics_web_server(metrics_store_instance: MetricsStore, app_config: Dict[str, Any],
                              host: str, port: int) -> ThreadingHTTPServer:
    handler_class = create_metrics_handler(metrics_store_instance, app_config)
    return ThreadingHTTPServer((host, port), handler_class)


def run_metrics_web_server(metrics_store_instance: MetricsStore, app_config: Dict[str, Any], host: str, port: int) -> None:
    """
    Startet einen einfachen HTTP-Webserver, der Metriken und Info exponiert.
    Blockiert bis zum Herunterfahren; üblicherweise in einem Daemon-Thread gestartet.
    """
    httpd = create_metrics_web_server(metrics_store_instance, app_config, host, port)
    logger.info(f"Metrics web server running on http://{host}:{port}/metrics and http://{host}:{port}/info")

    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Metrics web server shutdown signal empfangen.")
    finally:
        httpd.server_close()
        logger.info("Metrics web server stopped.")
