"""Unit tests for the Prometheus metrics exporter."""

import threading

import pytest
import requests

from eureka_client_lib import MetricsStore
from metrics_exporter import create_metrics_handler, create_metrics_web_server, render_prometheus_metrics


def test_render_prometheus_metrics():
    store = MetricsStore()
    store.increment_successful_registrations()
    store.increment_heartbeats()
    store.set_service_registered_status("ORDERS", 1)

    output = render_prometheus_metrics(store)

    assert "# TYPE python_eureka_successful_registrations_total counter" in output
    assert "python_eureka_successful_registrations_total 1" in output
    assert "python_eureka_heartbeats_total 1" in output
    assert "python_eureka_reregistrations_total 0" in output
    assert 'python_eureka_service_registered{service_name="ORDERS"} 1' in output
    assert output.endswith("\n")


def test_handler_requires_store_and_config():
    with pytest.raises(ValueError):
        create_metrics_handler(None, {})
    with pytest.raises(ValueError):
        create_metrics_handler(MetricsStore(), None)


def test_metrics_server_serves_metrics_and_info():
    store = MetricsStore()
    store.increment_registration_errors()
    httpd = create_metrics_web_server(store, {"services": ["orders"]}, "127.0.0.1", 0)
    port = httpd.server_address[1]
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        metrics = requests.get(f"http://127.0.0.1:{port}/metrics", timeout=5)
        assert metrics.status_code == 200
        assert "python_eureka_registration_errors_total 1" in metrics.text

        info = requests.get(f"http://127.0.0.1:{port}/info", timeout=5)
        assert info.json() == {"services": ["orders"]}

        assert requests.get(f"http://127.0.0.1:{port}/other", timeout=5).status_code == 404
    finally:
        httpd.shutdown()
        httpd.server_close()
