"""Unit tests for the registry protocol adapter."""

import json
import threading

import pytest

from conftest import FakeTransport, connection_refused
from discovery_client import build_instance_record
from eureka_client_lib import EurekaHttpClient, MetricsStore
from eureka_errors import DecodeError, EmptyResponseError, TransportError
from models import InstanceStatus


def make_client(transport, urls=("http://a", "http://b"), **kwargs):
    return EurekaHttpClient(list(urls), transport=transport, **kwargs)


def test_requires_service_urls():
    with pytest.raises(ValueError):
        EurekaHttpClient([], transport=FakeTransport())


def test_trailing_slashes_are_stripped():
    client = make_client(FakeTransport(), urls=["http://a/eureka/", "http://b/eureka"])
    assert client.service_urls == ["http://a/eureka", "http://b/eureka"]
    assert client.service_url == "http://a/eureka"


@pytest.mark.parametrize("is_json, content_type", [(True, "application/json"), (False, "application/xml")])
def test_headers_fixed_by_content_type(is_json, content_type):
    transport = FakeTransport()
    client = make_client(transport, is_json=is_json)

    client.deregister("orders", "orders-1")

    headers = transport.calls[0]["headers"]
    assert headers == {"Accept": content_type, "Content-Type": content_type}


def test_credentials_attached_to_every_request():
    transport = FakeTransport()
    client = make_client(transport, username="eureka", password="secret")

    client.deregister("orders", "orders-1")
    client.send_heartbeat("orders", "orders-1", InstanceStatus.UP, 1)

    assert all(call["username"] == "eureka" and call["password"] == "secret" for call in transport.calls)


@pytest.mark.parametrize("status_code, accepted", [(200, True), (204, True), (400, False), (500, False)])
def test_register(client_config, status_code, accepted):
    transport = FakeTransport([(b"", status_code)])
    client = make_client(transport)
    instance = build_instance_record(client_config)

    assert client.register(instance) is accepted

    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "http://a/apps/orders"
    assert json.loads(call["body"])["instance"]["instanceId"] == "orders-1"


@pytest.mark.parametrize("status_code, accepted", [(200, True), (204, False), (404, False)])
def test_deregister(status_code, accepted):
    transport = FakeTransport([(b"", status_code)])
    assert make_client(transport).deregister("orders", "orders-1") is accepted
    assert transport.calls[0]["method"] == "DELETE"
    assert transport.calls[0]["url"] == "http://a/apps/orders/orders-1"


def test_send_heartbeat_returns_raw_status_code():
    transport = FakeTransport([(b"", 404)])
    client = make_client(transport)

    assert client.send_heartbeat("orders", "orders-1", InstanceStatus.UP, 1700000000000) == 404
    assert transport.calls[0]["method"] == "PUT"
    assert transport.calls[0]["url"] == "http://a/apps/orders/orders-1?status=UP&lastDirtyTimestamp=1700000000000"


def test_send_heartbeat_with_overridden_status():
    transport = FakeTransport()
    make_client(transport).send_heartbeat("orders", "orders-1", "UP", 5, InstanceStatus.OUT_OF_SERVICE)
    assert transport.calls[0]["url"] == ("http://a/apps/orders/orders-1"
                                         "?status=UP&lastDirtyTimestamp=5&overriddenstatus=OUT_OF_SERVICE")


@pytest.mark.parametrize("status_code, accepted", [(200, True), (204, False), (500, False)])
def test_update_status(status_code, accepted):
    transport = FakeTransport([(b"", status_code)])
    assert make_client(transport).update_status("orders", "orders-1", InstanceStatus.DOWN, 7) is accepted
    assert transport.calls[0]["method"] == "PUT"
    assert transport.calls[0]["url"] == "http://a/apps/orders/orders-1/status?value=DOWN&lastDirtyTimestamp=7"


def test_get_applications_with_regions():
    body = json.dumps({"applications": {"versions__delta": "1", "application": [{"name": "ORDERS"}]}}).encode()
    transport = FakeTransport([(body, 200), (body, 200)])
    client = make_client(transport)

    assert client.get_applications().applications[0].name == "ORDERS"
    client.get_applications("us-east-1", "eu-west-1")

    assert transport.calls[0]["url"] == "http://a/apps/"
    assert transport.calls[1]["url"] == "http://a/apps/?regions=us-east-1,eu-west-1"
    assert all(call["method"] == "GET" for call in transport.calls)


def test_instance_queries():
    body = json.dumps({"instance": {"instanceId": "orders-1", "app": "ORDERS"}}).encode()
    transport = FakeTransport([(body, 200), (body, 200)])
    client = make_client(transport)

    assert client.get_instance("orders", "orders-1").app == "ORDERS"
    assert client.get_instance_by_id("orders-1").instance_id == "orders-1"
    assert transport.calls[0]["url"] == "http://a/apps/orders/orders-1"
    assert transport.calls[1]["url"] == "http://a/instances/orders-1"


def test_get_application():
    body = json.dumps({"application": {"name": "ORDERS", "instance": []}}).encode()
    transport = FakeTransport([(body, 200)])
    assert make_client(transport).get_application("orders").name == "ORDERS"
    assert transport.calls[0]["url"] == "http://a/apps/orders"


def test_empty_body_is_no_data_error():
    transport = FakeTransport([(b"", 200)])
    client = make_client(transport)
    with pytest.raises(EmptyResponseError):
        client.get_application("orders")
    assert client.url_index == 0


def test_malformed_body_does_not_rotate():
    transport = FakeTransport([(b"{broken", 200)])
    client = make_client(transport)
    with pytest.raises(DecodeError):
        client.get_instance_by_id("orders-1")
    assert client.url_index == 0


def test_transport_error_rotates_and_is_raised():
    transport = FakeTransport([connection_refused(), (b"", 200)])
    client = make_client(transport)

    with pytest.raises(TransportError):
        client.deregister("orders", "orders-1")
    assert client.service_url == "http://b"

    # kein automatischer Retry: der nächste Aufruf geht an den nächsten Server
    assert client.deregister("orders", "orders-1") is True
    assert [call["url"] for call in transport.calls] == ["http://a/apps/orders/orders-1",
                                                         "http://b/apps/orders/orders-1"]


@pytest.mark.parametrize("errors", [1, 2, 3, 5, 7])
def test_consecutive_errors_advance_index_modulo(errors):
    urls = ["http://a", "http://b", "http://c"]
    client = make_client(FakeTransport([connection_refused()] * errors), urls=urls)

    for _ in range(errors):
        with pytest.raises(TransportError):
            client.send_heartbeat("orders", "orders-1", InstanceStatus.UP, 1)

    assert client.url_index == errors % len(urls)


def test_rotation_from_parallel_threads_is_not_lost():
    """Test heartbeat and query threads sharing one client each advance the index once."""
    urls = ["http://a", "http://b", "http://c"]
    workers, errors_per_worker = 8, 25
    client = make_client(FakeTransport(default=connection_refused()), urls=urls)

    def fail_repeatedly():
        for _ in range(errors_per_worker):
            with pytest.raises(TransportError):
                client.get_applications()

    threads = [threading.Thread(target=fail_repeatedly) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert client.url_index == (workers * errors_per_worker) % len(urls)


def test_single_endpoint_rotation_is_noop():
    client = make_client(FakeTransport([connection_refused()] * 2), urls=["http://a"])
    for _ in range(2):
        with pytest.raises(TransportError):
            client.get_applications()
    assert client.url_index == 0
    assert client.service_url == "http://a"


def test_read_transport_error_rotates():
    client = make_client(FakeTransport([connection_refused()]))
    with pytest.raises(TransportError):
        client.get_applications()
    assert client.url_index == 1


def test_metrics_store_counters():
    store = MetricsStore()
    store.increment_successful_registrations()
    store.increment_registration_errors()
    store.increment_heartbeats()
    store.increment_heartbeats()
    store.increment_heartbeat_errors()
    store.increment_reregistrations()
    store.set_service_registered_status("ORDERS", 1)

    data = store.get_metrics_data()
    assert data["successful_registrations_total"] == 1
    assert data["registration_errors_total"] == 1
    assert data["heartbeats_total"] == 2
    assert data["heartbeat_errors_total"] == 1
    assert data["reregistrations_total"] == 1
    assert data["service_registered_status"] == {"ORDERS": 1}
