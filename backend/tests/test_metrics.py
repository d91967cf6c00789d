from liveroom.system_metrics import (
    get_metrics_snapshot,
    increment_metric,
    record_http_response,
    record_transition,
    record_ws_disconnect,
    set_metric,
)


def test_disconnect_reasons_are_bucketed():
    before = get_metrics_snapshot()
    record_ws_disconnect("client-disconnect")
    record_ws_disconnect("socket error")
    record_ws_disconnect("message_too_large")
    after = get_metrics_snapshot()

    assert after["ws_disconnects_total"] == before["ws_disconnects_total"] + 3
    assert after["ws_disconnect_client_disconnect"] == before["ws_disconnect_client_disconnect"] + 1
    assert after["ws_disconnect_socket_error"] == before["ws_disconnect_socket_error"] + 1
    assert after["ws_disconnect_other"] == before["ws_disconnect_other"] + 1


def test_transitions_and_http_counters():
    before = get_metrics_snapshot()
    record_transition("started")
    record_transition("unknown")
    record_http_response(404, 12.0)
    after = get_metrics_snapshot()

    assert after["sessions_started"] == before["sessions_started"] + 1
    assert after["http_errors_total"] == before["http_errors_total"] + 1
    assert after["http_status_404"] == before.get("http_status_404", 0) + 1
    assert after["avg_latency_ms"] >= 0


def test_set_and_extra_values():
    set_metric("ws_rooms_active", -3)
    increment_metric("")
    snapshot = get_metrics_snapshot({"instance": "test"})
    assert snapshot["ws_rooms_active"] == 0
    assert snapshot["instance"] == "test"
