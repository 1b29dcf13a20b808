from __future__ import annotations

from services.notifications import NotificationHub, employee_topic, publish_safe


def test_backlog_is_bounded_per_topic():
    hub = NotificationHub(max_per_topic=3)
    for i in range(5):
        assert hub.publish("employee:E1", {"n": i}) is True
    assert hub.pending("employee:E1") == 3
    assert [e["payload"]["n"] for e in hub.drain("employee:E1")] == [2, 3, 4]
    assert hub.pending("employee:E1") == 0


def test_failing_subscriber_does_not_break_publish():
    hub = NotificationHub()
    seen = []

    def boom(_topic, _event):
        raise RuntimeError("subscriber down")

    hub.subscribe("t", boom)
    hub.subscribe("t", lambda topic, event: seen.append(topic))
    assert hub.publish("t", {"x": 1}) is True
    assert seen == ["t"]


def test_unsubscribe_and_close():
    hub = NotificationHub()
    seen = []
    unsubscribe = hub.subscribe("t", lambda topic, event: seen.append(event))
    unsubscribe()
    hub.publish("t", {})
    assert seen == []

    hub.close()
    assert hub.publish("t", {}) is False


def test_publish_safe_tolerates_missing_hub():
    publish_safe(None, employee_topic("E1"), {"type": "review_update"})
    assert employee_topic("E1") == "employee:E1"


def test_topic_count_is_capped_and_drain_frees_the_topic():
    hub = NotificationHub(max_per_topic=5, max_topics=100)
    for i in range(5000):
        hub.publish(employee_topic(f"EMP-{i}"), {"n": i})

    assert hub.topic_count() == 100
    assert hub.pending(employee_topic("EMP-0")) == 0
    assert hub.pending(employee_topic("EMP-4999")) == 1

    assert len(hub.drain(employee_topic("EMP-4999"))) == 1
    assert hub.topic_count() == 99


def test_recently_published_topic_survives_eviction():
    hub = NotificationHub(max_topics=2)
    hub.publish("a", {})
    hub.publish("b", {})
    hub.publish("a", {"again": True})
    hub.publish("c", {})

    assert hub.pending("a") == 2
    assert hub.pending("b") == 0
    assert hub.pending("c") == 1
