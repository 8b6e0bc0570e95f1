from __future__ import annotations

import prometheus_client.parser as prometheus_parser

from trendwatch.application.observability import FeedMetricsExporter
from trendwatch.domain.models import SessionState


def test_state_gauge_flags_only_current_state() -> None:
    exporter = FeedMetricsExporter(start_http=False)

    exporter.observe_state(SessionState.AWAITING_ACK)
    exporter.observe_state(SessionState.SUBSCRIBED)

    registry = exporter.registry
    assert (
        registry.get_sample_value("trendwatch_session_state", {"state": "subscribed"})
        == 1
    )
    assert (
        registry.get_sample_value("trendwatch_session_state", {"state": "awaiting_ack"})
        == 0
    )


def test_scrape_is_valid_exposition_format() -> None:
    exporter = FeedMetricsExporter(start_http=False)
    exporter.record_session_end("credential_renewal")
    exporter.record_dropped_frame("malformed")
    exporter.observe_seen(-3)

    families = {
        family.name: family
        for family in prometheus_parser.text_string_to_metric_families(
            exporter.scrape().decode()
        )
    }

    assert "trendwatch_sessions" in families
    assert "trendwatch_frames_dropped" in families
    assert exporter.registry.get_sample_value("trendwatch_seen_items") == 0
