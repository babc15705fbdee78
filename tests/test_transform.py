"""Tests for the upstream-state to MetricSet transform."""

from typing import Any

import pytest

from se_stats_exporter.collectors.transform import transform
from se_stats_exporter.errors import TransformError, TransformErrorKind
from se_stats_exporter.models import ExportName, MetricKind
from se_stats_exporter.upstream import ChatStats, ChatStatsState, FlatState, TopChannel

ALL_EXPORTS = tuple(ExportName)


@pytest.fixture
def state(stats_payload: dict[str, Any], channels_payload: list[dict[str, Any]]) -> ChatStatsState:
    return ChatStatsState(
        stats=ChatStats.model_validate(stats_payload),
        top_channels=[TopChannel.model_validate(c) for c in channels_payload],
    )


def _series(metrics: Any) -> dict[tuple[str, tuple[tuple[str, str], ...]], int | float]:
    return {m.key: m.value for m in metrics}


class TestChatStatsTransform:
    """Tests for the chatstats schema."""

    def test_default_exports(self, state: ChatStatsState) -> None:
        """Default exports cover emotes, chatters and channels."""
        metrics = transform(state)

        assert metrics.names() == ["se_chatter", "se_emote", "se_channel"]
        series = _series(metrics)
        assert series[("se_chatter", (("name", "nightbot"),))] == 900
        assert series[("se_emote", (("emote", "KEKW"), ("provider", "bttv")))] == 1234
        assert series[("se_emote", (("emote", "OMEGALUL"), ("provider", "ffz")))] == 321
        assert series[("se_emote", (("emote", "Kappa"), ("provider", "twitch")))] == 4321
        assert series[("se_channel", (("channel", "xqc"),))] == 50000

    def test_all_exports(self, state: ChatStatsState) -> None:
        """Every group can be exported."""
        metrics = transform(state, ALL_EXPORTS)

        assert metrics.names() == [
            "se_total_messages",
            "se_chatter",
            "se_hashtag",
            "se_command",
            "se_emote",
            "se_channel",
        ]
        series = _series(metrics)
        assert series[("se_total_messages", ())] == 123456
        assert series[("se_hashtag", (("hashtag", "#gg"),))] == 12
        assert series[("se_command", (("command", "!uptime"),))] == 30

    def test_kinds(self, state: ChatStatsState) -> None:
        """Total messages is a counter, rankings are gauges."""
        kinds = {m.name: m.kind for m in transform(state, ALL_EXPORTS)}
        assert kinds["se_total_messages"] is MetricKind.COUNTER
        assert kinds["se_chatter"] is MetricKind.GAUGE
        assert kinds["se_emote"] is MetricKind.GAUGE

    def test_help_texts(self, state: ChatStatsState) -> None:
        """Each name carries its HELP text."""
        helps = {m.name: m.help for m in transform(state, ALL_EXPORTS)}
        assert helps["se_emote"] == "top emotes"
        assert helps["se_total_messages"] == "total messages on twitch"
        assert helps["se_command"] == "top commands"

    def test_export_selection(self, state: ChatStatsState) -> None:
        """Only the selected groups are exported."""
        metrics = transform(state, [ExportName.BTTV])
        assert metrics.names() == ["se_emote"]
        assert {m.label_dict["provider"] for m in metrics} == {"bttv"}

    def test_exports_accept_strings(self, state: ChatStatsState) -> None:
        """Export names can be given as plain strings."""
        metrics = transform(state, ["chatter"])  # type: ignore[list-item]
        assert metrics.names() == ["se_chatter"]

    def test_prefix(self, state: ChatStatsState) -> None:
        """The prefix is applied to every metric name."""
        metrics = transform(state, [ExportName.CHATTER], prefix="streamelements")
        assert metrics.names() == ["streamelements_chatter"]

    def test_empty_lists(self) -> None:
        """Missing ranking lists produce no metrics."""
        state = ChatStatsState(stats=ChatStats(channel="quiet", totalMessages=0))
        assert len(transform(state)) == 0
        assert len(transform(state, [ExportName.TOTAL_MESSAGES])) == 1

    def test_negative_counter_out_of_range(self) -> None:
        """A negative total message count is rejected."""
        state = ChatStatsState(stats=ChatStats(channel="x", totalMessages=-5))
        with pytest.raises(TransformError) as exc_info:
            transform(state, [ExportName.TOTAL_MESSAGES])
        assert exc_info.value.kind is TransformErrorKind.OUT_OF_RANGE

    def test_repeated_chatter_keeps_last_entry(self, stats_payload: dict[str, Any]) -> None:
        """The same chatter listed twice becomes one series with the last value."""
        stats_payload["chatters"].append({"name": "nightbot", "amount": 1})
        state = ChatStatsState(stats=ChatStats.model_validate(stats_payload))
        metrics = transform(state, [ExportName.CHATTER])
        assert [(m.label_dict["name"], m.value) for m in metrics] == [
            ("nightbot", 1),
            ("streamlabs", 450),
        ]

    def test_shared_emote_code_collapses(self, stats_payload: dict[str, Any]) -> None:
        """Emotes with different ids but one code do not fail the collection."""
        stats_payload["bttvEmotes"] = [
            {"id": "a1", "emote": "catJAM", "amount": 10},
            {"id": "b2", "emote": "catJAM", "amount": 5},
        ]
        state = ChatStatsState(stats=ChatStats.model_validate(stats_payload))
        metrics = transform(state, [ExportName.BTTV])
        assert _series(metrics) == {("se_emote", (("emote", "catJAM"), ("provider", "bttv"))): 5}

    def test_same_code_from_two_providers_kept(self, stats_payload: dict[str, Any]) -> None:
        """The provider label keeps equal codes from different providers apart."""
        stats_payload["ffzEmotes"] = [{"id": "1", "emote": "KEKW", "amount": 7}]
        state = ChatStatsState(stats=ChatStats.model_validate(stats_payload))
        metrics = transform(state, [ExportName.BTTV, ExportName.FFZ])
        assert len(metrics) == 2

    def test_pure(self, state: ChatStatsState) -> None:
        """The same input always yields an equal, identically ordered result."""
        first = transform(state, ALL_EXPORTS)
        second = transform(state, ALL_EXPORTS)
        assert first == second
        assert [m.key for m in first] == [m.key for m in second]


class TestFlatTransform:
    """Tests for the flat schema."""

    def test_named_facts(self) -> None:
        """Each numeric fact becomes a gauge named after its key."""
        metrics = transform(FlatState(facts={"cpu": 42.0, "mem": 1024}))

        assert [(m.name, m.value, m.labels) for m in metrics] == [
            ("se_cpu", 42.0, ()),
            ("se_mem", 1024, ()),
        ]
        assert all(m.kind is MetricKind.GAUGE for m in metrics)

    def test_keys_are_sorted_and_sanitized(self) -> None:
        """Output order is stable and names are valid."""
        metrics = transform(FlatState(facts={"z.load": 1, "a-b": 2}))
        assert metrics.names() == ["se_a_b", "se_z_load"]

    def test_non_finite_out_of_range(self) -> None:
        """NaN and infinities cannot be exported."""
        with pytest.raises(TransformError) as exc_info:
            transform(FlatState(facts={"cpu": float("nan")}))
        assert exc_info.value.kind is TransformErrorKind.OUT_OF_RANGE

    def test_colliding_keys_keep_last_in_key_order(self) -> None:
        """Keys that sanitize to the same name collapse to the last key in sorted order."""
        metrics = transform(FlatState(facts={"a.b": 1, "a-b": 2}))
        assert _series(metrics) == {("se_a_b", ()): 1}

    def test_unsupported_state(self) -> None:
        """Anything that is not a known RawState is rejected."""
        with pytest.raises(TransformError) as exc_info:
            transform({"cpu": 1})  # type: ignore[arg-type]
        assert exc_info.value.kind is TransformErrorKind.UNEXPECTED_SHAPE
