"""Shared fixtures: StreamElements payloads as returned by the kappa v2 API."""

from typing import Any

import pytest


@pytest.fixture
def stats_payload() -> dict[str, Any]:
    """Response of GET /chatstats/{channel}/stats."""
    return {
        "channel": "global",
        "totalMessages": 123456,
        "chatters": [
            {"name": "nightbot", "amount": 900},
            {"name": "streamlabs", "amount": 450},
        ],
        "hashtags": [{"hashtag": "#gg", "amount": 12}],
        "commands": [{"command": "!uptime", "amount": 30}],
        "bttvEmotes": [{"id": "5e76d338d6581c3724c0f0b2", "emote": "KEKW", "amount": 1234}],
        "ffzEmotes": [{"id": "128054", "emote": "OMEGALUL", "amount": 321}],
        "twitchEmotes": [{"id": "25", "emote": "Kappa", "amount": 4321}],
        "lastMessageAt": "2024-01-01T00:00:00.000Z",
    }


@pytest.fixture
def channels_payload() -> list[dict[str, Any]]:
    """Response of GET /chatstats."""
    return [
        {"channel": "xqc", "messages": 50000},
        {"channel": "kaicenat", "messages": 42000},
    ]
