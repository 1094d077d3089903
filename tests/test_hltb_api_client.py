from __future__ import annotations

import pytest

PORTAL_PAYLOAD = {
    "count": 2,
    "data": [
        {
            "game_id": 7231,
            "game_name": "Portal 2",
            "game_image": "portal2.jpg",
            "release_world": 2011,
            "comp_main": 30600,
            "comp_plus": 36000,
            "comp_100": 79200,
            "comp_all": 34200,
            "comp_main_count": 900,
        },
        {
            "game_id": 2198,
            "game_name": "Portal",
            "game_image": "portal.jpg",
            "release_world": 2007,
            "comp_main": 10800,
            "comp_plus": 14400,
            "comp_100": 18000,
            "comp_all": 12600,
        },
    ],
}


class _Resp:
    def __init__(self, status_code: int = 200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = ""

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _Session:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


class _Clock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def _client(responses, *, max_retries: int = 3):
    from hltb_resolver.clients import HLTBApiClient
    from hltb_resolver.utils import RetryPolicy

    session = _Session(responses)
    clock = _Clock()
    sleeps: list[float] = []
    c = HLTBApiClient(session=session, clock=clock, sleep=sleeps.append)
    c.retry = RetryPolicy(
        max_retries=max_retries, jitter_ratio=0.0, sleep=sleeps.append, stats=c.stats
    )
    return c, session, clock, sleeps


def test_search_posts_payload_and_converts_seconds_to_hours() -> None:
    from hltb_resolver.config import HLTB

    c, session, _clock, _sleeps = _client([_Resp(200, PORTAL_PAYLOAD)])
    out = c.search("Portal (2007)")

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == HLTB.search_api_url
    assert kwargs["json"]["searchTerms"] == ["Portal"]
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert kwargs["timeout"] == 10

    portal = out[1]
    assert portal.game_id == 2198
    assert portal.main_story == 3.0
    assert portal.main_extra == 4.0
    assert portal.completionist == 5.0
    assert portal.all_styles == 3.5
    assert portal.image_url == "https://howlongtobeat.com/games/portal.jpg"
    assert portal.release_year == 2007
    assert out[0].metadata["counts"]["comp_main_count"] == 900


def test_find_match_picks_exact_candidate() -> None:
    c, _session, _clock, _sleeps = _client([_Resp(200, PORTAL_PAYLOAD)])
    res = c.find_match("Portal")
    assert res is not None
    assert res.method == "exact"
    assert res.candidate.game_id == 2198
    assert c.stats["match_found"] == 1


def test_skip_listed_title_never_touches_the_network() -> None:
    c, session, _clock, _sleeps = _client([])
    res = c.find_match("Counter-Strike 2")
    assert res is not None and res.skip
    assert c.get_game_data("Counter-Strike 2") is None
    assert session.calls == []


def test_429_is_retried_after_retry_after_and_cooldown_clears_on_success() -> None:
    c, session, _clock, sleeps = _client(
        [_Resp(429, headers={"Retry-After": "5"}), _Resp(200, PORTAL_PAYLOAD)]
    )
    out = c.search("Portal")
    assert len(out) == 2
    assert len(session.calls) == 2
    assert sleeps == [5.0]
    assert c.stats["http_429"] == 1
    assert c.stats["retry_attempts"] == 1
    assert c.cooldown_remaining_s == 0.0


def test_persistent_429_installs_cooldown_that_rejects_without_io() -> None:
    from hltb_resolver.errors import RateLimitError

    c, session, clock, _sleeps = _client(
        [_Resp(429, headers={"Retry-After": "5"})], max_retries=0
    )
    with pytest.raises(RateLimitError):
        c.search("Portal")
    assert c.cooldown_remaining_s == 5.0

    with pytest.raises(RateLimitError):
        c.search("Portal 2")
    assert len(session.calls) == 1
    assert c.stats["cooldown_rejected"] == 1

    clock.t += 5.0
    session.responses.append(_Resp(200, PORTAL_PAYLOAD))
    assert len(c.search("Portal")) == 2


def test_server_errors_exhaust_retries_and_client_errors_do_not_retry() -> None:
    from hltb_resolver.errors import NetworkError

    c, session, _clock, sleeps = _client([_Resp(503)] * 4)
    with pytest.raises(NetworkError) as ei:
        c.search("Portal")
    assert ei.value.status_code == 503
    assert len(session.calls) == 4
    assert len(sleeps) == 3
    assert c.stats["search_failed"] == 1

    c, session, _clock, sleeps = _client([_Resp(403)])
    with pytest.raises(NetworkError):
        c.search("Portal")
    assert len(session.calls) == 1
    assert sleeps == []


def test_timeouts_map_to_retriable_network_error() -> None:
    import requests

    from hltb_resolver.errors import NetworkError

    c, session, _clock, _sleeps = _client(
        [requests.exceptions.Timeout("slow"), requests.exceptions.Timeout("slow")], max_retries=1
    )
    with pytest.raises(NetworkError) as ei:
        c.search("Portal")
    assert ei.value.status_code == 0
    assert len(session.calls) == 2
    assert c.stats["network_errors"] == 2


def test_malformed_response_fails_closed_without_retry() -> None:
    from hltb_resolver.errors import NetworkError

    for payload in ({"data": "nope"}, {"data": [{"game_id": 1}]}, None):
        c, session, _clock, _sleeps = _client([_Resp(200, payload)])
        with pytest.raises(NetworkError):
            c.search("Portal")
        assert len(session.calls) == 1


def test_empty_results_return_no_match() -> None:
    c, _session, _clock, _sleeps = _client([_Resp(200, {"count": 0, "data": []})])
    assert c.find_match("Some Obscure Game") is None
    assert c.stats["search_empty"] == 1
    assert c.stats["match_missing"] == 1


def test_batch_fetch_stops_on_rate_limit() -> None:
    c, session, _clock, sleeps = _client(
        [_Resp(200, PORTAL_PAYLOAD), _Resp(429, headers={"Retry-After": "30"})], max_retries=0
    )
    out = c.batch_fetch(["Portal", "Half-Life", "Celeste"], chunk_size=1, inter_chunk_delay_s=0.5)
    assert out["Portal"] is not None and out["Portal"].game_id == 2198
    assert out["Half-Life"] is None
    assert "Celeste" not in out
    assert len(session.calls) == 2
    assert sleeps == [0.5]
