from unittest.mock import MagicMock

import pytest
import requests

from shared.api import create_app
from shared.auth import StaticTokenIdentity
from shared.errors import UpstreamUnavailable
from shared.radio import RadioRelay

PRIMARY = "http://primary.example/live"
FALLBACK = "http://fallback.example/live"
LAST = "http://last.example/live"


def feed(status=200, chunks=(b"ab", b"cd")):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.headers = {"Content-Type": "audio/aac"}
    response.iter_content.return_value = list(chunks)
    return response


def test_primary_is_used_when_up():
    session = MagicMock()
    session.get.return_value = feed()
    relay = RadioRelay([PRIMARY, FALLBACK], timeout=3, session=session)
    relay.open()
    session.get.assert_called_once_with(PRIMARY, stream=True, timeout=3)


def test_fallbacks_tried_in_order():
    bad = feed(status=503)
    good = feed()
    session = MagicMock()
    session.get.side_effect = [requests.ConnectionError("refused"), bad, good]
    relay = RadioRelay([PRIMARY, FALLBACK, LAST], session=session)

    assert relay.open() is good
    assert [c.args[0] for c in session.get.call_args_list] == [PRIMARY, FALLBACK, LAST]
    bad.close.assert_called_once()


def test_all_sources_failing():
    session = MagicMock()
    session.get.side_effect = requests.Timeout("slow")
    relay = RadioRelay([PRIMARY, FALLBACK], session=session)
    with pytest.raises(UpstreamUnavailable):
        relay.open()


def test_no_sources():
    relay = RadioRelay([], session=MagicMock())
    assert not relay.is_available
    with pytest.raises(UpstreamUnavailable):
        relay.open()


def test_at_most_two_fallbacks():
    with pytest.raises(ValueError):
        RadioRelay([PRIMARY, FALLBACK, LAST, "http://fourth.example/live"])


def test_iter_stream_closes_upstream():
    response = feed(chunks=(b"ab", b"", b"cd"))
    relay = RadioRelay([PRIMARY], session=MagicMock())
    assert list(relay.iter_stream(response)) == [b"ab", b"cd"]
    response.close.assert_called()


def make_app(config, storage, database, codec, session):
    relay = RadioRelay(config.radio_sources or [PRIMARY, FALLBACK], session=session)
    return create_app(config, storage=storage, database=database,
                      identity=StaticTokenIdentity({}), codec=codec, radio=relay).test_client()


def test_radio_route_relays_feed(config, storage, database, codec):
    session = MagicMock()
    session.get.side_effect = [requests.ConnectionError("down"), feed()]
    client = make_app(config, storage, database, codec, session)

    response = client.get("/stream")
    assert response.status_code == 200
    assert response.headers["Content-Type"] == "audio/aac"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.data == b"abcd"


def test_radio_route_502_when_all_sources_fail(config, storage, database, codec):
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("down")
    client = make_app(config, storage, database, codec, session)

    response = client.get("/stream")
    assert response.status_code == 502
    assert response.get_json() == {"error": "Radio stream unavailable"}
