import json
import logging

import pytest
import requests

from rb_scrobbler.core.client import ScrobbleClient
from rb_scrobbler.models.outcome import RecordOutcome
from rb_scrobbler.models.record import LogRecord, Rating
from rb_scrobbler.models.session import Credentials, Session

HEADER = "#AUDIOSCROBBLER/1.1\n#TZ/UNKNOWN\n#CLIENT/Rockbox sansae200 $Revision$\n"


def make_line(
    artist="Artist",
    album="Album",
    title="Title",
    track="1",
    duration="180",
    rating="L",
    timestamp="1700000000",
    mbid="",
):
    return "\t".join([artist, album, title, track, duration, rating, timestamp, mbid])


def make_log(*lines, header=HEADER):
    return header + "".join(line + "\n" for line in lines)


def make_record(title="Title", timestamp=1700000000, rating=Rating.LISTENED, line_number=4, **kwargs):
    kwargs.setdefault("artist", "Artist")
    kwargs.setdefault("duration_seconds", 180)
    return LogRecord(title=title, timestamp=timestamp, rating=rating, line_number=line_number, **kwargs)


def json_response(data, status=200, headers=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(data).encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    return resp


def scrobble_response(*codes):
    """track.scrobble response with one entry per ignoredMessage code."""
    items = [{"ignoredMessage": {"code": code, "#text": ""}} for code in codes]
    return json_response({
        "scrobbles": {
            "@attr": {
                "accepted": sum(1 for c in codes if c == "0"),
                "ignored": sum(1 for c in codes if c != "0"),
            },
            "scrobble": items if len(items) != 1 else items[0],
        }
    })


def session_response(name="rockboxer", key="SESSIONKEY"):
    return json_response({"session": {"name": name, "key": key, "subscriber": 0}})


def error_response(code, message="error", status=403):
    return json_response({"error": code, "message": message}, status=status)


class FakeHTTP:
    """Stands in for requests.Session; replays queued responses or exceptions."""

    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def post(self, url, data=None, timeout=None):
        self.calls.append({"url": url, "data": dict(data), "timeout": timeout})
        if not self.responses:
            raise AssertionError("Unexpected request")
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def methods(self):
        return [call["data"]["method"] for call in self.calls]


class StubClient(ScrobbleClient):
    """In-memory scrobbling service."""

    def __init__(self, max_batch_size=50, verdicts=None, fail_on_call=None, auth_error=None):
        self.max_batch_size = max_batch_size
        self.verdicts = verdicts or {}
        self.fail_on_call = fail_on_call or {}
        self.auth_error = auth_error
        self.authenticated = 0
        self.batches = []

    def authenticate(self, credentials):
        self.authenticated += 1
        if self.auth_error:
            raise self.auth_error
        return Session(key="stub", endpoint="stub://")

    def submit(self, batch):
        self.batches.append(list(batch))
        error = self.fail_on_call.get(len(self.batches))
        if error:
            raise error
        outcomes = []
        for record in batch:
            verdict = self.verdicts.get(record.title)
            if verdict is None:
                outcomes.append(RecordOutcome.accepted(record))
            else:
                outcomes.append(verdict(record))
        return outcomes


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    home = tmp_path / "config"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    return home


@pytest.fixture
def logger():
    return logging.getLogger("rb_scrobbler.tests")


@pytest.fixture
def credentials():
    return Credentials(api_key="KEY", api_secret="SECRET", username="rockboxer", password="hunter2")


@pytest.fixture
def delays():
    """Collects backoff delays; pass `sleep=delays.append` to a client."""
    return []
