import json
import types

import pytest
import requests

from twitterrss.models import Credentials


TWEETS = [
    {
        "id_str": "1002",
        "text": "Second tweet & newest",
        "source": "https://mobile.twitter.com",
        "created_at": "Tue Jan 02 10:00:00 +0000 2018",
    },
    {
        "id_str": "1001",
        "text": "First tweet",
        "source": "https://tweetdeck.twitter.com",
        "created_at": "Mon Jan 01 09:30:00 +0000 2018",
    },
]


def make_response(status_code=200, payload=None, text=None):
    """Build a minimal stand-in for requests.Response."""

    def raise_for_status():
        if status_code >= 400:
            raise requests.HTTPError(f"{status_code} Error")

    def json_body():
        if text is not None:
            return json.loads(text)
        return payload

    return types.SimpleNamespace(
        status_code=status_code,
        json=json_body,
        raise_for_status=raise_for_status,
    )


class FakeSession:
    """Records calls and replays queued token and timeline responses."""

    def __init__(self, server):
        self.server = server
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False

    def post(self, url, data=None, auth=None, timeout=None):
        self.server.token_calls.append({"url": url, "data": data, "auth": auth, "timeout": timeout})
        return self.server.next_token()

    def get(self, url, params=None, headers=None, timeout=None):
        self.server.timeline_calls.append(
            {"url": url, "params": params, "headers": headers, "timeout": timeout}
        )
        return self.server.next_timeline()


class FakeTwitter:
    """In-memory Twitter API used through FakeSession."""

    def __init__(self, tweets=None):
        self.tweets = list(TWEETS if tweets is None else tweets)
        self.token_calls = []
        self.timeline_calls = []
        self.sessions = []
        self.token_responses = []
        self.timeline_responses = []
        self._issued = 0

    def session_factory(self):
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    def next_token(self):
        if self.token_responses:
            return self.token_responses.pop(0)
        self._issued += 1
        return make_response(
            payload={"token_type": "bearer", "access_token": f"token-{self._issued}"}
        )

    def next_timeline(self):
        if self.timeline_responses:
            response = self.timeline_responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return make_response(payload=list(self.tweets))


@pytest.fixture
def fake_twitter():
    return FakeTwitter()


@pytest.fixture
def credentials():
    return Credentials(
        client_id="key",
        client_secret="secret",
        token_url="https://api.twitter.com/oauth2/token",
    )
