import io
import json

import pytest
import requests

from podlog.client import RestClient
from podlog.config import Cluster, Context, User


class FakeRaw(io.BytesIO):
    """Response body that yields the given chunks one read at a time."""

    def __init__(self, chunks, exc=None) -> None:
        super().__init__()
        self.chunks = list(chunks)
        self.exc = exc
        self.released = False

    def read(self, size=-1):
        if self.chunks:
            return self.chunks.pop(0)
        if self.exc is not None:
            raise self.exc
        return b""

    def release_conn(self):
        self.released = True


def make_response(status=200, chunks=(), reason="OK", exc=None, url=None):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.encoding = "utf-8"
    response.url = url or "https://kube.example.com/"
    response.raw = FakeRaw(chunks, exc=exc)
    return response


def make_status(code, reason, message):
    body = {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "message": message,
        "reason": reason,
        "code": code,
    }
    return json.dumps(body).encode()


class FakeSession:
    def __init__(self, responses=(), exc=None) -> None:
        self.responses = list(responses)
        self.exc = exc
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.responses.pop(0)

    def close(self):
        self.closed = True

    @property
    def last_url(self):
        return self.calls[-1][1]


@pytest.fixture
def context():
    user = User(name="admin")
    cluster = Cluster(name="kind-dev", server="https://kube.example.com:6443")
    return Context(name="kind-dev", user=user, cluster=cluster, namespace="team-a")


@pytest.fixture
def make_client(context):
    clients = []

    def factory(session, ctx=None):
        client = RestClient(session=session, context=ctx or context)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()
