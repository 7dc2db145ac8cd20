import json
from datetime import timedelta

import pytest
from requests import PreparedRequest
from requests.auth import HTTPBasicAuth

from podlog import auth as auth_module
from podlog.auth import AuthProvider, BearerAuth, CredentialsError
from podlog.config import Cluster, Context, ExecConfig, User
from podlog.tools.timekeeping import date_now


def make_context(**user_kwargs):
    return Context(
        name="dev",
        user=User(name="dev", **user_kwargs),
        cluster=Cluster(name="dev", server="https://dev.example.com"),
    )


class FakeProc:
    def __init__(self, returncode, stdout, stderr=b""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def communicate(self):
        return self.stdout, self.stderr


@pytest.fixture
def exec_calls(monkeypatch):
    calls = []
    outputs = []

    def fake_popen(args, env, stdout, stderr):
        calls.append((args, env))
        return outputs.pop(0)

    monkeypatch.setattr(auth_module.subprocess, "Popen", fake_popen)
    return calls, outputs


def exec_credential(token, expiry):
    doc = {
        "kind": "ExecCredential",
        "apiVersion": "client.authentication.k8s.io/v1beta1",
        "status": {"token": token, "expirationTimestamp": expiry.isoformat()},
    }
    return json.dumps(doc).encode()


def test_bearer_auth_sets_header():
    request = PreparedRequest()
    request.prepare(method="GET", url="https://dev.example.com/api")

    BearerAuth("tok")(request)

    assert request.headers["Authorization"] == "Bearer tok"


def test_static_token():
    provider = AuthProvider(make_context(token="tok"))

    assert provider.get_auth() == BearerAuth("tok")


def test_basic_auth():
    provider = AuthProvider(make_context(username="bob", password="hunter2"))

    assert provider.get_auth() == HTTPBasicAuth("bob", "hunter2")


def test_no_credentials():
    assert AuthProvider(make_context()).get_auth() is None


def test_exec_plugin(exec_calls):
    calls, outputs = exec_calls
    expiry = date_now() + timedelta(hours=1)
    outputs.append(FakeProc(0, exec_credential("tok-1", expiry)))

    cmd = ExecConfig(command="aws", args=["eks", "get-token"], env={"AWS_PROFILE": "x"})
    provider = AuthProvider(make_context(exec=cmd))

    assert provider.get_auth() == BearerAuth("tok-1")
    # cached until close to expiry
    assert provider.get_auth() == BearerAuth("tok-1")

    assert len(calls) == 1
    args, env = calls[0]
    assert args == ["aws", "eks", "get-token"]
    assert env["AWS_PROFILE"] == "x"


def test_exec_plugin_refreshes_before_expiry(exec_calls):
    calls, outputs = exec_calls
    outputs.append(FakeProc(0, exec_credential("old", date_now() + timedelta(minutes=2))))
    outputs.append(FakeProc(0, exec_credential("new", date_now() + timedelta(hours=1))))

    provider = AuthProvider(make_context(exec=ExecConfig(command="get-token")))

    assert provider.get_auth() == BearerAuth("old")
    assert provider.get_auth() == BearerAuth("new")
    assert len(calls) == 2


def test_exec_plugin_failure(exec_calls):
    _, outputs = exec_calls
    outputs.append(FakeProc(1, b"", b"expired sso session"))

    provider = AuthProvider(make_context(exec=ExecConfig(command="get-token")))

    with pytest.raises(CredentialsError, match="exited with code 1"):
        provider.get_auth()
