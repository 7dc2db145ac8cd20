import base64
import os

import pytest
from requests.adapters import HTTPAdapter

from conftest import FakeSession, make_response, make_status
from podlog.auth import BearerAuth
from podlog.client import ApiError, ResponseStream, RestClient, create_session
from podlog.config import Cluster, Context, User
from podlog.model.api_resource import NamespaceKind, PodKind


def test_url_for_namespaced_subresource(make_client):
    req = (
        make_client(FakeSession())
        .get()
        .resource("pods")
        .name("web-0")
        .sub_resource("log")
        .namespace("team-b")
        .param("follow", "true")
        .param("container", "app")
    )

    assert req.url() == (
        "https://kube.example.com:6443/api/v1/namespaces/team-b/pods/web-0/log"
        "?follow=true&container=app"
    )


def test_url_without_params_has_no_query(make_client):
    req = make_client(FakeSession()).get().resource(PodKind).name("web-0")

    assert req.url() == "https://kube.example.com:6443/api/v1/namespaces/team-a/pods/web-0"


def test_url_quotes_names(make_client):
    req = make_client(FakeSession()).get().resource("pods").name("a/b")

    assert req.url().endswith("/pods/a%2Fb")


def test_url_uses_default_namespace_when_context_has_none(make_client):
    context = Context(
        name="bare",
        user=User(name="admin"),
        cluster=Cluster(name="bare", server="https://bare.example.com/"),
    )
    req = make_client(FakeSession(), ctx=context).get().resource("pods").name("x")

    assert req.url() == "https://bare.example.com/api/v1/namespaces/default/pods/x"


def test_url_for_cluster_scoped_resource(make_client):
    req = make_client(FakeSession()).get().resource(NamespaceKind).name("team-a")

    assert req.url() == "https://kube.example.com:6443/api/v1/namespaces/team-a"


def test_namespace_on_cluster_scoped_resource_is_rejected(make_client):
    req = make_client(FakeSession()).get().resource("namespaces").namespace("x")

    with pytest.raises(ValueError):
        req.url()


def test_unknown_resource_is_rejected(make_client):
    with pytest.raises(ValueError, match="Unknown api resource"):
        make_client(FakeSession()).get().resource("widgets")


def test_subresource_without_name_fails_before_request(make_client):
    session = FakeSession([make_response()])
    req = make_client(session).get().resource("pods").name("").sub_resource("log")

    with pytest.raises(ValueError, match="resource name may not be empty"):
        req.stream()

    assert session.calls == []


def test_stream_passes_auth_and_tls(make_client, context):
    context.user.token = "s3cr3t"
    session = FakeSession([make_response(chunks=[b"x"])])
    client = make_client(session)

    with client.get().resource("pods").name("web-0").sub_resource("log").stream():
        pass

    method, _, kwargs = session.calls[0]
    assert method == "GET"
    assert kwargs["stream"] is True
    assert kwargs["auth"] == BearerAuth("s3cr3t")
    assert kwargs["verify"] is True
    assert kwargs["cert"] is None
    assert kwargs["timeout"] == (3, None)


def test_stream_iter_chunks_skips_empty_and_closes():
    response = make_response(chunks=[b"a", b"b"])

    with ResponseStream(response) as stream:
        assert list(stream.iter_chunks()) == [b"a", b"b"]

    assert stream.closed
    assert response.raw.released


def test_stream_error_parses_status(make_client):
    body = make_status(403, "Forbidden", "pods is forbidden")
    session = FakeSession([make_response(status=403, reason="Forbidden", chunks=[body])])

    with pytest.raises(ApiError) as excinfo:
        make_client(session).get().resource("pods").name("p").sub_resource("log").stream()

    exc = excinfo.value
    assert (exc.code, exc.reason, exc.message) == (403, "Forbidden", "pods is forbidden")
    assert exc.is_forbidden()
    assert not exc.is_retryable()


def test_api_error_from_non_status_body():
    response = make_response(status=502, reason="Bad Gateway", chunks=[b"upstream down\n"])

    exc = ApiError.from_response(response)

    assert exc.code == 502
    assert exc.reason == "Bad Gateway"
    assert exc.message == "upstream down"
    assert exc.is_retryable()


def test_client_writes_cert_blobs_and_cleans_up():
    blob = base64.b64encode(b"-----BEGIN CERTIFICATE-----\n").decode()
    context = Context(
        name="blobs",
        user=User(name="admin", client_cert_data=blob, client_key_data=blob),
        cluster=Cluster(name="blobs", server="https://blobs.example.com", ca_cert_data=blob),
    )
    session = FakeSession()

    client = RestClient(session=session, context=context)
    ca_path = client.tls_kwargs["verify"]
    cert_path, key_path = client.tls_kwargs["cert"]

    with open(ca_path, "rb") as fl:
        assert fl.read() == b"-----BEGIN CERTIFICATE-----\n"
    assert os.path.isfile(cert_path)
    assert os.path.isfile(key_path)

    client.close()

    assert session.closed
    assert not os.path.exists(ca_path)


def test_create_session_does_not_retry(context):
    session = create_session(context)

    adapter = session.get_adapter(context.cluster.server + "/api/v1")
    assert isinstance(adapter, HTTPAdapter)
    assert adapter.max_retries.total == 0

    session.close()
