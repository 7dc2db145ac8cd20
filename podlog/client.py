import logging
import tempfile
from typing import Any, Dict, Iterator, Optional, Union
from urllib.parse import quote, urlencode

import requests
from requests.adapters import HTTPAdapter

from podlog.auth import AuthProvider
from podlog.config import Context
from podlog.model.api_resource import ApiResource, lookup_resource
from podlog.tools.logs import CtxLogger


class ApiError(Exception):
    def __init__(self, code: int, reason: str, message: str) -> None:
        super().__init__()

        self.code = code
        self.reason = reason
        self.message = message

    def __repr__(self) -> str:
        return "%s(code=%r, reason=%r, message=%r)" % (
            self.__class__.__name__,
            self.code,
            self.reason,
            self.message,
        )

    def __str__(self) -> str:
        return self.__repr__()

    @classmethod
    def from_response(cls, response: requests.Response) -> "ApiError":
        # the api server replies with a Status object on failure, but a proxy
        # in front of it may not
        try:
            dct = response.json()
        except ValueError:
            dct = None

        if isinstance(dct, dict) and dct.get("kind") == "Status":
            return cls(
                code=dct.get("code") or response.status_code,
                reason=dct.get("reason") or response.reason,
                message=dct.get("message") or "",
            )

        return cls(
            code=response.status_code,
            reason=response.reason,
            message=response.text.strip(),
        )

    def is_not_found(self) -> bool:
        return self.code == 404

    def is_forbidden(self) -> bool:
        return self.code in (401, 403)

    def is_retryable(self) -> bool:
        return self.code in (429, 500, 502, 503, 504)


class ResponseStream:
    """A streaming response body. Closing it releases the connection."""

    def __init__(self, response: requests.Response) -> None:
        self.response = response
        self.closed = False

    def __enter__(self) -> "ResponseStream":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def iter_chunks(self, chunk_size: Optional[int] = None) -> Iterator[bytes]:
        # chunk_size=None yields data as it arrives, which is what we want when
        # following a log that only grows a line at a time
        for chunk in self.response.iter_content(chunk_size=chunk_size):
            if chunk:
                yield chunk

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.response.close()


class Request:
    """
    Builds a request against a single api resource, eg:

        client.get().resource("pods").name("web-0").sub_resource("log")

    A request that is not scoped to a namespace is issued against the
    client's default namespace when the resource is namespaced.
    """

    def __init__(self, client: "RestClient", verb: str = "GET") -> None:
        self.client = client
        self.verb = verb

        self.res: Optional[ApiResource] = None
        self.object_name: Optional[str] = None
        self.subresource_name: Optional[str] = None
        self.namespace_name: Optional[str] = None
        self.params: Dict[str, str] = {}

    def __repr__(self) -> str:
        return "<%s verb=%r, resource=%r, name=%r, subresource=%r, namespace=%r>" % (
            self.__class__.__name__,
            self.verb,
            self.res.name if self.res else None,
            self.object_name,
            self.subresource_name,
            self.namespace_name,
        )

    def resource(self, res: Union[str, ApiResource]) -> "Request":
        self.res = lookup_resource(res) if isinstance(res, str) else res
        return self

    def name(self, name: str) -> "Request":
        self.object_name = name
        return self

    def sub_resource(self, name: str) -> "Request":
        self.subresource_name = name
        return self

    def namespace(self, namespace: str) -> "Request":
        self.namespace_name = namespace
        return self

    def param(self, key: str, value: str) -> "Request":
        self.params[key] = value
        return self

    def effective_namespace(self) -> Optional[str]:
        assert self.res is not None  # help mypy

        if not self.res.namespaced:
            return None

        return self.namespace_name or self.client.default_namespace

    def pretty(self) -> str:
        parts = [self.effective_namespace(), self.object_name, self.subresource_name]
        return "/".join(part for part in parts if part)

    def url(self) -> str:
        if self.res is None:
            raise ValueError("Request has no resource")

        if self.namespace_name and not self.res.namespaced:
            raise ValueError("Cannot scope %s by namespace" % self.res.kind)

        if self.subresource_name and not self.object_name:
            raise ValueError("resource name may not be empty")

        if self.subresource_name and not self.res.has_subresource(self.subresource_name):
            raise ValueError(
                "%s has no subresource %r" % (self.res.kind, self.subresource_name)
            )

        server = self.client.context.cluster.server
        prefix = self.res.group.endpoint
        url = f"{server}{prefix}"

        namespace = self.effective_namespace()
        if namespace:
            url = f"{url}/namespaces/{quote(namespace, safe='')}"

        url = f"{url}/{self.res.name}"

        if self.object_name:
            url = f"{url}/{quote(self.object_name, safe='')}"

        if self.subresource_name:
            url = f"{url}/{self.subresource_name}"

        if self.params:
            query = urlencode(self.params)
            url = f"{url}?{query}"

        return url

    def stream(self) -> ResponseStream:
        url = self.url()
        log = self.client.get_ctx_logger(self)

        log.info("Opening stream on %s", url)
        response = self.client.session.request(
            self.verb,
            url,
            stream=True,
            allow_redirects=True,
            **self.client.get_request_kwargs(),
        )

        if not response.ok:
            try:
                exc = ApiError.from_response(response)
            finally:
                response.close()

            log.info("Stream request failed: %r", exc)
            raise exc

        log.debug("Stream opened with status %s", response.status_code)
        return ResponseStream(response)


class RestClient:
    def __init__(
        self,
        *,
        session: requests.Session,
        context: Context,
        connect_timeout_s: float = 3,
        logger=None,
    ) -> None:
        self.session = session
        self.context = context
        self.connect_timeout_s = connect_timeout_s
        self.logger = logger or logging.getLogger("client")

        self.auth_provider = AuthProvider(context)

        # holds cert/key blobs from the kube config while the client is alive
        self.tempdir = tempfile.TemporaryDirectory(prefix="podlog-client.")
        self.tls_kwargs = context.create_tls_kwargs(self.tempdir.name)

    def __repr__(self) -> str:
        return "<%s context=%r, server=%r>" % (
            self.__class__.__name__,
            self.context.name,
            self.context.cluster.server,
        )

    def __enter__(self) -> "RestClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def default_namespace(self) -> str:
        return self.context.namespace or "default"

    def get_ctx_logger(self, request: Request) -> CtxLogger:
        return CtxLogger(
            logger=self.logger,
            extra={"context": self.context.short_name, "target": request.pretty()},
            prefix="[%(context)s] [%(target)s] ",
        )

    def get_request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = dict(
            auth=self.auth_provider.get_auth(),
            # no read timeout: a followed log may stay quiet for a long time
            timeout=(self.connect_timeout_s, None),
        )
        kwargs.update(self.tls_kwargs)
        return kwargs

    def get(self) -> Request:
        return Request(self, verb="GET")

    def close(self) -> None:
        self.session.close()
        self.tempdir.cleanup()


def create_session(context: Context) -> requests.Session:
    """Create a session that does not retry, retrying is up to the caller."""

    session = requests.Session()
    session.mount(prefix=context.cluster.server, adapter=HTTPAdapter(max_retries=0))
    return session


def create_client(context: Context, **kwargs) -> RestClient:
    session = create_session(context)
    return RestClient(session=session, context=context, **kwargs)
