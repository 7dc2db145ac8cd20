import logging
from typing import BinaryIO, Dict, Optional

from podlog.client import Request, RestClient
from podlog.model.api_resource import PodKind
from podlog.sinks import DiscardSink
from podlog.tools.logs import CtxLogger
from podlog.tools.repr import disp_labels


class PodLogs:
    """
    Copies the log of a pod (container) to `output`, the way `kubectl logs`
    would print it.

    If `output` is None the log is read and discarded. An empty namespace
    means the request is not scoped and the client's default namespace is
    used.
    """

    def __init__(
        self,
        client: RestClient,
        namespace: Optional[str],
        pod_name: str,
        output: Optional[BinaryIO] = None,
        logger=None,
    ) -> None:
        self.client = client
        self.namespace = namespace
        self.pod_name = pod_name
        self.output = output
        self.logger = logger or logging.getLogger("podlogs")

        self.container_name: Optional[str] = None
        self.follow_flag = False
        self.label_selectors: Optional[Dict[str, str]] = None

    def __repr__(self) -> str:
        return "<%s namespace=%r, pod=%r, container=%r, follow=%r>" % (
            self.__class__.__name__,
            self.namespace,
            self.pod_name,
            self.container_name,
            self.follow_flag,
        )

    def container(self, name: str) -> "PodLogs":
        self.container_name = name
        return self

    def follow(self, flag: bool) -> "PodLogs":
        self.follow_flag = flag
        return self

    def label_selector(self, labels: Dict[str, str]) -> "PodLogs":
        self.label_selectors = labels
        return self

    def get_ctx_logger(self) -> CtxLogger:
        return CtxLogger(
            logger=self.logger,
            extra={"namespace": self.namespace or "-", "pod": self.pod_name},
            prefix="[%(namespace)s/%(pod)s] ",
        )

    def build_request(self) -> Request:
        req = (
            self.client.get()
            .resource(PodKind)
            .name(self.pod_name)
            .sub_resource("log")
            .param("follow", "true" if self.follow_flag else "false")
        )

        if self.namespace:
            req.namespace(self.namespace)
        if self.container_name:
            req.param("container", self.container_name)

        return req

    def collect(self) -> None:
        """
        Blocks until the whole log has been copied to the output. In follow
        mode that is when the server closes the stream.

        Errors from opening the stream or from the copy are raised as is.
        """

        log = self.get_ctx_logger()

        if self.label_selectors:
            log.warning(
                "Label selector %r is not applied to log requests",
                disp_labels(self.label_selectors),
            )

        output = self.output if self.output is not None else DiscardSink()
        req = self.build_request()

        with req.stream() as stream:
            num_bytes = 0
            for chunk in stream.iter_chunks():
                output.write(chunk)
                num_bytes += len(chunk)

        log.debug("Copied %s bytes of logs", num_bytes)
