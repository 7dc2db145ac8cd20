import argparse
import logging
import sys
from typing import Dict, List, Optional

from requests.exceptions import RequestException

from podlog.auth import CredentialsError
from podlog.client import ApiError, create_client
from podlog.config import Context, KubeConfigSelector, get_selector
from podlog.podlogs import PodLogs
from podlog.sinks import open_output
from podlog.tools.logs import configure_logging
from podlog.tools.terminal import TerminalPrinter


class FatalError(Exception):
    pass


def parse_labels(items: Optional[List[str]]) -> Dict[str, str]:
    labels = {}

    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise FatalError(f"Invalid label {item!r}, expected key=value")

        labels[key] = value

    return labels


class Program:
    def __init__(self, args: argparse.Namespace, printer=None) -> None:
        self.args = args
        self.logger = logging.getLogger("program")
        self.printer = printer or TerminalPrinter()

    def select_context(self, selector: KubeConfigSelector) -> Context:
        if self.args.context is None:
            context = selector.current_context()
            if context is None:
                raise FatalError("No current-context set, use --context")
            return context

        contexts = selector.fnmatch_context(self.args.context)
        if len(contexts) != 1:
            names = [ctx.name for ctx in contexts]
            raise FatalError(
                f"Need exactly 1 cluster context to run, matched: {names!r}"
            )

        return contexts[0]

    def run(self) -> int:
        try:
            labels = parse_labels(self.args.labels)
            context = self.select_context(get_selector())

            with create_client(context) as client:
                output = open_output(self.args.output)
                try:
                    pod_logs = PodLogs(
                        client, self.args.namespace, self.args.pod, output
                    )
                    pod_logs.container(self.args.container).follow(
                        self.args.follow
                    ).label_selector(labels)
                    pod_logs.collect()
                finally:
                    output.flush()
                    if output is not sys.stdout.buffer:
                        output.close()

        except KeyboardInterrupt:
            return 130

        except FatalError as exc:
            self.printer.loudln(str(exc))
            return 2

        except (ApiError, CredentialsError, RequestException) as exc:
            self.logger.debug("Collecting logs failed", exc_info=True)
            self.printer.loudln(f"Failed to collect logs: {exc}")
            return 1

        return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podlog", description="Copy the log of a pod container to a file"
    )
    parser.add_argument("pod", help="Name of the pod")
    parser.add_argument(
        "--context",
        dest="context",
        action="store",
        default=None,
        help=(
            "Kube context to use - matched like a filesystem wildcard, "
            "default: the current-context"
        ),
    )
    parser.add_argument(
        "-n",
        "--namespace",
        dest="namespace",
        action="store",
        default="",
        help="Namespace of the pod (default: the namespace of the context)",
    )
    parser.add_argument(
        "-c",
        "--container",
        dest="container",
        action="store",
        default="",
        help="Container to read from (default: the pod's only container)",
    )
    parser.add_argument(
        "-f",
        "--follow",
        dest="follow",
        action="store_true",
        help="Keep streaming new log lines (default: False)",
    )
    parser.add_argument(
        "-l",
        "--selector",
        dest="labels",
        action="append",
        help="Label selector as key=value, can be repeated",
    )
    parser.add_argument(
        "-o",
        "--output",
        dest="output",
        action="store",
        default="-",
        help="File to append the log to, default: - (stdout)",
    )
    parser.add_argument(
        "--logfile",
        dest="logfile",
        action="store",
        default=None,
        help="Write diagnostic logging to this file (default: stderr)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        action="store_true",
        help="Enable debug logging (default: False)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.WARNING
    configure_logging(filename=args.logfile, level=level)

    program = Program(args)
    return program.run()


if __name__ == "__main__":
    sys.exit(main())
