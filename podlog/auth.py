import json
import logging
import os
import subprocess
from datetime import datetime, timedelta
from typing import Optional, Union

import humanize
from dateutil.parser import parse as parse_date
from requests import PreparedRequest
from requests.auth import AuthBase, HTTPBasicAuth

from podlog.config import Context
from podlog.tools.timekeeping import date_now


class BearerAuth(AuthBase):
    """Attaches a bearer token, which requests does not ship an auth class for."""

    def __init__(self, token: str) -> None:
        self.token = token

    def __eq__(self, other) -> bool:
        return isinstance(other, BearerAuth) and self.token == other.token

    def __call__(self, request: PreparedRequest) -> PreparedRequest:
        request.headers["Authorization"] = f"Bearer {self.token}"
        return request


Auth = Union[HTTPBasicAuth, BearerAuth]


class CredentialsError(Exception):
    pass


class AuthContainer:
    def __init__(
        self, *, auth: Optional[Auth], expiry_date: Optional[datetime] = None
    ) -> None:
        self.auth = auth
        self.expiry_date = expiry_date

    def has_expired(self) -> bool:
        if self.expiry_date is None:
            return False

        # Trigger a refresh a few minutes before the deadline to account for
        # clock skew. Otherwise we assume the credentials are still good but
        # they may be considered expired by the API server.
        return date_now() >= (self.expiry_date - timedelta(minutes=5))


class AuthProvider:
    def __init__(self, context: Context, logger=None) -> None:
        self.context = context
        self.logger = logger or logging.getLogger("auth")

        self.container: Optional[AuthContainer] = None  # lazy attribute

    def run_exec_plugin(self) -> AuthContainer:
        cmd = self.context.user.exec
        assert cmd is not None  # help mypy

        args = [cmd.command] + cmd.args

        environ = dict(os.environ)
        environ.update(cmd.env)

        proc = subprocess.Popen(
            args=args,
            env=environ,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        stdout_bytes, stderr_bytes = proc.communicate()
        stdout, stderr = stdout_bytes.decode(), stderr_bytes.decode()

        if proc.returncode != 0:
            self.logger.error(
                "Failed to obtain exec credentials:"
                "\nexit_code: %s\nstdout: <<<%s>>>\nstderr: <<<%s>>>",
                proc.returncode,
                stdout.strip(),
                stderr.strip(),
            )
            raise CredentialsError(
                "Exec credential plugin %r exited with code %s"
                % (cmd.command, proc.returncode)
            )

        doc = json.loads(stdout)
        status = doc.get("status") or {}
        token = status.get("token")
        if not token:
            raise CredentialsError(
                "Exec credential plugin %r returned no token" % cmd.command
            )

        expiry_date = None
        expiration_timestamp = status.get("expirationTimestamp")

        if expiration_timestamp:
            expiry_date = parse_date(expiration_timestamp)
            time_left = humanize.naturaldelta(expiry_date - date_now())

            self.logger.info(
                "[%s] Successfully obtained exec credentials valid until: %s, "
                "will expire in: %s",
                self.context.short_name,
                expiry_date,
                time_left,
            )

        return AuthContainer(auth=BearerAuth(token=token), expiry_date=expiry_date)

    def create_container(self) -> AuthContainer:
        user = self.context.user

        if user.token:
            return AuthContainer(auth=BearerAuth(token=user.token))

        if user.username and user.password:
            auth = HTTPBasicAuth(user.username, user.password)
            return AuthContainer(auth=auth)

        if user.exec:
            return self.run_exec_plugin()

        # client certs (if any) are handled by the tls layer
        return AuthContainer(auth=None)

    def get_auth(self) -> Optional[Auth]:
        if self.container is None or self.container.has_expired():
            self.container = self.create_container()

        return self.container.auth
