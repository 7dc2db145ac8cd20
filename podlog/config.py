import base64
import fnmatch
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import yaml

from podlog.tools.repr import disp_secret_blob, disp_secret_string


class ExecConfig:
    """A client-go credential plugin, eg. `aws eks get-token`."""

    def __init__(
        self,
        *,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        api_version: Optional[str] = None,
    ) -> None:
        self.command = command
        self.args = args or []
        self.env = env or {}
        self.api_version = api_version

    def __repr__(self) -> str:
        return "<%s command=%r, args=%r, env=%r, api_version=%r>" % (
            self.__class__.__name__,
            self.command,
            self.args,
            list(self.env.keys()),
            self.api_version,
        )


class User:
    def __init__(
        self,
        *,
        name: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        client_cert_path: Optional[str] = None,
        client_key_path: Optional[str] = None,
        client_cert_data: Optional[str] = None,
        client_key_data: Optional[str] = None,
        exec: Optional[ExecConfig] = None,
    ) -> None:
        self.name = name
        self.username = username
        self.password = password
        self.token = token
        self.client_cert_path = client_cert_path
        self.client_key_path = client_key_path
        self.client_cert_data = client_cert_data
        self.client_key_data = client_key_data
        self.exec = exec

        # host.company.com -> host
        self.short_name = name.split(".")[0]

    def __repr__(self) -> str:
        return (
            "<%s name=%r, username=%r, password=%s, token=%s, "
            "client_cert_path=%r, client_key_path=%r, "
            "client_cert_data=%s, client_key_data=%s, exec=%r>"
        ) % (
            self.__class__.__name__,
            self.name,
            self.username,
            disp_secret_string(self.password),
            disp_secret_string(self.token),
            self.client_cert_path,
            self.client_key_path,
            disp_secret_blob(self.client_cert_data),
            disp_secret_blob(self.client_key_data),
            self.exec,
        )


class Cluster:
    def __init__(
        self,
        *,
        name: str,
        server: str,
        ca_cert_path: Optional[str] = None,
        ca_cert_data: Optional[str] = None,
        insecure_skip_tls_verify: bool = False,
    ) -> None:
        self.name = name
        self.server = server.rstrip("/")
        self.ca_cert_path = ca_cert_path
        self.ca_cert_data = ca_cert_data
        self.insecure_skip_tls_verify = insecure_skip_tls_verify

        # host.company.com -> host
        self.short_name = name.split(".")[0]

    def __repr__(self) -> str:
        return (
            "<%s name=%r, server=%r, ca_cert_path=%r, ca_cert_data=%r, "
            "insecure_skip_tls_verify=%r>"
        ) % (
            self.__class__.__name__,
            self.name,
            self.server,
            self.ca_cert_path,
            disp_secret_blob(self.ca_cert_data),
            self.insecure_skip_tls_verify,
        )


class Context:
    def __init__(
        self,
        *,
        name: str,
        user: User,
        cluster: Cluster,
        namespace: Optional[str] = None,
    ) -> None:
        self.name = name
        self.user = user
        self.cluster = cluster
        self.namespace = namespace
        self.file: "KubeConfigFile" = None  # type: ignore

        # host.company.com -> host
        self.short_name = name.split(".")[0]

    def __repr__(self) -> str:
        return "<%s name=%r, short_name=%r, user=%r, cluster=%r, namespace=%r>" % (
            self.__class__.__name__,
            self.name,
            self.short_name,
            self.user,
            self.cluster,
            self.namespace,
        )

    def set_file(self, file: "KubeConfigFile") -> None:
        self.file = file

    def write_blob(self, dirname: str, filename: str, blob: str) -> str:
        filepath = os.path.join(dirname, filename)
        content = base64.b64decode(blob)

        fd = os.open(filepath, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fl:
            fl.write(content)

        return filepath

    def create_tls_kwargs(self, dirname: str) -> Dict[str, Any]:
        """
        Returns the `verify` and `cert` keyword arguments for requests.

        requests only accepts file paths for certs and keys, so blobs from the
        kube config are written into `dirname`. The caller owns `dirname` and
        must keep it alive for as long as the kwargs are in use.
        """

        kwargs: Dict[str, Any] = {"verify": True, "cert": None}

        if self.cluster.insecure_skip_tls_verify:
            kwargs["verify"] = False

        elif self.cluster.ca_cert_path:
            kwargs["verify"] = self.cluster.ca_cert_path

        elif self.cluster.ca_cert_data:
            kwargs["verify"] = self.write_blob(
                dirname, "ca.crt", self.cluster.ca_cert_data
            )

        if self.user.client_cert_data and self.user.client_key_data:
            kwargs["cert"] = (
                self.write_blob(dirname, "client.crt", self.user.client_cert_data),
                self.write_blob(dirname, "client.key", self.user.client_key_data),
            )

        elif self.user.client_cert_path and self.user.client_key_path:
            kwargs["cert"] = (self.user.client_cert_path, self.user.client_key_path)

        return kwargs


class KubeConfigFile:
    def __init__(
        self,
        *,
        filepath: str,
        contexts: Sequence[Context],
        users: Sequence[User],
        clusters: Sequence[Cluster],
        current_context: Optional[str] = None,
    ) -> None:
        self.filepath = filepath
        self.contexts = contexts or []
        self.users = users or []
        self.clusters = clusters or []
        self.current_context = current_context

    def __repr__(self) -> str:
        return "<%s filepath=%r, contexts=%r, current_context=%r>" % (
            self.__class__.__name__,
            self.filepath,
            self.contexts,
            self.current_context,
        )


class KubeConfigCollection:
    def __init__(self) -> None:
        self.clusters: Dict[str, Cluster] = {}
        self.contexts: Dict[str, Context] = {}
        self.users: Dict[str, User] = {}

        # the first file to declare a current-context wins, like kubectl
        self.current_context: Optional[str] = None

    def add_file(self, config_file: KubeConfigFile) -> None:
        # NOTE: does not enforce uniqueness of context/user/cluster names

        for cluster in config_file.clusters:
            self.clusters[cluster.name] = cluster

        for context in config_file.contexts:
            self.contexts[context.name] = context

        for user in config_file.users:
            self.users[user.name] = user

        if self.current_context is None and config_file.current_context:
            self.current_context = config_file.current_context

    def get_context_names(self) -> Sequence[str]:
        names = list(self.contexts.keys())
        names.sort()
        return names

    def get_context(self, name) -> Optional[Context]:
        return self.contexts.get(name)


class KubeConfigSelector:
    def __init__(self, *, collection: KubeConfigCollection) -> None:
        self.collection = collection

    def fnmatch_context(self, pattern: str) -> List[Context]:
        names = self.collection.get_context_names()
        names = fnmatch.filter(names, pattern)
        objs = [self.collection.get_context(name) for name in names]
        contexts = [ctx for ctx in objs if ctx]
        return contexts

    def current_context(self) -> Optional[Context]:
        name = self.collection.current_context
        if not name:
            return None

        return self.collection.get_context(name)


class KubeConfigLoader:
    def __init__(
        self, *, config_dir="$HOME/.kube", config_var="KUBECONFIG", logger=None
    ) -> None:
        self.config_dir = config_dir
        self.config_var = config_var
        self.logger = logger or logging.getLogger("config-loader")

    def get_candidate_files(self) -> Sequence[str]:
        # use config_var if set
        env_var = os.getenv(self.config_var)
        if env_var:
            filepaths = env_var.split(os.pathsep)
            filepaths = [fp.strip() for fp in filepaths if fp.strip()]
            return filepaths

        # fall back on config_dir
        path = os.path.expandvars(self.config_dir)
        if not os.path.isdir(path):
            return []

        filepaths = []
        for fn in sorted(os.listdir(path)):
            fp = os.path.join(path, fn)
            if not os.path.isfile(fp):
                continue

            filepaths.append(fp)

        return filepaths

    def take_after_last_slash(self, name: str) -> str:
        # arn:aws:iam::123:role/myrole -> myrole
        if name and "/" in name:
            name = name.rsplit("/", 1)[1]

        return name

    def parse_context(
        self, clusters: Sequence[Cluster], users: Sequence[User], dct
    ) -> Optional[Context]:
        name = self.take_after_last_slash(dct.get("name"))

        obj = dct.get("context") or {}
        cluster_id = self.take_after_last_slash(obj.get("cluster"))
        user_id = self.take_after_last_slash(obj.get("user"))
        namespace = obj.get("namespace")

        # 'name', 'cluster' and 'user' are required attributes
        if not all((name, cluster_id, user_id)):
            return None

        matching_users = [user for user in users if user.name == user_id]
        if not matching_users:
            self.logger.warning(
                "When parsing context %r could not find matching user %r",
                name,
                user_id,
            )

        matching_clusters = [clus for clus in clusters if clus.name == cluster_id]
        if not matching_clusters:
            self.logger.warning(
                "When parsing context %r could not find matching cluster %r",
                name,
                cluster_id,
            )

        if matching_users and matching_clusters:
            return Context(
                name=name,
                user=matching_users[0],
                cluster=matching_clusters[0],
                namespace=namespace,
            )

        return None

    def parse_cluster(self, dct) -> Optional[Cluster]:
        name = self.take_after_last_slash(dct.get("name"))

        obj = dct.get("cluster") or {}
        server = obj.get("server")

        # 'name' and 'server' are required attributes
        if name and server:
            return Cluster(
                name=name,
                server=server,
                ca_cert_path=obj.get("certificate-authority"),
                ca_cert_data=obj.get("certificate-authority-data"),
                insecure_skip_tls_verify=bool(obj.get("insecure-skip-tls-verify")),
            )

        return None

    def parse_exec(self, dct) -> Optional[ExecConfig]:
        if not dct or not dct.get("command"):
            return None

        # env is a list of {name, value} pairs in the kube config
        env = {item["name"]: item["value"] for item in dct.get("env") or []}

        return ExecConfig(
            command=dct["command"],
            args=dct.get("args") or [],
            env=env,
            api_version=dct.get("apiVersion"),
        )

    def parse_user(self, dct) -> Optional[User]:
        name = self.take_after_last_slash(dct.get("name"))

        obj = dct.get("user") or {}

        # 'name' is the only required attribute
        if name:
            return User(
                name=name,
                username=obj.get("username"),
                password=obj.get("password"),
                token=obj.get("token"),
                client_cert_path=obj.get("client-certificate"),
                client_key_path=obj.get("client-key"),
                client_cert_data=obj.get("client-certificate-data"),
                client_key_data=obj.get("client-key-data"),
                exec=self.parse_exec(obj.get("exec")),
            )

        return None

    def load_file(self, filepath: str) -> Optional[KubeConfigFile]:
        with open(filepath, "rb") as fl:
            try:
                dct = yaml.load(fl, Loader=yaml.SafeLoader)
            except yaml.YAMLError:
                self.logger.warning("Failed to parse kube config as yaml: %s", filepath)
                return None

        if not isinstance(dct, dict) or dct.get("kind") != "Config":
            self.logger.warning("Kube config does not have kind: Config: %s", filepath)
            return None

        clust_list = [self.parse_cluster(clus) for clus in dct.get("clusters") or []]
        clusters = [cluster for cluster in clust_list if cluster]

        user_list = [self.parse_user(user) for user in dct.get("users") or []]
        users = [user for user in user_list if user]

        ctx_list = [
            self.parse_context(clusters, users, ctx)
            for ctx in dct.get("contexts") or []
        ]
        contexts = [ctx for ctx in ctx_list if ctx]

        # The context is the organizing principle of a kube config so if we
        # didn't find any we failed to parse the file
        if not contexts:
            return None

        config_file = KubeConfigFile(
            filepath=filepath,
            contexts=contexts,
            users=users,
            clusters=clusters,
            current_context=self.take_after_last_slash(dct.get("current-context")),
        )

        for context in contexts:
            context.set_file(config_file)

        return config_file

    def create_collection(self) -> KubeConfigCollection:
        collection = KubeConfigCollection()

        for filepath in self.get_candidate_files():
            if not os.path.isfile(filepath):
                self.logger.debug("Skipping missing kube config: %s", filepath)
                continue

            config_file = self.load_file(filepath)
            if config_file:
                collection.add_file(config_file)

        return collection


def get_selector() -> KubeConfigSelector:
    loader = KubeConfigLoader()
    collection = loader.create_collection()
    selector = KubeConfigSelector(collection=collection)
    return selector
