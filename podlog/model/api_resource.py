from typing import Dict, List, Optional

from podlog.model.api_group import ApiGroup, CoreV1


class ApiResource:
    """Represents a REST resource available on the kube API server."""

    def __init__(
        self,
        *,
        group: ApiGroup,
        kind: str,
        name: str,
        namespaced: bool,
        subresources: Optional[List[str]] = None,
    ) -> None:
        self.group = group
        self.kind = kind
        self.name = name
        self.namespaced = namespaced
        self.subresources = subresources or []

        self.qualified_name = f"{self.name}.{self.group.name}"

    def __repr__(self) -> str:
        return "<%s group=%r, kind=%r, name=%r, namespaced=%r>" % (
            self.__class__.__name__,
            self.group,
            self.kind,
            self.name,
            self.namespaced,
        )

    def has_subresource(self, name: str) -> bool:
        return name in self.subresources


PodKind = ApiResource(
    group=CoreV1,
    kind="Pod",
    name="pods",
    namespaced=True,
    subresources=["attach", "binding", "eviction", "exec", "log", "status"],
)
NamespaceKind = ApiResource(
    group=CoreV1,
    kind="Namespace",
    name="namespaces",
    namespaced=False,
    subresources=["finalize", "status"],
)

# resource name -> resource, for the resources this client knows how to address
KNOWN_RESOURCES: Dict[str, ApiResource] = {
    res.name: res for res in (PodKind, NamespaceKind)
}


def lookup_resource(name: str) -> ApiResource:
    res = KNOWN_RESOURCES.get(name)
    if res is None:
        raise ValueError("Unknown api resource: %r" % name)

    return res
