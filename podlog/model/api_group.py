class ApiGroup:
    """
    A versioned API group as served by the kube API server, eg. for apps/v1:

    {
      "name": "apps",
      "versions": [{"groupVersion": "apps/v1", "version": "v1"}],
      ...
    }

    The core group is special: it has no name in the url and lives under
    `/api/v1` rather than `/apis/<group>/<version>`.
    """

    def __init__(self, *, name: str, endpoint: str, version: str) -> None:
        self.name = name
        self.endpoint = endpoint
        self.version = version

    def __repr__(self) -> str:
        return "<%s name=%r, endpoint=%r, version=%r>" % (
            self.__class__.__name__,
            self.name,
            self.endpoint,
            self.version,
        )


CoreV1 = ApiGroup(name="core", endpoint="/api/v1", version="v1")
