from typing import Optional


class DocbacError(Exception):
    def __init__(self, msg: Optional[str] = None):
        super().__init__(msg)


class ConfigurationError(DocbacError):
    pass


class ContainerRuntimeError(DocbacError):
    pass


class ContainerNotFoundError(ContainerRuntimeError):
    pass


class ComposeError(DocbacError):
    pass


class StateStoreError(DocbacError):
    pass


class RemoteStorageError(DocbacError):
    pass


class ArchiveError(DocbacError):
    pass
