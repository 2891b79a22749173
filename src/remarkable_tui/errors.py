from __future__ import annotations


class RemarkableError(RuntimeError):
    """Base class for failures surfaced to the user as a status message."""

    kind = "error"


class NetworkError(RemarkableError):
    kind = "network"


class ProtocolError(RemarkableError):
    kind = "protocol"


class NotFound(RemarkableError):
    kind = "not_found"


class LocalIOError(RemarkableError):
    kind = "local_io"


class AlreadyInProgress(RemarkableError):
    kind = "already_in_progress"

    def __init__(self, folder_id: str, local_path: str) -> None:
        super().__init__(f"transfer already in progress: {local_path}")
        self.folder_id = folder_id
        self.local_path = local_path


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, RemarkableError):
        return exc.kind
    return "unexpected"
