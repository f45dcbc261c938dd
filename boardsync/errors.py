"""Exceptions raised by providers and the board session."""


class BoardSyncError(RuntimeError):
    """Base class for every error raised by boardsync."""


class StoreError(BoardSyncError):
    """The remote store rejected or failed a read or write."""


class FetchCancelled(BoardSyncError):
    """The initial item fetch was abandoned because its board view went away."""


class SessionClosed(BoardSyncError):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Board session for project '{project_id}' is closed")
