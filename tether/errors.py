"""Exception types shared across Tether services."""


class TetherError(Exception):
    """Base class for engine errors."""


class TransportError(TetherError):
    """The backend could not be reached or the stream broke. Retryable."""


class ProtocolError(TetherError):
    """The backend reported an error for the exchange. Not retryable."""


class ExchangeInProgressError(TetherError):
    """A send was attempted while an exchange is still streaming."""


class InvalidStateError(TetherError):
    """An operation was called from a state that does not allow it."""


class SendingDisabledError(TetherError):
    """The displayed session is imported and has not been continued."""


class SessionNotFoundError(TetherError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ExportNotFoundError(TetherError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Export not found: {path}")
        self.path = path


class MalformedExportError(TetherError):
    """An export file exists but cannot be decoded into the expected shape."""


class UnknownExportError(TetherError):
    """A folder does not look like any supported export."""


class ArtifactExistsError(TetherError):
    """A no-clobber write found the target artifact already present."""

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Artifact already exists: {artifact_id}")
        self.artifact_id = artifact_id
