class EngineError(Exception):
    """Base class for everything the engine raises on purpose."""


class NotFound(EngineError, LookupError):
    """No data for the requested key. An empty state, not a fault."""


class SessionNotFound(NotFound):
    def __init__(self, site_id: str, session_id: str):
        super().__init__(f"no replay data for session {session_id!r} on site {site_id!r}")
        self.site_id = site_id
        self.session_id = session_id


class MalformedInput(EngineError, ValueError):
    """A single chunk or row could not be parsed. Callers skip it and carry on."""


class MalformedChunk(MalformedInput):
    def __init__(self, sequence_id, reason: str):
        super().__init__(f"chunk seq={sequence_id}: {reason}")
        self.sequence_id = sequence_id


class MalformedRow(MalformedInput):
    def __init__(self, kind: str, reason: str):
        super().__init__(f"{kind} row: {reason}")
        self.kind = kind


class InvalidArgument(EngineError, ValueError):
    """A required key is missing; raised before any query runs."""


def require(**keys):
    missing = [k for k, v in keys.items() if v is None or (isinstance(v, str) and not v.strip())]
    if missing:
        raise InvalidArgument(f"missing required parameters: {', '.join(missing)}")
