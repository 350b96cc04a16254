"""
Custom Exceptions
Engine-specific error handling
"""


class AddOnEngineError(Exception):
    """Base exception for add-on engine errors."""

    pass


class ConfigurationError(AddOnEngineError):
    """Raised when a definition or its pattern config is malformed."""

    def __init__(self, detail: str = "Invalid add-on configuration", code: str | None = None):
        self.detail = detail
        self.code = code
        super().__init__(f"[{code}] {detail}" if code else detail)


class UnknownPatternError(ConfigurationError):
    """Raised when a definition names a pattern kind the engine does not know"""

    def __init__(self, pattern_kind: str, code: str | None = None):
        self.pattern_kind = pattern_kind
        super().__init__(f"Unknown conditional pattern: {pattern_kind}", code=code)


class ContextAssemblyError(AddOnEngineError):
    """Raised when a valid calculation context cannot be built for a visit"""

    def __init__(self, detail: str = "Could not assemble calculation context", visit_id: str | None = None):
        self.detail = detail
        self.visit_id = visit_id
        super().__init__(detail)


class RecordNotFoundError(AddOnEngineError):
    """Raised when a required record is missing"""

    def __init__(self, detail: str = "Record not found"):
        self.detail = detail
        super().__init__(detail)


class PersistenceError(AddOnEngineError):
    """Raised when the calculation history transaction fails"""

    def __init__(self, detail: str = "Failed to persist calculation history", visit_id: str | None = None):
        self.detail = detail
        self.visit_id = visit_id
        super().__init__(detail)
