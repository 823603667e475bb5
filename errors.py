"""Error taxonomy for chat turns."""


class OrchestrationError(Exception):
    """Base class for failures raised while running a chat turn."""
    error_type = "internal_error"

    def to_payload(self) -> dict:
        return {"type": self.error_type, "message": str(self)}


class PreconditionError(OrchestrationError):
    """A required request field is missing or invalid."""
    error_type = "precondition_error"


class ModelInvocationError(OrchestrationError):
    """The language model call failed."""
    error_type = "model_error"


class ToolExecutionError(OrchestrationError):
    """A requested tool failed or is not registered."""
    error_type = "tool_error"


class ToolLoopLimitError(ToolExecutionError):
    """The model kept requesting tools past the per-turn iteration cap."""
    error_type = "tool_loop_limit"


class DocumentLoadError(OrchestrationError):
    """The uploaded file for a document turn could not be loaded."""
    error_type = "document_error"


class PersistenceError(OrchestrationError):
    """Writing or reading checkpoint, transcript or thread metadata failed."""
    error_type = "persistence_error"
