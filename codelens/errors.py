class CodeLensError(Exception):
    """Base error for codelens."""


class FlowGenerationError(CodeLensError):
    """Raised by a flow generator that could not produce a usable response."""


class GraphFileError(CodeLensError):
    """Raised when a graph file cannot be read or parsed."""
