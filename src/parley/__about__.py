__version__ = "0.1.0"
__author__ = "Parley contributors"
__copyright__ = f"Copyright (c) 2026, {__author__}."
__docs__ = "Client for OpenAI-compatible chat completions with streaming and tool calls."

__all__ = [
    "__author__",
    "__copyright__",
    "__docs__",
    "__version__",
]
