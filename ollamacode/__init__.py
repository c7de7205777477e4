"""ollamacode - a terminal coding agent driving local Ollama models."""

__version__ = "0.1.0"

from ollamacode.config import Config

__all__ = ["Config", "__version__"]
