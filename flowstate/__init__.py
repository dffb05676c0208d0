"""FlowState: flow-session tracking, interruption cost and pattern analysis."""

from .cli import main

__version__ = "0.1.0"

__all__ = ["main", "__version__"]
