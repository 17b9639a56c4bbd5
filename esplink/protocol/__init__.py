# protocol/__init__.py

# Core classes
from .core import Protocol, LineFramer, WireMessage

__all__ = [
    "Protocol",
    "LineFramer", "WireMessage"]
