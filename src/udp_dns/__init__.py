"""
UDP DNS Lookup Session Protocol

Client and server state machines exchanging JSON lookup messages over UDP.
"""

__version__ = "1.0.0"
