"""Publish/subscribe client node for IoT networks, with pluggable transports and wildcard topics."""

__version__ = "0.1.0"