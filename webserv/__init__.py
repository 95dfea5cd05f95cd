"""A small HTTP/1.1 server configured by an nginx-style configuration file."""

__version__ = "0.1.0"