"""A small non-blocking HTTP/1.1 server with nginx-style configuration, CGI and sessions."""

__version__ = "1.0.0"