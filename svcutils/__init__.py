"""Utilities for backend services: environment lookup, logging, caching, time helpers, sign-in, JWT/JWK, WSGI middleware, request ids and Datadog log forwarding."""

__version__ = "2.0.0"