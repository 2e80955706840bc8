"""denvig: local development projects, TLS certificates, gateway and services."""

__version__ = "0.4.0"
