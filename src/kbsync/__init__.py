"""Sincronizador de content assets hacia una base de conocimiento versionada."""

__version__ = "0.1.0"
