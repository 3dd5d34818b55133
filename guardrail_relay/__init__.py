"""Guardrail relay: domain chat service mediated by an external guardrail gateway."""

__version__ = "1.0.0"
