"""Typed Discord ids and rotation value types."""
