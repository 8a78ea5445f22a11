"""Prompt builders and deterministic templates."""
