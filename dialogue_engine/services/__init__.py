"""Dialogue engine services.

Modules are imported directly (e.g. dialogue_engine.services.turn_service)
because the prompt builders depend on the similarity kernel.
"""
