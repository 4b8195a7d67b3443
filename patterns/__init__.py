"""Reusable patterns shared by verticals.

- workflow_states: explicit state machine for inbound webhook messages
- repository: generic async repository over one SQLAlchemy model
"""
