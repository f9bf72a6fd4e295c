"""Persistence layer for agents, approvals, action logs, workflow runs and jobs.

- ``interfaces``: repository Protocols consumed by services and the worker.
- ``models``: SQLAlchemy ORM rows.
- ``sql``: SQLAlchemy async implementations plus engine/session helpers.

The engine and the executor never import ``sql``; tests use in-memory fakes
that satisfy the Protocols.
"""
