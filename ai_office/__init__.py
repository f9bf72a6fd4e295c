"""AI Office.

This package contains the execution core used by AI Office to run autonomous,
tool-using agents and the multi-step workflows that chain them.

High-level architecture
-----------------------

The codebase is organized around two state machines:

- **Agent sessions**: one bounded execution attempt of one agent. A session
  alternates model calls and tool invocations under a safety governor and may
  pause for human approval before a sensitive tool runs.
- **Workflow runs**: a directed acyclic graph of typed nodes (trigger, agent,
  condition, approval, delay, output) walked in dependency order. A run may
  pause at an approval or delay node and resume later, in another process,
  from persisted state alone.

Core subpackages
----------------

- ``ai_office.agent_core``:

  - Domain schemas for sessions, action records and safety limits.
  - Policy primitives (safety governor, approval gate).
  - Tool capabilities, the tool registry and the tool invoker.
  - A LangGraph-based agentic loop with approval pause/resume.
  - Repository interfaces and SQL implementations for persistence.

- ``ai_office.workflow``:

  - Graph ordering, node handlers and the resumable workflow executor.

- ``ai_office.worker`` and ``ai_office.server``:

  - The job worker that drives runs from a persistent queue and the HTTP API
    used to start runs and resolve approvals.
"""
