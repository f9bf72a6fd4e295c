"""HTTP API of the AI office: workflow runs, approvals and health checks."""
