"""Domain schemas shared by the agent engine, the workflow orchestrator and the repositories."""
