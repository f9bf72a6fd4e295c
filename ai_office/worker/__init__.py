"""Job worker: queue payloads and the polling runner that drives agent sessions and workflow runs."""
