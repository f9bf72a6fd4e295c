"""Policy subsystem for agent sessions.

The policy layer provides *runtime* decisions for the agentic loop, kept out of
prompts so that limits and approvals hold regardless of what the model says.

Components
----------

- ``SafetyGovernor``: hard stop signal based on a session's counters and its
  ``SafetyLimits`` (duration, actions, tokens, consecutive errors).
- ``ApprovalGate``: resolves whether a tool call is allowed, blocked or must
  wait for a human decision.
"""

from .approval_gate import ApprovalGate
from .models import Abort, Continue, GovernorVerdict
from .safety_governor import SafetyGovernor

__all__ = ["Abort", "ApprovalGate", "Continue", "GovernorVerdict", "SafetyGovernor"]
