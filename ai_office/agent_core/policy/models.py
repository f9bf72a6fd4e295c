from __future__ import annotations

"""Policy decision values.

The safety governor answers with one of two frozen values so that callers can
branch with ``isinstance`` instead of inspecting flags.
"""

from dataclasses import dataclass
from typing import Union

from ..schemas.domain import AbortReason


@dataclass(frozen=True)
class Continue:
    """The session may run another step."""


@dataclass(frozen=True)
class Abort:
    """The session must stop.

    Attributes:
        reason: which limit tripped.
        detail: human-readable explanation with the observed value and the limit.
    """

    reason: AbortReason
    detail: str = ""


GovernorVerdict = Union[Continue, Abort]

CONTINUE = Continue()
