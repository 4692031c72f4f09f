"""
ACL token record as exported to the ACL report.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AclToken:
    """One ACL token.

    Attributes:
        id: Token ID
        name: Human-readable token name
        type: Token type (client or management)
        rules: HCL rule text, possibly multi-line
    """

    id: str
    name: str
    type: str
    rules: str = ""
