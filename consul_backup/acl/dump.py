"""
ACL dump writer.

Writes ACL tokens to a human-readable report. This is an export-only
format: there is no restore counterpart, and rules are written verbatim.

Report format (per token):
    ====
    ID: <id>
    Name: <name>
    Type: <type>
    Rules:
    <rules>
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from ..snapshot.files import atomic_write_text
from .models import AclToken

logger = logging.getLogger(__name__)


def format_token(token: AclToken) -> str:
    """Render one token block."""
    return (
        f"====\n"
        f"ID: {token.id}\n"
        f"Name: {token.name}\n"
        f"Type: {token.type}\n"
        f"Rules:\n"
        f"{token.rules}\n"
    )


class AclDumpWriter:
    """Writes ACL token reports.

    Example:
        >>> count = AclDumpWriter().dump(tokens, "acl.bkp")
    """

    def render(self, tokens: Iterable[AclToken]) -> str:
        """Build the report content."""
        return "".join(format_token(t) for t in tokens)

    def dump(self, tokens: Iterable[AclToken], destination: str | Path) -> int:
        """Write the report, replacing any existing file.

        Args:
            tokens: Tokens to export
            destination: Report file path

        Returns:
            Number of tokens written

        Raises:
            SnapshotWriteError: If the file cannot be created or written
        """
        token_list = list(tokens)
        size_bytes, _ = atomic_write_text(destination, self.render(token_list))
        logger.info(
            "ACL report written",
            extra={"path": str(destination), "tokens": len(token_list), "size_bytes": size_bytes},
        )
        return len(token_list)
