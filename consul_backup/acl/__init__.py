"""
ACL export for consul-backup.

Tokens are dumped to a human-readable report next to the KV snapshot.
ACL restore is not supported.
"""

from .dump import AclDumpWriter, format_token
from .models import AclToken

__all__ = ["AclDumpWriter", "AclToken", "format_token"]
