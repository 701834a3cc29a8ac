"""Credential lookup for the external CLI.

A credential is looked up on every execution, never cached, so a rotated
key takes effect on the next run.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Protocol

_OWNER_UNSAFE = re.compile(r"[^A-Z0-9]+")


class CredentialProvider(Protocol):
    async def get_active_credential(self, owner_id: str) -> str | None:
        """Return the owner's active credential, or ``None`` if there is none."""
        ...


class EnvCredentialProvider:
    """Read credentials from the process environment.

    ``SWARMDESK_CREDENTIAL_<OWNER>`` (owner upper-cased, non-alphanumerics
    collapsed to ``_``) wins over the shared ``SWARMDESK_CREDENTIAL``.
    """

    def __init__(self, prefix: str = "SWARMDESK_CREDENTIAL") -> None:
        self.prefix = prefix

    def owner_variable(self, owner_id: str) -> str:
        return f"{self.prefix}_{_OWNER_UNSAFE.sub('_', owner_id.upper()).strip('_')}"

    async def get_active_credential(self, owner_id: str) -> str | None:
        return os.environ.get(self.owner_variable(owner_id)) or os.environ.get(self.prefix) or None


class StaticCredentialProvider:
    """Fixed ``owner -> credential`` mapping."""

    def __init__(self, credentials: Mapping[str, str] | None = None) -> None:
        self.credentials = dict(credentials or {})

    async def get_active_credential(self, owner_id: str) -> str | None:
        return self.credentials.get(owner_id) or None
