"""Resolve which walkthrough script applies to a learner.

An organization-specific script for a class code fully replaces the global
default for that class code. There is no field-level merge between the two.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .content_loader import normalize_class_code, read_default_payloads, script_from_dict
from .errors import PretripError, ResolutionFailed, ScriptNotFound, ScriptValidationError
from .logsetup import DOMAIN_RESOLVER, get_domain_logger
from .models import Script

logger = get_domain_logger(__name__, DOMAIN_RESOLVER)

RawScript = Mapping[str, Any] | list[Any]


class ScriptRepository(Protocol):
    """Storage collaborator holding org overrides and global defaults."""

    async def fetch_org_script(self, org_id: str, class_token: str) -> RawScript | None: ...

    async def fetch_default_script(self, class_token: str) -> RawScript | None: ...


class InMemoryScriptRepository:
    """Repository over plain dictionaries, keyed by class token."""

    def __init__(
        self,
        defaults: Mapping[str, RawScript] | None = None,
        org_scripts: Mapping[tuple[str, str], RawScript] | None = None,
    ) -> None:
        self.defaults = {normalize_class_code(key): value for key, value in (defaults or {}).items()}
        self.org_scripts = {
            (org_id, normalize_class_code(token)): value for (org_id, token), value in (org_scripts or {}).items()
        }

    async def fetch_org_script(self, org_id: str, class_token: str) -> RawScript | None:
        return self.org_scripts.get((org_id, class_token))

    async def fetch_default_script(self, class_token: str) -> RawScript | None:
        return self.defaults.get(class_token)


class FileScriptRepository:
    """Bundled defaults plus optional ``<dir>/<org_id>/<class-token>.json`` overrides."""

    def __init__(self, org_scripts_dir: Path | str | None = None) -> None:
        self._defaults = read_default_payloads()
        self._org_dir = Path(org_scripts_dir) if org_scripts_dir else None

    async def fetch_org_script(self, org_id: str, class_token: str) -> RawScript | None:
        if self._org_dir is None or not _is_safe_segment(org_id) or not _is_safe_segment(class_token):
            return None
        path = self._org_dir / org_id / f"{class_token}.json"
        if not path.exists():
            return None
        try:
            raw: RawScript = json.loads(path.read_text(encoding="utf-8-sig"))
        except json.JSONDecodeError as exc:
            raise ScriptValidationError(
                f"{org_id}/{class_token}", [f"{path.name} is not valid JSON: {exc.msg}"]
            ) from exc
        return raw

    async def fetch_default_script(self, class_token: str) -> RawScript | None:
        return self._defaults.get(class_token)


def _is_safe_segment(value: str) -> bool:
    """Reject ids that would escape the override directory."""
    return bool(value) and value not in {".", ".."} and Path(value).name == value


@dataclass(frozen=True)
class ResolvedScript:
    """A resolved script and where it came from."""

    script: Script
    is_custom: bool
    source: str


class ScriptResolver:
    """Pick the org override when present and non-empty, else the global default."""

    def __init__(self, repository: ScriptRepository, *, timeout: float = 5.0) -> None:
        self._repository = repository
        self._timeout = timeout

    async def resolve(self, class_code: str, org_id: str | None = None) -> ResolvedScript:
        """Resolve the script for a class code and organization.

        Raises ``ScriptNotFound`` when neither an override nor a default
        exists, ``ResolutionFailed`` when the repository errors or times out,
        and ``ScriptValidationError`` for malformed payloads.
        """
        token = normalize_class_code(class_code)
        if not token:
            raise ScriptNotFound(str(class_code or ""), org_id)

        org = (org_id or "").strip()
        if org:
            raw = await self._fetch(self._repository.fetch_org_script(org, token), f"{org}/{token}")
            if raw is not None:
                custom_id = raw.get("id") if isinstance(raw, Mapping) else None
                script = script_from_dict(raw, class_code=token, script_id=custom_id or f"org:{org}:{token}")
                if not script.is_empty():
                    logger.info("Resolved %s for org %s from custom script %s", token, org, script.id)
                    return ResolvedScript(script=script, is_custom=True, source=f"org:{org}")
                logger.warning("Custom walkthrough for %s at org %s is empty; using default", token, org)

        raw = await self._fetch(self._repository.fetch_default_script(token), f"default/{token}")
        if raw is None:
            logger.info("No walkthrough for %s (org %s)", token, org or "-")
            raise ScriptNotFound(token, org_id)
        script = script_from_dict(raw, class_code=token)
        if script.is_empty():
            raise ScriptNotFound(token, org_id)
        logger.info("Resolved %s from default script %s", token, script.id)
        return ResolvedScript(script=script, is_custom=False, source="default")

    async def _fetch(self, pending: Awaitable[RawScript | None], what: str) -> RawScript | None:
        try:
            return await asyncio.wait_for(pending, timeout=self._timeout)
        except TimeoutError as exc:
            raise ResolutionFailed(f"Timed out loading walkthrough {what}.") from exc
        except PretripError:
            raise
        except Exception as exc:
            raise ResolutionFailed(f"Could not load walkthrough {what}.") from exc
