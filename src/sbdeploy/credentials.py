"""Credential extraction from playbook output.

Playbooks report the credentials they generate on remote hosts in two ways:

1. A structured marker, usually printed by a debug task:

       CREDENTIALS|mysql|username=admin|password=s3cret

2. Human-readable lines such as ``MySQL password: s3cret``.

Both forms end up in the same CredentialSet. Markers may appear inside the
JSON payload that follows ``ok: [host] =>``; in that case the payload's
``msg`` (or ``stdout``) is scanned instead of the raw JSON text.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from .events import CredentialUpdate

logger = logging.getLogger(__name__)

MARKER_PREFIX = "CREDENTIALS|"

# (pattern, service, key); first match wins
KNOWN_PATTERNS: list[tuple[re.Pattern[str], str, str]] = [
    (re.compile(r"^MySQL user:\s*(.+)$", re.IGNORECASE), "mysql", "username"),
    (re.compile(r"^MySQL password:\s*(.+)$", re.IGNORECASE), "mysql", "password"),
    (re.compile(r"^MongoDB admin user:\s*(.+)$", re.IGNORECASE), "mongodb", "username"),
    (re.compile(r"^MongoDB admin password:\s*(.+)$", re.IGNORECASE), "mongodb", "password"),
    (re.compile(r"^MongoDB credentials stored in:\s*(.+)$", re.IGNORECASE), "mongodb", "path"),
    (re.compile(r"^RabbitMQ Username:\s*(.+)$", re.IGNORECASE), "rabbitmq", "username"),
    (re.compile(r"^RabbitMQ Password:\s*(.+)$", re.IGNORECASE), "rabbitmq", "password"),
]


def parse_segment(segment: str) -> tuple[str, str] | None:
    """Split a ``key=value`` segment on its first ``=``.

    Returns:
        (key, value) with surrounding whitespace removed, or None when either
        side is empty or there is no ``=``
    """
    key, sep, value = segment.partition("=")
    key, value = key.strip(), value.strip()
    if not sep or not key or not value:
        return None
    return key, value


class CredentialSet:
    """Credentials collected during one run, as service -> key -> value.

    Service names are stored in lower case. A service's bucket is seeded
    with its default values (see ``seeds``) the first time anything is
    recorded for it.

    Example:
        >>> creds = CredentialSet(seeds={"mysql": {"path": "/tmp/mysql_credentials.txt"}})
        >>> creds.record("MySQL", "password", "s3cret")
        >>> creds.to_dict()
        {'mysql': {'path': '/tmp/mysql_credentials.txt', 'password': 's3cret'}}
    """

    def __init__(self, seeds: Mapping[str, Mapping[str, str]] | None = None) -> None:
        self.seeds = {k.lower(): dict(v) for k, v in (seeds or {}).items()}
        self._services: dict[str, dict[str, str]] = {}

    def __contains__(self, service: str) -> bool:
        return service.lower() in self._services

    def __len__(self) -> int:
        return len(self._services)

    def bucket(self, service: str) -> dict[str, str]:
        """Get a service's bucket, creating (and seeding) it if needed."""
        service = service.lower()
        if service not in self._services:
            self._services[service] = dict(self.seeds.get(service, {}))
        return self._services[service]

    def record(self, service: str, key: str, value: str) -> None:
        self.bucket(service)[key] = value

    def get(self, service: str) -> dict[str, str]:
        """Copy of a service's credentials (empty if none)."""
        return dict(self._services.get(service.lower(), {}))

    def has_parsed_values(self, service: str) -> bool:
        """Whether a service holds anything beyond its seeded defaults."""
        seed = self.seeds.get(service.lower(), {})
        current = self._services.get(service.lower(), {})
        return any(seed.get(k) != v for k, v in current.items())

    def apply_defaults(self, service: str, defaults: Mapping[str, str]) -> None:
        """Merge defaults under the parsed values of a service.

        Parsed values win. The defaults are injected even when nothing was
        parsed for the service.
        """
        service = service.lower()
        merged = dict(defaults)
        merged.update(self._services.get(service, {}))
        self._services[service] = merged

    def snapshot(self, service: str) -> CredentialUpdate:
        return CredentialUpdate(service=service.lower(), data=self.get(service))

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {service: dict(values) for service, values in self._services.items()}


@dataclass
class Extraction:
    """Result of scanning one task-result remainder.

    Attributes:
        text: The remainder that was scanned
        display: Fragments that were not credential lines
        matched: Number of credential lines recorded
        structured: Whether a JSON payload supplied the fragments
        update: Snapshot of the last service touched, if any
    """

    text: str
    display: list[str] = field(default_factory=list)
    matched: int = 0
    structured: bool = False
    update: CredentialUpdate | None = None

    @property
    def message(self) -> str:
        """Display text: the payload message or the remainder, without credential lines."""
        if not self.matched and not self.structured:
            return self.text
        return " | ".join(self.display)


class CredentialExtractor:
    """Incremental credential scanner for task-result messages."""

    def __init__(self, patterns: list[tuple[re.Pattern[str], str, str]] | None = None) -> None:
        self.patterns = patterns if patterns is not None else KNOWN_PATTERNS

    def extract(self, text: str, credentials: CredentialSet) -> Extraction:
        """Scan one task-result remainder and record what it contains.

        Args:
            text: Remainder after ``status: [host]`` with ``=>`` stripped
            credentials: Credential set to update

        Returns:
            Extraction with the display fragments and the last snapshot
        """
        extraction = Extraction(text=text)
        touched: str | None = None

        # A JSON object contributes its msg (string or list) or, failing that, its stdout
        payload = _json_payload(text)
        if payload is None:
            fragments = [text.strip()]
        else:
            fragments = _payload_fragments(payload)
            extraction.structured = bool(fragments)

        for fragment in fragments:
            for line in fragment.splitlines():
                line = line.strip()
                if not line:
                    continue
                service = self.match_line(line, credentials)
                if service is None:
                    extraction.display.append(line)
                else:
                    extraction.matched += 1
                    touched = service

        if touched is not None:
            extraction.update = credentials.snapshot(touched)
        return extraction

    def match_line(self, line: str, credentials: CredentialSet) -> str | None:
        """Record credentials from one line.

        Returns:
            Service name the line was recorded under, or None if the line
            carries no credentials
        """
        if line.startswith(MARKER_PREFIX):
            parts = line.split("|")
            service = parts[1].strip().lower() if len(parts) > 1 else ""
            if not service:
                return None
            bucket = credentials.bucket(service)
            for segment in parts[2:]:
                pair = parse_segment(segment)
                if pair:
                    bucket[pair[0]] = pair[1]
            return service

        for pattern, service, key in self.patterns:
            match = pattern.match(line)
            if match:
                credentials.record(service, key, match.group(1).strip())
                return service
        return None


def _json_payload(text: str) -> dict[str, Any] | None:
    text = text.strip()
    if not text.startswith("{"):
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _payload_fragments(payload: dict[str, Any]) -> list[str]:
    msg = payload.get("msg")
    if msg is not None:
        if isinstance(msg, list):
            return [str(m) for m in msg]
        return [str(msg)]
    stdout = payload.get("stdout")
    if stdout is not None:
        return [str(stdout)]
    return []


def recover_from_buffer(stdout: str, service: str, credentials: CredentialSet) -> int:
    """Fallback scan of the whole stdout buffer for one service's markers.

    Catches markers the line-level pass missed, e.g. inside the multi-line
    JSON the default callback prints. Only runs when the service has no
    parsed values yet (an empty bucket or seeded defaults only).

    Returns:
        Number of key/value pairs recorded
    """
    if credentials.has_parsed_values(service):
        return 0

    pattern = re.compile(rf'CREDENTIALS\|{re.escape(service)}\|([^\r\n"\\]+)', re.IGNORECASE)
    recovered = 0
    for match in pattern.finditer(stdout):
        for segment in match.group(1).split("|"):
            pair = parse_segment(segment)
            if pair:
                credentials.record(service, *pair)
                recovered += 1

    if recovered:
        logger.debug(f"Recovered {recovered} {service} credential value(s) from output buffer")
    return recovered
