"""
PII scrubbing for outgoing event batches.

Every batch is deep-copied before transmission so queued records are never
touched by the network path. When redaction is enabled, string values inside
event properties are scanned with regex patterns and matches are replaced by
a placeholder. Identity/context fields are left alone.

Patterns can be extended with a JSON file:
    {"patterns": [{"name": ..., "regex": ..., "category": ...}],
     "whitelist": [{"name": ..., "regex": ...}]}
"""

import copy
import json
import re
import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional


DEFAULT_PATTERNS = [
    {"name": "Email Address", "category": "contact",
     "regex": r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}'},
    {"name": "Bearer Token", "category": "credential",
     "regex": r'Bearer\s+[A-Za-z0-9._~+/=-]{16,}'},
    {"name": "API Key", "category": "credential",
     "regex": r'\b(?:sk|pk|rk)[-_](?:live|test|proj|ant)?[-_]?[A-Za-z0-9]{16,}'},
    {"name": "GitHub Token", "category": "credential",
     "regex": r'\bgh[pousr]_[A-Za-z0-9]{20,}'},
    {"name": "AWS Access Key ID", "category": "credential",
     "regex": r'\bAKIA[0-9A-Z]{16}\b'},
    {"name": "Card Number", "category": "financial",
     "regex": r'\b(?:\d[ -]?){13,16}\b'},
]

DEFAULT_WHITELIST = [
    {"name": "Example Domain", "regex": r'@example\.(?:com|org|net)$'},
]


@dataclass
class Finding:
    """A single redacted match."""
    pattern_name: str
    category: str
    path: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RedactionReport:
    """Summary of one scrub pass."""
    total_findings: int = 0
    findings: List[Finding] = field(default_factory=list)
    whitelisted_skips: int = 0

    def to_dict(self) -> dict:
        result = asdict(self)
        result["findings"] = [f.to_dict() for f in self.findings]
        return result


class PIIScrubber:
    """
    Deep-copies event batches and optionally redacts property values.
    """

    _REDACTION_TEMPLATE = "[REDACTED:{name}]"

    def __init__(self, enabled: bool = False, patterns_path: Optional[str] = None):
        """
        Initialize the scrubber.

        Args:
            enabled: Redact matches; when False only the deep copy is made
            patterns_path: Optional JSON file with extra patterns/whitelist
        """
        self.enabled = enabled
        self._patterns = []
        self._whitelist = []
        self.last_report = RedactionReport()

        self._compile(DEFAULT_PATTERNS, DEFAULT_WHITELIST)
        if patterns_path is not None:
            self._load_config(Path(patterns_path))

    def _load_config(self, path: Path):
        """Load extra patterns; an unreadable file is reported and skipped."""
        try:
            with open(path, "r") as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Warning: Failed to load redaction patterns from {path}: {e}",
                  file=sys.stderr)
            return
        self._compile(config.get("patterns", []), config.get("whitelist", []))

    def _compile(self, patterns: List[dict], whitelist: List[dict]):
        for p in patterns:
            try:
                self._patterns.append({
                    "name": p["name"],
                    "regex": re.compile(p["regex"]),
                    "category": p.get("category", "unknown"),
                })
            except re.error as e:
                print(f"Warning: Invalid regex for pattern '{p['name']}': {e}",
                      file=sys.stderr)
        for w in whitelist:
            try:
                self._whitelist.append({"name": w["name"], "regex": re.compile(w["regex"])})
            except re.error as e:
                print(f"Warning: Invalid whitelist regex for '{w['name']}': {e}",
                      file=sys.stderr)

    def _is_whitelisted(self, match_text: str) -> bool:
        return any(w["regex"].search(match_text) for w in self._whitelist)

    def redact_text(self, text: str, path: str, report: RedactionReport) -> str:
        """Replace every non-whitelisted pattern match in text."""
        redacted = text
        for pattern in self._patterns:
            def replace(match, pattern=pattern):
                if self._is_whitelisted(match.group(0)):
                    report.whitelisted_skips += 1
                    return match.group(0)
                report.findings.append(Finding(pattern["name"], pattern["category"], path))
                return self._REDACTION_TEMPLATE.format(name=pattern["name"])
            redacted = pattern["regex"].sub(replace, redacted)
        return redacted

    def _redact_value(self, value: Any, path: str, report: RedactionReport) -> Any:
        if isinstance(value, str):
            return self.redact_text(value, path, report)
        if isinstance(value, dict):
            return {k: self._redact_value(v, f"{path}.{k}", report) for k, v in value.items()}
        if isinstance(value, list):
            return [self._redact_value(v, f"{path}[{i}]", report) for i, v in enumerate(value)]
        return value

    def scrub(self, events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Return a scrubbed deep copy of a batch of wire dictionaries.

        Args:
            events: Events as produced by EventRecord.to_dict()

        Returns:
            New list; the input is never modified
        """
        cleaned = copy.deepcopy(events)
        report = RedactionReport()
        if self.enabled:
            for index, event in enumerate(cleaned):
                if isinstance(event.get("properties"), dict):
                    event["properties"] = self._redact_value(
                        event["properties"], f"[{index}].properties", report
                    )
        report.total_findings = len(report.findings)
        self.last_report = report
        return cleaned
