"""
Do-not-track and consent gating.

Evaluated on every capture decision; nothing here is cached because consent
can change mid-session.
"""

import sys
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Dict, Union


class ConsentCategory(str, Enum):
    FUNCTIONAL = "functional"
    ANALYTICS = "analytics"
    MARKETING = "marketing"


@dataclass
class Consent:
    """Per-category consent; functional is always granted."""
    functional: bool = True
    analytics: bool = False
    marketing: bool = False

    def to_dict(self) -> Dict[str, bool]:
        """Convert to dictionary."""
        return asdict(self)


class ConsentGate:
    """Two-layer gate: DNT first, then per-category consent."""

    def __init__(
        self,
        respect_do_not_track: bool = True,
        enable_consent: bool = False,
        default_consent: bool = False,
        dnt_signal: Callable[[], bool] = lambda: False
    ):
        """
        Initialize gate.

        Args:
            respect_do_not_track: Honour the DNT signal
            enable_consent: Require per-category consent
            default_consent: Initial analytics/marketing consent
            dnt_signal: Returns True when the user agent signals DNT
        """
        self.respect_do_not_track = respect_do_not_track
        self.enable_consent = enable_consent
        self.dnt_signal = dnt_signal
        self.consent = Consent(analytics=default_consent, marketing=default_consent)
        self._dnt_warned = False

    def should_track(self) -> bool:
        if self.respect_do_not_track and self.dnt_signal():
            if not self._dnt_warned:
                print("Warning: User has enabled Do Not Track. Tracking is disabled.",
                      file=sys.stderr)
                self._dnt_warned = True
            return False
        return True

    def is_tracking_allowed(self, category: Union[ConsentCategory, str]) -> bool:
        if not self.should_track():
            return False
        if not self.enable_consent:
            return True
        category = ConsentCategory(category)
        return getattr(self.consent, category.value) is True

    def set_consent(self, category: Union[ConsentCategory, str], granted: bool):
        """
        Update consent for one category.

        Unknown categories are ignored; functional cannot be withdrawn.
        """
        try:
            category = ConsentCategory(category)
        except ValueError:
            print(f"Warning: Unknown consent category '{category}'", file=sys.stderr)
            return
        if category is ConsentCategory.FUNCTIONAL:
            return
        setattr(self.consent, category.value, bool(granted))
