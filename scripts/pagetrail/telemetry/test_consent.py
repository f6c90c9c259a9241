#!/usr/bin/env python3
"""
Tests for do-not-track and consent gating.
"""

import unittest

from pagetrail.telemetry.consent import ConsentCategory, ConsentGate


class TestConsentGate(unittest.TestCase):
    """Test the two-layer tracking gate."""

    def test_everything_allowed_by_default(self):
        gate = ConsentGate()
        self.assertTrue(gate.should_track())
        for category in ConsentCategory:
            self.assertTrue(gate.is_tracking_allowed(category))

    def test_dnt_blocks_every_category(self):
        gate = ConsentGate(dnt_signal=lambda: True)
        self.assertFalse(gate.should_track())
        self.assertFalse(gate.is_tracking_allowed("functional"))
        self.assertFalse(gate.is_tracking_allowed("analytics"))

    def test_dnt_ignored_when_not_respected(self):
        gate = ConsentGate(respect_do_not_track=False, dnt_signal=lambda: True)
        self.assertTrue(gate.is_tracking_allowed("analytics"))

    def test_consent_mode_uses_stored_categories(self):
        gate = ConsentGate(enable_consent=True)
        self.assertTrue(gate.is_tracking_allowed("functional"))
        self.assertFalse(gate.is_tracking_allowed("analytics"))
        self.assertFalse(gate.is_tracking_allowed("marketing"))

        gate.set_consent("analytics", True)
        self.assertTrue(gate.is_tracking_allowed("analytics"))
        self.assertFalse(gate.is_tracking_allowed("marketing"))

    def test_default_consent_grants_optional_categories(self):
        gate = ConsentGate(enable_consent=True, default_consent=True)
        self.assertTrue(gate.is_tracking_allowed(ConsentCategory.MARKETING))

    def test_functional_cannot_be_withdrawn(self):
        gate = ConsentGate(enable_consent=True)
        gate.set_consent("functional", False)
        self.assertTrue(gate.consent.functional)
        self.assertTrue(gate.is_tracking_allowed("functional"))

    def test_unknown_category_is_ignored(self):
        gate = ConsentGate(enable_consent=True)
        gate.set_consent("advertising", True)
        self.assertEqual(gate.consent.to_dict(),
                         {"functional": True, "analytics": False, "marketing": False})

    def test_signal_is_read_on_every_decision(self):
        signal = {"dnt": False}
        gate = ConsentGate(dnt_signal=lambda: signal["dnt"])
        self.assertTrue(gate.should_track())
        signal["dnt"] = True
        self.assertFalse(gate.should_track())


if __name__ == "__main__":
    unittest.main()
