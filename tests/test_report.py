import unittest
from dataclasses import FrozenInstanceError

from tests._test_path import SRC  # noqa: F401

from passportframe.validation.report import RuleResult, ValidationReport


class TestValidationReport(unittest.TestCase):
    def setUp(self):
        self.size = RuleResult(rule_id="Size", passed=True, message="827x1063")
        self.background = RuleResult(
            rule_id="Background", passed=False, message="72% of border", metrics={"match_ratio": 0.72}
        )
        self.report = ValidationReport(passed=False, results=[self.size, self.background], spec_id="schengen")

    def test_get_by_rule_id(self):
        self.assertIs(self.report.get("Background"), self.background)
        self.assertIsNone(self.report.get("Lighting"))

    def test_failed_lists_only_failures(self):
        self.assertEqual(self.report.failed, [self.background])
        self.assertEqual(ValidationReport(passed=True, results=[self.size]).failed, [])

    def test_results_cannot_be_edited(self):
        with self.assertRaises(FrozenInstanceError):
            self.report.spec_id = "us"  # type: ignore[misc]
        with self.assertRaises(FrozenInstanceError):
            self.background.passed = True  # type: ignore[misc]
