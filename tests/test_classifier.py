from __future__ import annotations

import unittest

from archive.classifier import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_NONE,
    classify,
    merge_confidence,
)


class ClassifierTests(unittest.TestCase):
    def test_day_markers_are_high_confidence(self):
        for text, day in (
            ("Day 42", 42),
            ("day42 sketch", 42),
            ("DAILY #7 done", 7),
            ("johan 3", 3),
            ("here is day # 15!", 15),
        ):
            found = classify(text)
            self.assertEqual(found.days, [day], text)
            self.assertEqual(found.confidence, CONFIDENCE_HIGH, text)

    def test_bare_numbers_are_low_confidence(self):
        found = classify("finished number 12 today")
        self.assertEqual(found.days, [12])
        self.assertEqual(found.confidence, CONFIDENCE_LOW)

    def test_marker_wins_over_bare_numbers(self):
        found = classify("took 3 hours on day 9")
        self.assertEqual(found.days, [9])
        self.assertEqual(found.confidence, CONFIDENCE_HIGH)

    def test_multiple_markers_are_all_reported(self):
        self.assertEqual(classify("Day 3 and Day 4").days, [3, 4])
        self.assertEqual(classify("Day 3 ... day 3 again").days, [3, 3])

    def test_marker_needs_word_boundary(self):
        # Marker words must stand alone; "day" inside another word is only a bare number.
        for text in ("Sunday 5", "Today 5", "someday #5"):
            found = classify(text)
            self.assertEqual(found.confidence, CONFIDENCE_LOW, text)
            self.assertEqual(found.days, [5], text)

    def test_nothing_found(self):
        for text in ("", None, "just a doodle"):
            found = classify(text)
            self.assertTrue(found.empty)
            self.assertEqual(found.confidence, CONFIDENCE_NONE)

    def test_merge_confidence_never_downgrades(self):
        self.assertEqual(merge_confidence(CONFIDENCE_HIGH, CONFIDENCE_LOW), CONFIDENCE_HIGH)
        self.assertEqual(merge_confidence(CONFIDENCE_HIGH, CONFIDENCE_NONE), CONFIDENCE_HIGH)
        self.assertEqual(merge_confidence(CONFIDENCE_LOW, CONFIDENCE_HIGH), CONFIDENCE_HIGH)
        self.assertEqual(merge_confidence(CONFIDENCE_LOW, CONFIDENCE_NONE), CONFIDENCE_LOW)
        self.assertEqual(merge_confidence(CONFIDENCE_NONE, CONFIDENCE_LOW), CONFIDENCE_LOW)


if __name__ == "__main__":
    unittest.main()
