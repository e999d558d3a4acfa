import unittest
from datetime import date

from komedi.reminders.errors import InvalidTimeFormat
from komedi.reminders.keys import KEY_PREFIX, derive_occurrence_key
from komedi.reminders.times import TimeOfDay, is_valid_time_of_day, parse_time_of_day


class TestTimeOfDay(unittest.TestCase):
    def test_parse_valid(self):
        self.assertEqual(parse_time_of_day("08:00"), TimeOfDay(8, 0))
        self.assertEqual(parse_time_of_day("23:59"), TimeOfDay(23, 59))
        self.assertEqual(str(parse_time_of_day("00:05")), "00:05")

    def test_parse_rejects_malformed(self):
        for text in ("8:00", "24:00", "12:60", "25:99", "08:00:00", " 08:00", "08:00\n", "", "ab:cd"):
            with self.subTest(text=text):
                with self.assertRaises(InvalidTimeFormat):
                    parse_time_of_day(text)
                self.assertFalse(is_valid_time_of_day(text))

    def test_invalid_time_is_value_error(self):
        with self.assertRaises(ValueError):
            parse_time_of_day("99:99")

    def test_ordering(self):
        self.assertLess(TimeOfDay(7, 59), TimeOfDay(8, 0))


class TestOccurrenceKey(unittest.TestCase):
    def test_deterministic(self):
        d = date(2026, 6, 10)
        k1 = derive_occurrence_key(1, "08:00", d)
        k2 = derive_occurrence_key(1, "08:00", d)
        self.assertEqual(k1, k2)
        self.assertTrue(k1.startswith(KEY_PREFIX))
        self.assertEqual(len(k1), len(KEY_PREFIX) + 32)

    def test_field_boundaries_do_not_collide(self):
        d = date(2026, 6, 10)
        self.assertNotEqual(derive_occurrence_key(1, "200", d), derive_occurrence_key(12, "00", d))

    def test_differs_by_date_and_time(self):
        d = date(2026, 6, 10)
        base = derive_occurrence_key(1, "08:00", d)
        self.assertNotEqual(base, derive_occurrence_key(1, "08:00", date(2026, 6, 11)))
        self.assertNotEqual(base, derive_occurrence_key(1, "20:00", d))
        self.assertNotEqual(base, derive_occurrence_key(2, "08:00", d))


if __name__ == "__main__":
    unittest.main(verbosity=2)
