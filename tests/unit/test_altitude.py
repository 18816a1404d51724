import sys
from pathlib import Path
import unittest

SRC = Path(__file__).resolve().parents[2] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from flight.altitude import suggest_throttle


class TestSuggestThrottle(unittest.TestCase):
    def test_climb_bands(self):
        self.assertEqual(suggest_throttle(5000.0), 90)
        self.assertEqual(suggest_throttle(1000.1), 90)
        self.assertEqual(suggest_throttle(1000.0), 80)
        self.assertEqual(suggest_throttle(500.1), 80)
        self.assertEqual(suggest_throttle(500.0), 65)
        self.assertEqual(suggest_throttle(200.1), 65)
        self.assertEqual(suggest_throttle(200.0), 45)

    def test_descent_bands(self):
        self.assertEqual(suggest_throttle(-150.0), 45)
        self.assertEqual(suggest_throttle(-150.1), 30)
        self.assertEqual(suggest_throttle(-300.0), 30)
        self.assertEqual(suggest_throttle(-300.1), 20)
        self.assertEqual(suggest_throttle(-800.0), 20)
        self.assertEqual(suggest_throttle(-800.1), 15)
        self.assertEqual(suggest_throttle(-10000.0), 15)

    def test_near_target(self):
        self.assertEqual(suggest_throttle(0.0), 45)
        self.assertEqual(suggest_throttle(150.0), 45)
        self.assertEqual(suggest_throttle(-100.0), 45)


if __name__ == "__main__":
    unittest.main()
