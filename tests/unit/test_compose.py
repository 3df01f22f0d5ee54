import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "renderer"))

from hitcounter_renderer import builtin_themes, compose_digits, digits_of
from hitcounter_renderer.compose import MAX_COUNT


class DigitsTests(unittest.TestCase):
    def test_pads_to_min_length(self):
        self.assertEqual(digits_of(7, 3), [0, 0, 7])

    def test_never_truncates(self):
        self.assertEqual(digits_of(12345, 2), [1, 2, 3, 4, 5])

    def test_zero_is_single_digit(self):
        self.assertEqual(digits_of(0, 0), [0])
        self.assertEqual(digits_of(0, 4), [0, 0, 0, 0])

    def test_exact_length_unchanged(self):
        self.assertEqual(digits_of(905, 3), [9, 0, 5])

    def test_u64_max(self):
        self.assertEqual(len(digits_of(MAX_COUNT)), 20)

    def test_rejects_out_of_range(self):
        with self.assertRaises(ValueError):
            digits_of(-1)
        with self.assertRaises(ValueError):
            digits_of(MAX_COUNT + 1)
        with self.assertRaises(ValueError):
            digits_of(5, -1)


class ComposeTests(unittest.TestCase):
    def test_glyphs_follow_digits(self):
        theme = builtin_themes()["classic"]
        glyphs = compose_digits(7, 3, theme)
        self.assertEqual([g.digit for g in glyphs], [0, 0, 7])
        self.assertIs(glyphs[0], theme.glyph(0))


if __name__ == "__main__":
    unittest.main()
