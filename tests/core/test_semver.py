import unittest

from vulntree.core import semver


class TestParseVersion(unittest.TestCase):

    def test_parse_release_and_prerelease(self):
        v = semver.parse_version("1.2.3-beta.4+build.5")

        self.assertEqual(v.core, (1, 2, 3))
        self.assertEqual(v.prerelease, ("beta", 4))
        self.assertTrue(v.is_prerelease)
        self.assertEqual(str(v), "1.2.3-beta.4")

    def test_leading_v_is_accepted(self):
        self.assertEqual(semver.parse_version("v2.0.0").core, (2, 0, 0))

    def test_invalid_versions(self):
        for text in ("", "1.2", "latest", "1.2.3.4", "^1.2.3"):
            self.assertFalse(semver.is_valid_version(text), text)

    def test_ordering(self):
        ordered = ["1.0.0-alpha", "1.0.0-alpha.1", "1.0.0-alpha.beta", "1.0.0-beta.2",
                   "1.0.0-beta.11", "1.0.0-rc.1", "1.0.0", "1.0.1", "1.10.0"]
        parsed = [semver.parse_version(v) for v in ordered]

        self.assertEqual(sorted(reversed(parsed)), parsed)


class TestSatisfies(unittest.TestCase):

    def test_caret(self):
        self.assertTrue(semver.satisfies("1.9.9", "^1.2.3"))
        self.assertFalse(semver.satisfies("2.0.0", "^1.2.3"))
        self.assertTrue(semver.satisfies("0.2.9", "^0.2.3"))
        self.assertFalse(semver.satisfies("0.3.0", "^0.2.3"))
        self.assertTrue(semver.satisfies("0.0.3", "^0.0.3"))
        self.assertFalse(semver.satisfies("0.0.4", "^0.0.3"))

    def test_tilde(self):
        self.assertTrue(semver.satisfies("1.2.9", "~1.2.3"))
        self.assertFalse(semver.satisfies("1.3.0", "~1.2.3"))
        self.assertTrue(semver.satisfies("1.9.0", "~1"))

    def test_x_ranges(self):
        self.assertTrue(semver.satisfies("1.4.2", "1.x"))
        self.assertTrue(semver.satisfies("1.2.7", "1.2.*"))
        self.assertFalse(semver.satisfies("1.3.0", "1.2"))
        self.assertTrue(semver.satisfies("5.0.0", "*"))
        self.assertTrue(semver.satisfies("5.0.0", ""))

    def test_comparators_and_partials(self):
        self.assertTrue(semver.satisfies("1.2.0", ">=1.2"))
        self.assertFalse(semver.satisfies("1.9.9", "<1.2 || >=2"))
        self.assertTrue(semver.satisfies("1.2.9", "<=1.2"))
        self.assertFalse(semver.satisfies("1.3.0", "<=1.2"))
        self.assertTrue(semver.satisfies("2.0.0", ">1.2"))
        self.assertFalse(semver.satisfies("1.2.5", ">1.2"))
        self.assertTrue(semver.satisfies("1.5.0", ">= 1.2.3 < 2"))

    def test_hyphen_range(self):
        self.assertTrue(semver.satisfies("2.3.4", "1.2.3 - 2.3.4"))
        self.assertFalse(semver.satisfies("2.3.5", "1.2.3 - 2.3.4"))
        self.assertTrue(semver.satisfies("2.3.9", "1.2 - 2.3"))
        self.assertFalse(semver.satisfies("1.1.9", "1.2 - 2.3"))

    def test_union(self):
        self.assertTrue(semver.satisfies("3.1.0", "^1.0.0 || ^3.0.0"))
        self.assertFalse(semver.satisfies("2.1.0", "^1.0.0 || ^3.0.0"))

    def test_prerelease_only_matches_same_tuple(self):
        self.assertTrue(semver.satisfies("1.2.3-beta.2", ">=1.2.3-beta.1"))
        self.assertFalse(semver.satisfies("1.2.4-beta.2", ">=1.2.3-beta.1"))
        self.assertFalse(semver.satisfies("2.0.0-rc.1", "^1.0.0"))

    def test_invalid_range(self):
        self.assertFalse(semver.is_valid_range("not a range"))
        self.assertFalse(semver.satisfies("1.0.0", ">>1"))
        with self.assertRaises(semver.InvalidRangeError):
            semver.parse_range("~>>1")


class TestResolve(unittest.TestCase):

    def test_highest_satisfying_release(self):
        catalog = ["1.0.0", "1.1.0", "2.0.0-beta.1"]

        self.assertEqual(semver.resolve(catalog, "^1.0.0"), "1.1.0")

    def test_prerelease_included_when_range_asks_for_it(self):
        catalog = ["1.0.0", "1.1.0", "2.0.0-beta.1"]

        self.assertEqual(semver.resolve(catalog, "^1.0.0 || >=2.0.0-beta"), "2.0.0-beta.1")

    def test_no_match_returns_none(self):
        self.assertIsNone(semver.resolve(["1.0.0"], "^2.0.0"))
        self.assertIsNone(semver.resolve(["1.0.0"], "garbage range"))
        self.assertIsNone(semver.resolve([], "*"))

    def test_unparseable_catalog_entries_are_skipped(self):
        self.assertEqual(semver.resolve(["nope", "1.0.1", "1.0.0"], "1.0.x"), "1.0.1")

    def test_prerelease_intent(self):
        self.assertTrue(semver.range_includes_prerelease(">=1.0.0-rc.1"))
        self.assertTrue(semver.range_includes_prerelease("^2.0.0-0"))
        self.assertTrue(semver.range_includes_prerelease("^3.0.0-Canary.4"))
        self.assertFalse(semver.range_includes_prerelease("^1.0.0"))


if __name__ == "__main__":
    unittest.main()
