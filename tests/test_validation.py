import unittest

from vulntree.errors import InvalidInputError
from vulntree.validation import parse_package_spec, validate_package_name, validate_version


class TestValidatePackageName(unittest.TestCase):

    def test_valid_names(self):
        for name in ("left-pad", "@babel/core", "lodash.merge", "JSONStream", "a" * 214, "@types/node"):
            self.assertEqual(validate_package_name(name), name)

    def test_invalid_names(self):
        for name in ("", " react", "react ", ".hidden", "_private", "node_modules", "favicon.ico",
                     "a" * 215, "has space", "@scope/", "@/pkg", "@.scope/pkg", "semi;colon", "a/b/c"):
            with self.assertRaises(InvalidInputError, msg=repr(name)):
                validate_package_name(name)

    def test_error_carries_field(self):
        with self.assertRaises(InvalidInputError) as ctx:
            validate_package_name("")

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.details["field"], "package name")
        self.assertEqual(ctx.exception.to_dict()["error"]["code"], "INVALID_INPUT")


class TestValidateVersion(unittest.TestCase):

    def test_accepted(self):
        for version in ("1.3.0", "2.0.0-beta.1", "latest", "next", "^1.2.0", ">=1 <2", "1.x", " 1.0.0 "):
            self.assertEqual(validate_version(version), version.strip())

    def test_rejected(self):
        for version in ("", "   ", "1.2.3.4.5", "@@", "~>>1"):
            with self.assertRaises(InvalidInputError, msg=repr(version)):
                validate_version(version)


class TestParsePackageSpec(unittest.TestCase):

    def test_forms(self):
        self.assertEqual(parse_package_spec("react"), ("react", None))
        self.assertEqual(parse_package_spec("react@18.2.0"), ("react", "18.2.0"))
        self.assertEqual(parse_package_spec("@babel/core"), ("@babel/core", None))
        self.assertEqual(parse_package_spec("@babel/core@^7.0.0"), ("@babel/core", "^7.0.0"))
        self.assertEqual(parse_package_spec("react/v/18.2.0"), ("react", "18.2.0"))
        self.assertEqual(parse_package_spec("@babel/core/v/7.24.0/"), ("@babel/core", "7.24.0"))

    def test_empty(self):
        for spec in ("", "   ", "react@"):
            with self.assertRaises(InvalidInputError):
                parse_package_spec(spec)


if __name__ == "__main__":
    unittest.main()
