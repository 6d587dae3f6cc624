import unittest

from rest_contract.dynamic import UnresolvedPlaceholderError
from rest_contract.dynamic.template import expand, join_url, placeholders


class TestTemplate(unittest.TestCase):

    def test_expand_replaces_every_placeholder(self):
        url = expand("https://{host}/api/{version}/customers/{id}", {"host": "svc.example", "version": "v2", "id": 7})
        self.assertEqual(url, "https://svc.example/api/v2/customers/7")

    def test_repeated_placeholder(self):
        self.assertEqual(expand("{a}/{a}", {"a": "x"}), "x/x")
        self.assertEqual(placeholders("{a}/{b}/{a}"), ("a", "b"))

    def test_missing_value_raises_with_every_missing_name(self):
        with self.assertRaises(UnresolvedPlaceholderError) as ctx:
            expand("https://{host}/{version}/{id}", {"id": 1})
        self.assertEqual(ctx.exception.missing, ("host", "version"))
        self.assertEqual(ctx.exception.template, "https://{host}/{version}/{id}")

    def test_expansion_is_single_pass(self):
        """A value that looks like a placeholder is inserted verbatim."""
        url = expand("/users/{name}", {"name": "{secret}", "secret": "leaked"})
        self.assertEqual(url, "/users/{secret}")

    def test_template_without_placeholders(self):
        self.assertEqual(expand("https://svc.example/api", {}), "https://svc.example/api")

    def test_join_url(self):
        self.assertEqual(join_url("https://svc.example/api", "customers/7"), "https://svc.example/api/customers/7")
        self.assertEqual(join_url("https://svc.example/api/", "/customers"), "https://svc.example/api/customers")
        self.assertEqual(join_url("https://svc.example/api", ""), "https://svc.example/api")


if __name__ == '__main__':
    unittest.main()
