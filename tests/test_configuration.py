import unittest

from rest_contract.dynamic import CallOptions, GlobalSettings, JsonSerializer, describe, resolve
from rest_contract.dynamic.configuration import DEFAULT_TIMEOUT, merge_headers

from tests.support import CustomerService, RegionalService


class TestResolve(unittest.TestCase):

    def setUp(self):
        self.contract = describe(CustomerService)
        self.create = self.contract.method("create")
        self.global_settings = GlobalSettings(
            headers={"x-client": "global", "X-Global": "1"},
            cookies={"region": "eu"},
            variables={"region": "eu"},
            timeout=60.0,
        )

    def test_more_specific_scopes_override_headers(self):
        """Method headers beat service headers, which beat global headers."""
        config = resolve(self.contract, self.create, None, self.global_settings)
        self.assertEqual(config.headers, {
            "X-Global": "1",
            "Accept": "application/json",
            "X-Client": "create",
        })

    def test_call_site_overrides_everything(self):
        options = CallOptions(headers={"X-CLIENT": "call"}, timeout=1.0, cookies={"region": "us"})
        config = resolve(self.contract, self.create, options, self.global_settings)
        self.assertEqual(config.headers["X-CLIENT"], "call")
        self.assertNotIn("X-Client", config.headers)
        self.assertEqual(config.timeout, 1.0)
        self.assertEqual(config.cookies, {"region": "us"})

    def test_scalar_settings_use_last_writer(self):
        config = resolve(self.contract, self.create, None, self.global_settings)
        self.assertEqual(config.timeout, 2.5)
        self.assertEqual(config.base_address, "https://svc.example/api")

        search = self.contract.method("search")
        self.assertEqual(resolve(self.contract, search, None, self.global_settings).timeout, 5.0)

        override = CallOptions(base_address="https://staging.example/api")
        self.assertEqual(resolve(self.contract, search, override).base_address, "https://staging.example/api")

    def test_defaults_without_any_settings(self):
        config = resolve(describe(RegionalService), describe(RegionalService).method("status"))
        self.assertEqual(config.timeout, DEFAULT_TIMEOUT)
        self.assertIsInstance(config.serializer, JsonSerializer)
        self.assertEqual(config.headers, {})

    def test_resolution_is_deterministic(self):
        options = CallOptions(variables={"version": "v2"})
        first = resolve(self.contract, self.create, options, self.global_settings)
        second = resolve(self.contract, self.create, options, self.global_settings)
        self.assertEqual(first, second)
        self.assertEqual(list(first.headers), list(second.headers))

    def test_variables_merge_additively(self):
        options = CallOptions(variables={"version": "v2"})
        config = resolve(self.contract, self.create, options, self.global_settings)
        self.assertEqual(config.variables, {"region": "eu", "version": "v2"})

    def test_merge_headers_is_case_insensitive(self):
        merged = merge_headers([
            [("Content-Type", "text/plain"), ("X-A", "1")],
            [("content-type", "application/json")],
        ])
        self.assertEqual(merged, {"X-A": "1", "content-type": "application/json"})


class TestGlobalSettingsFromEnv(unittest.TestCase):

    def test_reads_prefixed_variables(self):
        environ = {
            "REST_CONTRACT_TIMEOUT": "7.5",
            "REST_CONTRACT_VAR_REGION": "eu",
            "REST_CONTRACT_HEADER_X_API_KEY": "secret",
            "UNRELATED": "ignored",
        }
        settings = GlobalSettings.from_env(environ=environ)
        self.assertEqual(settings.timeout, 7.5)
        self.assertEqual(settings.variables, {"region": "eu"})
        self.assertEqual(settings.headers, {"X-Api-Key": "secret"})

    def test_custom_prefix(self):
        settings = GlobalSettings.from_env(prefix="SVC_", environ={"SVC_VAR_HOST": "h", "REST_CONTRACT_VAR_X": "1"})
        self.assertEqual(settings.variables, {"host": "h"})

    def test_invalid_timeout(self):
        with self.assertRaises(ValueError):
            GlobalSettings.from_env(environ={"REST_CONTRACT_TIMEOUT": "soon"})
        with self.assertRaises(ValueError):
            GlobalSettings.from_env(environ={"REST_CONTRACT_TIMEOUT": "0"})


if __name__ == '__main__':
    unittest.main()
