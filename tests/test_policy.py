import unittest

from pydenylist.exceptions import ConfigurationError
from pydenylist.filter import FilterKind
from pydenylist.policy import GeneratorPolicy


class TestGeneratorPolicy(unittest.TestCase):
    def test_recommended(self):
        policy = GeneratorPolicy.recommended()
        self.assertEqual(policy.filter_version, 2)
        self.assertEqual(policy.resolved_kind(), FilterKind.FUSE)
        self.assertEqual(policy.max_build_attempts, 100)
        self.assertTrue(policy.compress_descriptor)
        policy.validate()

    def test_legacy_is_v1_xor(self):
        policy = GeneratorPolicy.legacy()
        self.assertEqual((policy.filter_version, policy.resolved_kind()), (1, FilterKind.XOR))
        policy.validate()

    def test_default_kind_follows_version(self):
        self.assertEqual(GeneratorPolicy(filter_version=1).resolved_kind(), FilterKind.XOR)
        self.assertEqual(GeneratorPolicy(filter_version=2).resolved_kind(), FilterKind.FUSE)

    def test_from_env(self):
        policy = GeneratorPolicy.from_env(
            {
                "PYDENYLIST_FILTER_KIND": "xor",
                "PYDENYLIST_MAX_BUILD_ATTEMPTS": "7",
                "PYDENYLIST_COMPRESS_DESCRIPTOR": "no",
            }
        )
        self.assertEqual(policy.as_dict(), {
            "filter_version": 2,
            "filter_kind": "xor",
            "max_build_attempts": 7,
            "compress_descriptor": False,
        })

    def test_from_env_version_one_drops_fuse_default(self):
        policy = GeneratorPolicy.from_env({"PYDENYLIST_FILTER_VERSION": "1"})
        self.assertEqual(policy.resolved_kind(), FilterKind.XOR)

    def test_from_env_empty(self):
        self.assertEqual(GeneratorPolicy.from_env({}), GeneratorPolicy.recommended())

    def test_invalid(self):
        bad_envs = [
            {"PYDENYLIST_FILTER_VERSION": "3"},
            {"PYDENYLIST_FILTER_VERSION": "two"},
            {"PYDENYLIST_FILTER_VERSION": "1", "PYDENYLIST_FILTER_KIND": "fuse"},
            {"PYDENYLIST_FILTER_KIND": "bloom"},
            {"PYDENYLIST_MAX_BUILD_ATTEMPTS": "0"},
            {"PYDENYLIST_COMPRESS_DESCRIPTOR": "maybe"},
        ]
        for env in bad_envs:
            with self.assertRaises(ConfigurationError, msg=str(env)):
                GeneratorPolicy.from_env(env)


if __name__ == "__main__":
    unittest.main()
