"""Tests for the legacy environment-variable source."""

import unittest

from wikit.config.legacy import (
    LEGACY_INSTANCES,
    WikiConfig,
    env_prefix,
    get_env_instances,
    get_legacy_config,
    instance_id_for_prefix,
    parse_env_text,
    render_env_lines,
)
from wikit.config.store import WikiInstance

RM_ENV = {
    "WIKIJS_API_URL": "https://rm.example.com/graphql",
    "WIKIJS_API_KEY": "rm-key",
}
TL_ENV = {
    "TLWIKI_API_URL": "https://tl.example.com/graphql",
    "TLWIKI_API_KEY": "tl-key",
}


class TestLegacyMappings(unittest.TestCase):
    """Tests for the static instance mappings."""

    def test_known_instances(self) -> None:
        self.assertEqual(set(LEGACY_INSTANCES), {"rmwiki", "tlwiki"})
        self.assertEqual(LEGACY_INSTANCES["rmwiki"].prefix, "WIKIJS")
        self.assertEqual(LEGACY_INSTANCES["tlwiki"].label, "TL Wiki")

    def test_env_prefix(self) -> None:
        self.assertEqual(env_prefix("rmwiki"), "WIKIJS")
        self.assertEqual(env_prefix("tlwiki"), "TLWIKI")
        self.assertEqual(env_prefix("mywiki"), "MYWIKI")
        self.assertEqual(env_prefix("team-wiki"), "TEAM_WIKI")

    def test_instance_id_for_prefix(self) -> None:
        self.assertEqual(instance_id_for_prefix("WIKIJS"), "rmwiki")
        self.assertEqual(instance_id_for_prefix("MYWIKI"), "mywiki")


class TestGetLegacyConfig(unittest.TestCase):
    """Tests for reading legacy credentials."""

    def test_configured_instance(self) -> None:
        config = get_legacy_config("rmwiki", RM_ENV)

        self.assertEqual(config, WikiConfig(url="https://rm.example.com/graphql", key="rm-key"))

    def test_requires_both_values(self) -> None:
        self.assertIsNone(get_legacy_config("rmwiki", {"WIKIJS_API_URL": "https://x.example"}))
        self.assertIsNone(
            get_legacy_config("rmwiki", {"WIKIJS_API_URL": "https://x.example", "WIKIJS_API_KEY": ""})
        )

    def test_unknown_id(self) -> None:
        self.assertIsNone(get_legacy_config("mywiki", {"MYWIKI_API_URL": "u", "MYWIKI_API_KEY": "k"}))

    def test_repr_hides_key(self) -> None:
        self.assertNotIn("rm-key", repr(get_legacy_config("rmwiki", RM_ENV)))


class TestGetEnvInstances(unittest.TestCase):
    """Tests for get_env_instances."""

    def test_none_configured(self) -> None:
        self.assertEqual(get_env_instances({}), [])

    def test_both_configured(self) -> None:
        instances = get_env_instances({**RM_ENV, **TL_ENV})

        self.assertEqual([i.id for i in instances], ["rmwiki", "tlwiki"])
        self.assertEqual(instances[0].name, "RM Wiki")
        self.assertEqual(instances[1].key, "tl-key")

    def test_partial_configuration_is_ignored(self) -> None:
        instances = get_env_instances({**RM_ENV, "TLWIKI_API_URL": "https://tl.example.com"})

        self.assertEqual([i.id for i in instances], ["rmwiki"])


class TestEnvText(unittest.TestCase):
    """Tests for rendering and parsing .env text."""

    def test_render(self) -> None:
        lines = render_env_lines(
            [WikiInstance(id="rmwiki", name="RM Wiki", url="https://rm.example.com", key="secret123")]
        )

        self.assertEqual(
            lines,
            [
                "# RM Wiki",
                "WIKIJS_API_URL=https://rm.example.com",
                "WIKIJS_API_KEY=secret123",
                "",
            ],
        )

    def test_render_then_parse_reconstructs_pairs(self) -> None:
        instances = [
            WikiInstance(id="rmwiki", name="RM Wiki", url="https://rm.example.com", key="k1"),
            WikiInstance(id="docs", name="Docs Site", url="https://docs.example.com", key="k=2"),
        ]

        parsed = parse_env_text("\n".join(render_env_lines(instances)))

        self.assertEqual(parsed, instances)

    def test_keys_with_quotes_or_padding_survive(self) -> None:
        instances = [
            WikiInstance(id="one", name="One", url="https://one.example.com", key=" abc"),
            WikiInstance(id="two", name="Two", url="https://two.example.com", key='"x"'),
            WikiInstance(id="three", name="Three", url="https://three.example.com", key="'y' "),
        ]

        lines = render_env_lines(instances)

        self.assertIn('ONE_API_KEY=" abc"', lines)
        self.assertEqual(parse_env_text("\n".join(lines)), instances)

    def test_parse_ignores_noise(self) -> None:
        text = """
# Generated from encrypted Wiki.js configuration
# Copy these lines to your .env file

OTHER_SETTING=1
export TLWIKI_API_URL="https://tl.example.com"
TLWIKI_API_KEY='quoted key'
# Error exporting broken: Failed to decrypt instance 'broken'

HALF_API_URL=https://half.example.com
"""
        parsed = parse_env_text(text)

        self.assertEqual(len(parsed), 1)
        self.assertEqual(parsed[0].id, "tlwiki")
        self.assertEqual(parsed[0].name, "TL Wiki")
        self.assertEqual(parsed[0].url, "https://tl.example.com")
        self.assertEqual(parsed[0].key, "quoted key")

    def test_parse_empty(self) -> None:
        self.assertEqual(parse_env_text(""), [])


if __name__ == "__main__":
    unittest.main()
