"""Tests for aipipe.core.config — layered configuration resolution."""

import json

import pytest

from aipipe.core.config import (
    ConfigContext,
    ConfigResolver,
    coerce_value,
    flatten,
    get_path,
    ingest_settings,
    merge_layers,
    read_settings_file,
    reset_settings,
    resolve_config,
    set_path,
    set_setting,
    unflatten,
)
from aipipe.core.exceptions import ConfigError
from aipipe.core.llm.config import DEFAULT_MODEL


class TestConfigContext:
    def test_override_wins_over_env(self, tmp_path):
        ctx = ConfigContext.from_env({"AIPIPE_CONFIG_DIR": str(tmp_path / "env")}, override=str(tmp_path / "cli"))
        assert ctx.config_dir == tmp_path / "cli"

    def test_env_var(self, tmp_path):
        ctx = ConfigContext.from_env({"AIPIPE_CONFIG_DIR": str(tmp_path / "env")})
        assert ctx.config_dir == tmp_path / "env"

    def test_default_home_dir(self):
        ctx = ConfigContext.from_env({})
        assert ctx.config_dir.name == ".aipipe"

    def test_derived_paths(self, tmp_path):
        ctx = ConfigContext(tmp_path)
        assert ctx.settings_path == tmp_path / "config.json"
        assert ctx.api_keys_path == tmp_path / "apiKeys.json"
        assert ctx.history_dir == tmp_path / "history"
        assert ctx.cache_dir == tmp_path / "cache"
        assert ctx.roles_dir == tmp_path / "roles"
        assert ctx.templates_dir == tmp_path / "templates"


class TestDotPaths:
    def test_set_creates_intermediates(self):
        data = {}
        set_path(data, "providers.anthropic.temperature", 0.5)
        assert data == {"providers": {"anthropic": {"temperature": 0.5}}}

    def test_set_preserves_siblings(self):
        data = {"providers": {"anthropic": {"system": "be brief"}, "openai": {"temperature": 1.0}}}
        set_path(data, "providers.anthropic.temperature", 0.5)
        assert data["providers"]["anthropic"] == {"system": "be brief", "temperature": 0.5}
        assert data["providers"]["openai"] == {"temperature": 1.0}

    def test_get(self):
        data = {"a": {"b": {"c": 1}}}
        assert get_path(data, "a.b.c") == 1
        assert get_path(data, "a.x", "default") == "default"

    def test_flatten_unflatten(self):
        data = {"model": "openai/gpt-4o", "providers": {"anthropic": {"temperature": 0.2}}}
        flat = flatten(data)
        assert flat == {"model": "openai/gpt-4o", "providers.anthropic.temperature": 0.2}
        assert unflatten(flat) == data


class TestMergeLayers:
    def test_first_layer_wins(self):
        merged = merge_layers([{"temperature": 0.1}, {"temperature": 0.9, "model": "x/y"}])
        assert merged == {"temperature": 0.1, "model": "x/y"}

    def test_each_key_comes_from_highest_layer_defining_it(self):
        layers = [
            {"a": "cli"},
            {"a": "env", "b": "env"},
            {"a": "override", "b": "override", "c": "override"},
            {"a": "settings", "b": "settings", "c": "settings", "d": "settings"},
            {"e": "keyfile"},
            {"a": "default", "f": "default"},
        ]
        merged = merge_layers(layers)
        assert merged == {"a": "cli", "b": "env", "c": "override", "d": "settings", "e": "keyfile", "f": "default"}

    def test_lower_layer_cannot_reach_inside_claimed_leaf(self):
        merged = merge_layers([{"providers.anthropic": {}}, {"providers.anthropic.temperature": 0.5}])
        assert merged == {"providers.anthropic": {}}


class TestCoerceValue:
    def test_temperature_string(self):
        assert coerce_value("temperature", "0.7") == 0.7

    def test_temperature_out_of_range_names_key_and_value(self):
        with pytest.raises(ConfigError, match="temperature") as exc:
            coerce_value("temperature", "3")
        assert exc.value.key == "temperature"
        assert exc.value.value == "3"

    def test_nested_temperature(self):
        assert coerce_value("providers.anthropic.temperature", "1.5") == 1.5

    def test_max_output_tokens(self):
        assert coerce_value("maxOutputTokens", "256") == 256

    @pytest.mark.parametrize("raw", ["0", "-5", "abc", "1.5", True])
    def test_max_output_tokens_invalid(self, raw):
        with pytest.raises(ConfigError, match="maxOutputTokens"):
            coerce_value("maxOutputTokens", raw)

    def test_booleans(self):
        assert coerce_value("cache", "false") is False
        assert coerce_value("stream", "true") is True
        assert coerce_value("someUnknownFlag", "true") is True

    def test_budget_mode(self):
        assert coerce_value("budgetMode", "cumulative") == "cumulative"
        with pytest.raises(ConfigError):
            coerce_value("budgetMode", "weekly")

    def test_retries(self):
        assert coerce_value("retries", "0") == 0
        with pytest.raises(ConfigError):
            coerce_value("retries", "-1")

    def test_unknown_key_passthrough(self):
        assert coerce_value("aliases.fast", "openai/gpt-4o-mini") == "openai/gpt-4o-mini"


class TestIngestSettings:
    def test_canonicalizes_camel_case(self):
        settings = ingest_settings({"maxOutputTokens": 100, "budgetMode": "cumulative"})
        assert settings == {"max_output_tokens": 100, "budget_mode": "cumulative"}

    def test_bad_value_dropped_with_warning(self, log_messages):
        settings = ingest_settings({"temperature": 9, "model": "anthropic/claude-x"})
        assert settings == {"model": "anthropic/claude-x"}
        assert any("temperature" in m and "9" in m for m in log_messages)

    def test_provider_blocks(self, log_messages):
        settings = ingest_settings(
            {
                "providers": {
                    "anthropic": {"temperature": 0.3, "maxOutputTokens": 50, "model": "ignored"},
                    "bogus": {"temperature": 0.1},
                }
            }
        )
        assert settings["providers"] == {"anthropic": {"temperature": 0.3, "max_output_tokens": 50}}
        assert any("bogus" in m for m in log_messages)

    def test_invalid_alias_target_dropped(self):
        settings = ingest_settings({"aliases": {"fast": "openai/gpt-4o-mini", "broken": 42}})
        assert settings["aliases"] == {"fast": "openai/gpt-4o-mini"}

    def test_unrecognized_keys_kept(self):
        assert ingest_settings({"theme": "dark"}) == {"theme": "dark"}


class TestConfigResolver:
    def test_defaults(self, context):
        config = ConfigResolver(context, env={}).resolve()
        assert config.model == DEFAULT_MODEL
        assert config.retries == 3
        assert config.cache is True
        assert config.temperature is None

    def test_cli_beats_settings(self, context, write_settings):
        write_settings({"model": "anthropic/claude-x", "temperature": 0.2})
        config = ConfigResolver(context, env={}).resolve({"temperature": 1.1})
        assert config.model == "anthropic/claude-x"
        assert config.temperature == 1.1

    def test_provider_override_beats_settings_but_not_cli(self, context, write_settings):
        write_settings(
            {
                "temperature": 0.2,
                "maxOutputTokens": 100,
                "providers": {"anthropic": {"temperature": 0.9, "maxOutputTokens": 500}},
            }
        )
        resolver = ConfigResolver(context, env={})
        config = resolver.resolve({"max_output_tokens": 42}, provider="anthropic")
        assert config.temperature == 0.9
        assert config.max_output_tokens == 42

        other = resolver.resolve({}, provider="openai")
        assert other.temperature == 0.2
        assert other.max_output_tokens == 100

    def test_env_key_beats_key_file(self, context):
        context.api_keys_path.write_text(json.dumps({"openai": "file-openai", "anthropic": "file-anthropic"}))
        config = ConfigResolver(context, env={"OPENAI_API_KEY": "env-openai"}).resolve()
        assert config.api_keys == {"openai": "env-openai", "anthropic": "file-anthropic"}

    def test_settings_file_never_supplies_api_keys(self, context, write_settings):
        write_settings({"apiKeys": {"openai": "from-settings"}})
        config = ConfigResolver(context, env={}).resolve()
        assert config.api_keys == {}

    def test_malformed_settings_degrade_to_defaults(self, context, log_messages):
        context.settings_path.write_text("{not json")
        config = ConfigResolver(context, env={}).resolve({"model": "anthropic/claude-x"})
        assert config.model == "anthropic/claude-x"
        assert any("Could not load settings" in m for m in log_messages)

    def test_non_object_settings_degrade(self, context):
        context.settings_path.write_text("[1, 2, 3]")
        assert ConfigResolver(context, env={}).resolve().model == DEFAULT_MODEL

    def test_bad_cli_flag_raises(self, context):
        with pytest.raises(ConfigError, match="temperature"):
            ConfigResolver(context, env={}).resolve({"temperature": 5})

    def test_unset_cli_flags_ignored(self, context, write_settings):
        write_settings({"system": "be terse"})
        config = ConfigResolver(context, env={}).resolve({"system": None, "temperature": None})
        assert config.system == "be terse"

    def test_dotted_alias_names(self, context, write_settings):
        write_settings({"aliases": {"gpt-4.1": "openai/gpt-4.1", "claude": "anthropic/claude-x"}})
        config = ConfigResolver(context, env={}).resolve()
        assert config.aliases == {"gpt-4.1": "openai/gpt-4.1", "claude": "anthropic/claude-x"}

    def test_resolve_config_function(self, config_dir):
        (config_dir / "config.json").write_text(json.dumps({"model": "groq/llama-3.3-70b-versatile"}))
        config = resolve_config({}, {}, config_dir)
        assert config.model == "groq/llama-3.3-70b-versatile"


class TestSettingsManagement:
    def test_set_provider_writes_key_file(self, context):
        destination, _ = set_setting(context, "anthropic", "sk-ant-123456789")
        assert destination == str(context.api_keys_path)
        assert json.loads(context.api_keys_path.read_text()) == {"anthropic": "sk-ant-123456789"}
        assert not context.settings_path.exists()

    def test_set_nested_preserves_siblings(self, context, write_settings):
        write_settings({"model": "openai/gpt-4o", "providers": {"anthropic": {"system": "hi"}}})
        set_setting(context, "providers.anthropic.temperature", "0.4")
        data = read_settings_file(context)
        assert data["model"] == "openai/gpt-4o"
        assert data["providers"]["anthropic"] == {"system": "hi", "temperature": 0.4}

    def test_set_invalid_leaves_file_untouched(self, context, write_settings):
        write_settings({"temperature": 0.5})
        with pytest.raises(ConfigError):
            set_setting(context, "temperature", "7")
        assert read_settings_file(context) == {"temperature": 0.5}

    def test_set_api_keys_path_rejected(self, context):
        with pytest.raises(ConfigError, match="config set <provider>"):
            set_setting(context, "apiKeys.openai", "sk-x")

    def test_reset_keeps_api_keys(self, context, write_settings):
        write_settings({"model": "anthropic/claude-x"})
        set_setting(context, "openai", "sk-openai-123456")
        reset_settings(context)
        assert read_settings_file(context) == {}
        assert json.loads(context.api_keys_path.read_text()) == {"openai": "sk-openai-123456"}

    def test_set_dotted_alias_name(self, context, write_settings):
        write_settings({"aliases": {"fast": "openai/gpt-4o-mini"}})
        _, stored = set_setting(context, "aliases.fast.v2", "anthropic/claude-x")
        assert stored == "anthropic/claude-x"
        assert read_settings_file(context)["aliases"] == {"fast": "openai/gpt-4o-mini", "fast.v2": "anthropic/claude-x"}
        config = ConfigResolver(context, env={}).resolve()
        assert config.aliases["fast.v2"] == "anthropic/claude-x"

    @pytest.mark.parametrize("target", ["gpt-4o", "nosuch/model-x", "openai/", "fast"])
    def test_set_alias_rejects_bad_target(self, context, write_settings, target):
        write_settings({"aliases": {"fast": "openai/gpt-4o-mini"}})
        with pytest.raises(ConfigError):
            set_setting(context, "aliases.quick", target)
        assert read_settings_file(context)["aliases"] == {"fast": "openai/gpt-4o-mini"}
