"""Tests for Config module."""

import pytest

from dksink.config import Config, parse_topic_to_table_map
from dksink.exceptions import ConfigError
from dksink.types import ConverterMode, SchemaEvolutionMode

VALID_PROPS = {
    "name": "orders-sink",
    "topics": "mysql.shop.orders, mysql.shop.customers",
    "doris.urls": "fe1,fe2",
    "doris.user": "root",
    "doris.database": "shop",
}


class TestConfigDefaults:
    """Test Config default values."""

    def test_config_defaults(self):
        """Config should have sensible defaults."""
        config = Config()
        assert config.doris_query_port == 9030
        assert config.doris_http_port == 8030
        assert config.converter_mode is ConverterMode.NORMAL
        assert config.schema_evolution is SchemaEvolutionMode.NONE
        assert config.database_time_zone == "UTC"
        assert config.delete_sign_column == "__DORIS_DELETE_SIGN__"
        assert config.delete_true == "1"
        assert config.delete_false == "0"
        assert config.line_separator == "\n"


class TestConfigFromProperties:
    """Test Config.from_properties()."""

    def test_parses_connector_properties(self):
        config = Config.from_properties(
            {
                **VALID_PROPS,
                "doris.query.port": "19030",
                "doris.http.port": 18030,
                "doris.password": "secret",
                "converter.mode": "debezium_ingestion",
                "debezium.schema.evolution": "BASIC",
                "database.time_zone": "Asia/Shanghai",
                "doris.topic2table.map": "mysql.shop.orders:orders",
            }
        )
        assert config.name == "orders-sink"
        assert config.topics == ["mysql.shop.orders", "mysql.shop.customers"]
        assert config.doris_urls == ["fe1", "fe2"]
        assert config.doris_query_port == 19030
        assert config.doris_http_port == 18030
        assert config.doris_password == "secret"
        assert config.converter_mode is ConverterMode.DEBEZIUM_INGESTION
        assert config.schema_evolution is SchemaEvolutionMode.BASIC
        assert config.database_time_zone == "Asia/Shanghai"
        assert config.topic2table == {"mysql.shop.orders": "orders"}

    def test_list_values_accepted(self):
        config = Config.from_properties({"topics": ["a", "b"], "doris.urls": ["fe1"]})
        assert config.topics == ["a", "b"]
        assert config.doris_urls == ["fe1"]

    def test_line_delimiter_escape(self):
        config = Config.from_properties({"sink.properties.line_delimiter": "\\x02"})
        assert config.line_separator == "\x02"

    def test_delete_sign_literals(self):
        config = Config.from_properties(
            {
                "delete.sign.column": "__deleted",
                "delete.sign.true": "true",
                "delete.sign.false": "false",
            }
        )
        assert config.delete_sign_column == "__deleted"
        assert config.delete_true == "true"
        assert config.delete_false == "false"

    def test_invalid_enum_raises(self):
        with pytest.raises(ConfigError, match="converter.mode"):
            Config.from_properties({"converter.mode": "fancy"})

    def test_invalid_port_raises(self):
        with pytest.raises(ConfigError, match="doris.query.port"):
            Config.from_properties({"doris.query.port": "high"})


class TestConfigFromYaml:
    """Test Config.from_yaml()."""

    def test_flat_mapping(self, tmp_path):
        path = tmp_path / "sink.yaml"
        path.write_text(
            """
name: orders-sink
topics: mysql.shop.orders
doris.urls: fe1
doris.user: root
doris.database: shop
converter.mode: debezium_ingestion
"""
        )
        config = Config.from_yaml(path)
        assert config.name == "orders-sink"
        assert config.converter_mode is ConverterMode.DEBEZIUM_INGESTION

    def test_connect_rest_style_mapping(self, tmp_path):
        path = tmp_path / "sink.yaml"
        path.write_text(
            """
name: orders-sink
config:
  topics: [a, b]
  doris.urls: fe1
"""
        )
        config = Config.from_yaml(path)
        assert config.name == "orders-sink"
        assert config.topics == ["a", "b"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="does not exist"):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "sink.yaml"
        path.write_text("")
        with pytest.raises(ConfigError, match="Empty"):
            Config.from_yaml(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "sink.yaml"
        path.write_text("name: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            Config.from_yaml(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "sink.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            Config.from_yaml(path)


class TestConfigFromEnv:
    """Test Config.from_env() loading from environment variables."""

    def test_config_loads_from_env(self, monkeypatch):
        monkeypatch.setenv("DORIS_URLS", "fe1:8030,fe2:8030")
        monkeypatch.setenv("DORIS_QUERY_PORT", "9031")
        monkeypatch.setenv("DORIS_USER", "admin")
        monkeypatch.setenv("DORIS_PASSWORD", "pw")
        monkeypatch.setenv("DORIS_DATABASE", "shop")
        monkeypatch.setenv("DKSINK_CONVERTER_MODE", "debezium_ingestion")
        monkeypatch.setenv("DKSINK_SCHEMA_EVOLUTION", "basic")
        monkeypatch.setenv("DKSINK_TIME_ZONE", "Europe/Berlin")

        config = Config.from_env()

        assert config.doris_urls == ["fe1:8030", "fe2:8030"]
        assert config.doris_query_port == 9031
        assert config.doris_user == "admin"
        assert config.doris_password == "pw"
        assert config.database == "shop"
        assert config.converter_mode is ConverterMode.DEBEZIUM_INGESTION
        assert config.schema_evolution is SchemaEvolutionMode.BASIC
        assert config.database_time_zone == "Europe/Berlin"

    def test_explicit_overrides_env(self, monkeypatch):
        monkeypatch.setenv("DORIS_DATABASE", "from_env")
        config = Config.from_env(database="explicit")
        assert config.database == "explicit"

    def test_defaults_when_env_not_set(self, monkeypatch):
        for var in (
            "DORIS_URLS",
            "DORIS_QUERY_PORT",
            "DORIS_HTTP_PORT",
            "DORIS_USER",
            "DORIS_PASSWORD",
            "DORIS_DATABASE",
            "DKSINK_CONVERTER_MODE",
            "DKSINK_SCHEMA_EVOLUTION",
            "DKSINK_TIME_ZONE",
        ):
            monkeypatch.delenv(var, raising=False)

        config = Config.from_env()

        assert config.doris_urls == []
        assert config.doris_user is None
        assert config.database is None
        assert config.converter_mode is ConverterMode.NORMAL


class TestTopicToTable:
    """Test topic to table resolution."""

    def test_parse_map(self):
        assert parse_topic_to_table_map("a:t1, b:t2") == {"a": "t1", "b": "t2"}

    @pytest.mark.parametrize("text", ["a", "a:", ":t", "a:t:x"])
    def test_parse_map_rejects_malformed_pairs(self, text):
        with pytest.raises(ConfigError, match="Invalid"):
            parse_topic_to_table_map(text)

    def test_parse_map_rejects_duplicate_topic(self):
        with pytest.raises(ConfigError, match="duplicated"):
            parse_topic_to_table_map("a:t1,a:t2")

    def test_explicit_map_wins(self):
        config = Config(topic2table={"mysql.shop.orders": "orders_v2"})
        assert config.table_for_topic("mysql.shop.orders") == "orders_v2"

    def test_identifier_topic_used_as_is(self):
        assert Config().table_for_topic("orders") == "orders"

    def test_debezium_topic_uses_last_segment(self):
        assert Config().table_for_topic("mysql.shop.orders") == "orders"

    def test_unusable_topic_raises(self):
        with pytest.raises(ConfigError):
            Config().table_for_topic("1-orders")
        with pytest.raises(ConfigError):
            Config().table_for_topic("")


class TestConfigValidation:
    """Test Config validation."""

    def test_valid_config(self):
        Config.from_properties(VALID_PROPS).validate()

    def test_validate_for_db_ops_lists_all_missing(self):
        with pytest.raises(ConfigError) as exc_info:
            Config().validate_for_db_ops()
        message = str(exc_info.value)
        assert "doris.urls" in message
        assert "doris.user" in message
        assert "doris.database" in message

    def test_validate_collects_every_problem(self):
        config = Config(name="bad name!", topics=["a"], topics_regex="a.*")
        with pytest.raises(ConfigError) as exc_info:
            config.validate()
        message = str(exc_info.value)
        assert "name" in message
        assert "cannot be set at the same time" in message
        assert "doris.urls cannot be empty" in message

    def test_validate_requires_topics(self):
        config = Config.from_properties({**VALID_PROPS, "topics": ""})
        with pytest.raises(ConfigError, match="topics or topics.regex"):
            config.validate()

    def test_validate_port_range(self):
        config = Config.from_properties({**VALID_PROPS, "doris.http.port": "70000"})
        with pytest.raises(ConfigError, match="doris.http.port"):
            config.validate()

    def test_validate_delete_literals_must_differ(self):
        config = Config.from_properties(
            {**VALID_PROPS, "delete.sign.true": "1", "delete.sign.false": "1"}
        )
        with pytest.raises(ConfigError, match="must differ"):
            config.validate()
