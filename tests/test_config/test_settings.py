"""测试配置类与树配置"""

import pytest
from pydantic import ValidationError

from ytree.config import (
    AppSettings,
    LoggingSettings,
    TreeSettings,
    configure_tree,
    get_tree_settings,
)


class TestTreeSettings:
    """测试 TreeSettings"""

    def test_defaults(self):
        settings = TreeSettings()
        assert settings.max_depth == 4
        assert settings.default_color == "#9a9a9a"
        assert settings.default_deletion_policy == "block"
        assert settings.search_limit == 50

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("YTREE_TREE_MAX_DEPTH", "7")
        monkeypatch.setenv("YTREE_TREE_DEFAULT_DELETION_POLICY", "cascade")
        settings = TreeSettings()
        assert settings.max_depth == 7
        assert settings.default_deletion_policy == "cascade"

    def test_negative_depth_rejected(self):
        with pytest.raises(ValidationError):
            TreeSettings(max_depth=-1)

    def test_search_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            TreeSettings(search_limit=0)


class TestLoggingSettings:
    """测试 LoggingSettings"""

    @pytest.mark.parametrize("raw,expected", [
        ("10MB", 10 * 1024 * 1024),
        ("512KB", 512 * 1024),
        ("1gb", 1024 ** 3),
        ("2048", 2048),
    ])
    def test_parsed_file_max_bytes(self, raw, expected):
        assert LoggingSettings(file_max_bytes=raw).parsed_file_max_bytes == expected

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            _ = LoggingSettings(file_max_bytes="lots").parsed_file_max_bytes


class TestAppSettings:
    """测试聚合配置"""

    def test_nested_sections(self):
        settings = AppSettings(tree={"max_depth": 2}, database={"url": "sqlite://"})
        assert settings.tree.max_depth == 2
        assert settings.database.url == "sqlite://"
        assert settings.logging.level == "INFO"


class TestConfigureTree:
    """测试服务层树配置"""

    def teardown_method(self):
        configure_tree()

    def test_overrides(self):
        configure_tree(max_depth=6)
        assert get_tree_settings().max_depth == 6

    def test_explicit_settings_instance(self):
        custom = TreeSettings(default_color="#ffffff")
        assert configure_tree(custom) is custom
        assert get_tree_settings().default_color == "#ffffff"

    def test_overrides_do_not_mutate_source(self):
        base = TreeSettings()
        configure_tree(base, max_depth=1)
        assert base.max_depth == 4
        assert get_tree_settings().max_depth == 1

    def test_reset_to_defaults(self):
        configure_tree(max_depth=9)
        configure_tree()
        assert get_tree_settings().max_depth == 4
