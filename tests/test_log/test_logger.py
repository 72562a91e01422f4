"""测试日志设置与日志器获取"""

import logging
import logging.handlers
import os

import pytest

from ytree.config import LoggingSettings
from ytree.log import get_logger, setup_logger
from ytree.log.logger import (
    MicrosecondFormatter,
    _extract_file_handler_options,
    create_formatter,
)


@pytest.fixture
def isolated_logger():
    names = []

    def _make(name, **kwargs):
        names.append(name)
        return setup_logger(name, **kwargs)

    yield _make

    for name in names:
        lg = logging.getLogger(name)
        for handler in lg.handlers:
            handler.close()
        lg.handlers.clear()


class TestGetLogger:
    """测试 get_logger 命名规则"""

    def test_infers_module_name(self):
        assert get_logger().name == __name__

    def test_short_name_gets_prefix(self):
        assert get_logger("taxonomy").name == "ytree.taxonomy"

    def test_dotted_name_kept(self):
        assert get_logger("sqlalchemy.engine").name == "sqlalchemy.engine"

    def test_root_package_name(self):
        assert get_logger("ytree").name == "ytree"


class TestFormatter:
    """测试格式化器"""

    def test_microseconds(self):
        formatter = MicrosecondFormatter()
        record = logging.makeLogRecord({"created": 1700000000.123456})
        assert formatter.formatTime(record).endswith(".123456")

    def test_plain_formatter(self):
        formatter = create_formatter(use_microseconds=False)
        assert not isinstance(formatter, MicrosecondFormatter)


class TestSetupLogger:
    """测试 setup_logger"""

    def test_level_and_console(self, isolated_logger):
        lg = isolated_logger("ytree.test.console", level="debug")
        assert lg.level == logging.DEBUG
        assert len(lg.handlers) == 1

    def test_repeated_setup_replaces_handlers(self, isolated_logger):
        isolated_logger("ytree.test.repeat")
        lg = isolated_logger("ytree.test.repeat")
        assert len(lg.handlers) == 1

    def test_writes_file(self, isolated_logger, temp_dir):
        log_file = os.path.join(temp_dir, "logs", "tree.log")
        lg = isolated_logger(
            "ytree.test.file", console=False, log_file=log_file, propagate=False
        )
        lg.info("节点已创建")
        for handler in lg.handlers:
            handler.flush()

        with open(log_file, encoding="utf-8") as f:
            content = f.read()
        assert "节点已创建" in content
        assert "ytree.test.file" in content

    def test_rotating_handler_options(self, isolated_logger, temp_dir):
        log_file = os.path.join(temp_dir, "rotating.log")
        lg = isolated_logger(
            "ytree.test.rotating",
            console=False,
            log_file=log_file,
            file_handler_options={"maxBytes": 1024, "backupCount": 2},
        )
        handler = lg.handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 2

    def test_options_from_settings(self):
        options = _extract_file_handler_options(
            LoggingSettings(file_max_bytes="2KB", file_backup_count=3)
        )
        assert options == {"maxBytes": 2048, "backupCount": 3, "encoding": "utf-8"}
