"""Tests for the dicompot.common module."""

from argparse import Namespace
import json
import logging
from logging.handlers import RotatingFileHandler
import os
import sys

import pytest
from structlog.stdlib import ProcessorFormatter

from dicompot import debug_logger
from dicompot.common import (
    json_formatter,
    setup_logging,
    validate_bind_address,
    validate_port,
)


def make_record(msg, level=logging.INFO, exc_info=None, **extra):
    """Return a LogRecord for `msg` with the `extra` fields."""
    logger = logging.getLogger("dicompot.test")
    return logger.makeRecord(
        logger.name, level, __file__, 1, msg, None, exc_info, extra=extra
    )


class TestJSONFormatter:
    """Tests for common.json_formatter()."""

    def setup_method(self):
        self.formatter = json_formatter()

    def format(self, record):
        """Return the JSON line for `record` as a dict."""
        line = self.formatter.format(record)
        assert "\n" not in line
        return json.loads(line)

    def test_format(self):
        """Test the standard fields."""
        out = self.format(make_record("A message"))
        assert out["msg"] == "A message"
        assert out["level"] == "info"
        assert out["logger"] == "dicompot.test"
        assert len(out["time"]) == 19
        assert "event" not in out
        assert "exception" not in out
        assert "_record" not in out
        assert "_from_structlog" not in out

    def test_args(self):
        """Test the message is formatted using its arguments."""
        logger = logging.getLogger("dicompot.test")
        record = logger.makeRecord(
            logger.name, logging.WARNING, __file__, 1, "%d image(s)", (3,), None
        )
        out = self.format(record)
        assert out["msg"] == "3 image(s)"
        assert out["level"] == "warning"

    def test_extra(self):
        """Test fields passed using extra are included."""
        record = make_record(
            "Query key miss", filter_tag="PatientName", filter_term="DOE*"
        )
        out = self.format(record)
        assert out["filter_tag"] == "PatientName"
        assert out["filter_term"] == "DOE*"
        assert "args" not in out
        assert "levelno" not in out

    def test_non_serialisable_extra(self):
        """Test extra values that aren't JSON serialisable are converted."""
        out = self.format(make_record("msg", value=object()))
        assert out["value"].startswith("<object object")

    def test_exception(self):
        """Test exception information is included."""
        try:
            raise ValueError("Bad value")
        except ValueError:
            record = make_record("Failed", logging.ERROR, exc_info=sys.exc_info())

        out = self.format(record)
        assert out["level"] == "error"
        assert "ValueError: Bad value" in out["exception"]

    def test_single_line(self):
        """Test each record is formatted as a single line."""
        out = self.format(make_record("Line 1\nLine 2"))
        assert out["msg"] == "Line 1\nLine 2"


@pytest.mark.usefixtures("restore_loggers")
class TestSetupLogging:
    """Tests for common.setup_logging()."""

    def test_default(self):
        """Test the default logging setup."""
        args = Namespace(log_type=None, log_level=None)
        logger = setup_logging(args, "dicompot")
        assert logger is logging.getLogger("dicompot")
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)
        assert logging.getLogger("pynetdicom").level == logging.ERROR

    def test_repeat(self):
        """Test calling again replaces the application's handlers."""
        args = Namespace(log_type=None, log_level=None)
        setup_logging(args, "dicompot")
        logger = setup_logging(args, "dicompot")
        assert len(logger.handlers) == 1

    def test_quiet(self):
        """Test quiet mode."""
        args = Namespace(log_type="q", log_level=None)
        logger = setup_logging(args, "dicompot")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.NullHandler)
        pynd_logger = logging.getLogger("pynetdicom")
        assert len(pynd_logger.handlers) == 1
        assert isinstance(pynd_logger.handlers[0], logging.NullHandler)

    def test_verbose(self):
        """Test verbose mode."""
        args = Namespace(log_type="v", log_level=None)
        logger = setup_logging(args, "dicompot")
        assert logger.level == logging.INFO
        assert logging.getLogger("pynetdicom").level == logging.INFO

    def test_debug(self):
        """Test debug mode."""
        args = Namespace(log_type="d", log_level=None)
        logger = setup_logging(args, "dicompot")
        assert logger.level == logging.DEBUG
        assert logging.getLogger("pynetdicom").level == logging.DEBUG

    def test_log_level(self):
        """Test setting the log level."""
        args = Namespace(log_type="d", log_level="warn")
        logger = setup_logging(args, "dicompot")
        assert logger.level == logging.WARNING
        assert logging.getLogger("pynetdicom").level == logging.WARNING

    def test_log_file(self, tmp_path):
        """Test logging to a rotating JSON log file."""
        fpath = os.fspath(tmp_path / "dicompot.log")
        args = Namespace(log_type=None, log_level=None)
        logger = setup_logging(
            args, "dicompot", log_file=fpath, max_bytes=1024, backup_count=3
        )
        handler = logger.handlers[-1]
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 3
        assert isinstance(handler.formatter, ProcessorFormatter)
        assert handler in logging.getLogger("pynetdicom").handlers

        logging.getLogger("dicompot.matching").info(
            "Query key miss - PatientID: 'X'",
            extra={"filter_tag": "PatientID", "filter_term": "X"},
        )
        logger.debug("Not logged")
        handler.flush()

        with open(fpath, "r") as f:
            lines = f.read().splitlines()

        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["logger"] == "dicompot.matching"
        assert entry["filter_tag"] == "PatientID"
        assert entry["filter_term"] == "X"

    def test_log_file_pynetdicom(self, tmp_path):
        """Test records from pynetdicom are written to the log file."""
        fpath = os.fspath(tmp_path / "dicompot.log")
        args = Namespace(log_type="v", log_level=None)
        logger = setup_logging(args, "dicompot", log_file=fpath)
        logging.getLogger("pynetdicom.dimse").info("Find SCP Request Identifier")
        logger.info("Find query matched 1 instance(s)")
        logger.handlers[-1].flush()

        with open(fpath, "r") as f:
            entries = [json.loads(line) for line in f.read().splitlines()]

        assert [(e["logger"], e["msg"]) for e in entries] == [
            ("pynetdicom.dimse", "Find SCP Request Identifier"),
            ("dicompot", "Find query matched 1 instance(s)"),
        ]

    def test_log_file_rotation(self, tmp_path):
        """Test the log file is rotated."""
        fpath = os.fspath(tmp_path / "dicompot.log")
        args = Namespace(log_type="q", log_level=None)
        logger = setup_logging(
            args, "dicompot", log_file=fpath, max_bytes=200, backup_count=2
        )
        for ii in range(20):
            logger.info(f"Message number {ii}")

        logger.handlers[-1].flush()
        assert os.path.exists(f"{fpath}.1")
        assert os.path.exists(f"{fpath}.2")
        assert not os.path.exists(f"{fpath}.3")


class TestValidateBindAddress:
    """Tests for common.validate_bind_address()."""

    @pytest.mark.parametrize(
        "address, out",
        [
            ("127.0.0.1", "127.0.0.1"),
            ("0.0.0.0", "0.0.0.0"),
            (" 192.168.0.10 ", "192.168.0.10"),
            ("'10.0.0.1'", "10.0.0.1"),
            ("::1", "::1"),
        ],
    )
    def test_valid(self, address, out):
        """Test valid addresses."""
        assert validate_bind_address(address) == out

    @pytest.mark.parametrize(
        "address", ["", "localhost", "256.0.0.1", "1.2.3", "127.0.0.1:11112"]
    )
    def test_invalid(self, address):
        """Test invalid addresses raise."""
        with pytest.raises(ValueError, match=r"Invalid IP address"):
            validate_bind_address(address)


class TestValidatePort:
    """Tests for common.validate_port()."""

    @pytest.mark.parametrize(
        "port, out",
        [("11112", 11112), (":104", 104), (1, 1), ("65535", 65535), (" 80 ", 80)],
    )
    def test_valid(self, port, out):
        """Test valid ports."""
        assert validate_port(port) == out

    @pytest.mark.parametrize("port", ["0", "65536", "-1", "abc", "", ":"])
    def test_invalid(self, port):
        """Test invalid ports raise."""
        with pytest.raises(ValueError, match=r"Invalid port number"):
            validate_port(port)


@pytest.mark.usefixtures("restore_loggers")
def test_debug_logger():
    """Test the package's debug logger setup."""
    debug_logger()
    debug_logger()
    logger = logging.getLogger("dicompot")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)
