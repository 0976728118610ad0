"""Utility classes and functions for the application."""

import ipaddress
import logging
from logging.handlers import RotatingFileHandler

import structlog


def json_formatter():
    """Return a formatter that renders log records as single line JSON.

    Each object contains the ``time``, ``level``, ``logger`` and ``msg`` of
    the record plus any fields passed to the logging call using `extra`.

    Returns
    -------
    structlog.stdlib.ProcessorFormatter
        The formatter, for use with a :class:`logging.Handler`.
    """
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="time"),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("msg"),
            structlog.processors.JSONRenderer(),
        ],
    )


def setup_logging(args, app_name, log_file=None, max_bytes=0, backup_count=0):
    """Return the application logger.

    Parameters
    ----------
    args : argparse.Namespace
        The namespace containing the logging options. The namespace should
        contain ``args.log_type`` and ``args.log_level`` attributes.
    app_name : str
        The name of the application.
    log_file : str, optional
        If used then also log to `log_file` as JSON, rotating the file once
        it reaches `max_bytes` and keeping `backup_count` old files. Records
        from both the application and pynetdicom are written to the file.
    max_bytes : int, optional
        The size at which the log file is rotated, ``0`` to never rotate.
    backup_count : int, optional
        The number of rotated log files to keep.

    Returns
    -------
    logging.Logger
        The logger to use for logging.
    """
    formatter = logging.Formatter("%(levelname).1s: %(message)s")

    # Setup pynetdicom library's logging
    pynd_logger = logging.getLogger("pynetdicom")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    pynd_logger.addHandler(handler)
    pynd_logger.setLevel(logging.ERROR)

    # Setup application's logging, including the library modules
    app_logger = logging.getLogger(app_name)
    app_logger.handlers = []
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    app_logger.addHandler(handler)
    app_logger.setLevel(logging.INFO)

    if args.log_type == "q":
        app_logger.handlers = []
        app_logger.addHandler(logging.NullHandler())
        pynd_logger.handlers = []
        pynd_logger.addHandler(logging.NullHandler())
    elif args.log_type == "v":
        app_logger.setLevel(logging.INFO)
        pynd_logger.setLevel(logging.INFO)
    elif args.log_type == "d":
        app_logger.setLevel(logging.DEBUG)
        pynd_logger.setLevel(logging.DEBUG)

    if args.log_level:
        levels = {
            "critical": logging.CRITICAL,
            "error": logging.ERROR,
            "warn": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        app_logger.setLevel(levels[args.log_level])
        pynd_logger.setLevel(levels[args.log_level])

    if log_file:
        handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count
        )
        handler.setFormatter(json_formatter())
        app_logger.addHandler(handler)
        # Include the requests logged by pynetdicom
        pynd_logger.addHandler(handler)

    return app_logger


def validate_bind_address(address):
    """Return `address` if it's a valid IPv4 or IPv6 address.

    Parameters
    ----------
    address : str
        The address to check, surrounding quotes are ignored.

    Returns
    -------
    str
        The address.

    Raises
    ------
    ValueError
        If `address` isn't a valid IP address.
    """
    address = address.strip().strip("\"'")
    try:
        ipaddress.ip_address(address)
    except ValueError:
        raise ValueError(f"Invalid IP address '{address}'")

    return address


def validate_port(port):
    """Return `port` as an int in the range (0, 65535].

    Parameters
    ----------
    port : str or int
        The TCP/IP port number, a leading ':' is ignored.

    Returns
    -------
    int
        The port number.

    Raises
    ------
    ValueError
        If `port` isn't a valid port number.
    """
    value = str(port).strip().lstrip(":")
    try:
        value = int(value)
    except ValueError:
        raise ValueError(f"Invalid port number '{port}'")

    if not 0 < value <= 65535:
        raise ValueError(f"Invalid port number '{port}'")

    return value
