"""A Verification and Query/Retrieve SCP that logs what its peers ask for.

The served instances are the DICOM files found under an image directory.
"""

import argparse
from configparser import ConfigParser
import os
import sys

from pynetdicom import AE, evt, StoragePresentationContexts, ALL_TRANSFER_SYNTAXES
from pynetdicom import _config as _pynd_config
from pynetdicom.sop_class import (
    Verification,
    PatientRootQueryRetrieveInformationModelFind,
    PatientRootQueryRetrieveInformationModelMove,
    PatientRootQueryRetrieveInformationModelGet,
    StudyRootQueryRetrieveInformationModelFind,
    StudyRootQueryRetrieveInformationModelMove,
    StudyRootQueryRetrieveInformationModelGet,
)

from dicompot import __version__
from dicompot.catalog import build_catalog
from dicompot.common import setup_logging, validate_bind_address, validate_port
from dicompot.handlers import handle_echo, handle_find, handle_get, handle_move


# Don't log response identifiers, the request identifiers are what matter
_pynd_config.LOG_RESPONSE_IDENTIFIERS = False

BANNER = r"""
     _ _
  __| (_) ___ ___  _ __ ___  _ __   ___ | |_
 / _` | |/ __/ _ \| '_ ` _ \| '_ \ / _ \| __|
| (_| | | (_| (_) | | | | | | |_) | (_) | |_
 \__,_|_|\___\___/|_| |_| |_| .__/ \___/ \__|
                            |_|
"""


def _log_config(config, logger):
    """Log the configuration settings.

    Parameters
    ----------
    config : configparser.ConfigParser
        The application's configuration.
    logger : logging.Logger
        The application's logger.
    """
    logger.debug("Configuration settings")
    app = config["DEFAULT"]
    logger.debug(
        f"  AE title: {app['ae_title']}, Address: {app['bind_address']}, "
        f"Port: {app['port']}, Max. PDU: {app['max_pdu']}"
    )
    logger.debug("  Timeouts:")
    logger.debug(
        f"    ACSE: {app['acse_timeout']}, DIMSE: {app['dimse_timeout']}, "
        f"Network: {app['network_timeout']}"
    )
    logger.debug(f"  Image directory: {app['instance_location']}")
    logger.debug(f"  Log file: {app['log_file'] or 'none'}")

    if config.sections():
        logger.debug("  Move destinations: ")
    else:
        logger.debug("  Move destinations: none")

    for ae_title in config.sections():
        addr = config[ae_title]["address"]
        port = config[ae_title]["port"]
        logger.debug(f"    {ae_title}: ({addr}, {port})")

    logger.debug("")


def _setup_argparser(args=None):
    """Setup the command line arguments"""
    # Description
    parser = argparse.ArgumentParser(
        description=(
            "The dicompot application implements a Service Class Provider "
            "(SCP) for the Verification and Query/Retrieve (QR) Service "
            "Classes. It serves the DICOM files found in an image directory "
            "and logs the requests it receives."
        ),
        usage="dicompot [options]",
    )

    # General Options
    gen_opts = parser.add_argument_group("General Options")
    gen_opts.add_argument(
        "--version", help="print version information and exit", action="store_true"
    )
    output = gen_opts.add_mutually_exclusive_group()
    output.add_argument(
        "-q",
        "--quiet",
        help="quiet mode, print no warnings and errors",
        action="store_const",
        dest="log_type",
        const="q",
    )
    output.add_argument(
        "-v",
        "--verbose",
        help="verbose mode, print processing details",
        action="store_const",
        dest="log_type",
        const="v",
    )
    output.add_argument(
        "-d",
        "--debug",
        help="debug mode, print debug information",
        action="store_const",
        dest="log_type",
        const="d",
    )
    gen_opts.add_argument(
        "-ll",
        "--log-level",
        metavar="[l]",
        help="use level l for the logger (critical, error, warn, info, debug)",
        type=str,
        choices=["critical", "error", "warn", "info", "debug"],
    )
    fdir = os.path.abspath(os.path.dirname(__file__))
    fpath = os.path.join(fdir, "default.ini")
    gen_opts.add_argument(
        "-c",
        "--config",
        metavar="[f]ilename",
        help="use configuration file f",
        default=fpath,
    )
    gen_opts.add_argument(
        "--log-file",
        metavar="[f]ilename",
        help="override the configured JSON log file",
    )

    net_opts = parser.add_argument_group("Networking Options")
    net_opts.add_argument(
        "--port",
        help="override the configured TCP/IP listen port number",
    )
    net_opts.add_argument(
        "-aet",
        "--ae-title",
        metavar="[a]etitle",
        help="override the configured AE title",
    )
    net_opts.add_argument(
        "-ta",
        "--acse-timeout",
        metavar="[s]econds",
        help="override the configured timeout for ACSE messages",
    )
    net_opts.add_argument(
        "-td",
        "--dimse-timeout",
        metavar="[s]econds",
        help="override the configured timeout for DIMSE messages",
    )
    net_opts.add_argument(
        "-tn",
        "--network-timeout",
        metavar="[s]econds",
        help="override the configured timeout for the network",
    )
    net_opts.add_argument(
        "-pdu",
        "--max-pdu",
        metavar="[n]umber of bytes",
        help="override the configured max receive pdu to n bytes",
    )
    net_opts.add_argument(
        "-ba",
        "--bind-address",
        metavar="[a]ddress",
        help=(
            "override the configured address of the network interface to "
            "listen on"
        ),
    )

    img_opts = parser.add_argument_group("Image Options")
    img_opts.add_argument(
        "--dir",
        metavar="[d]irectory",
        help="override the configured image directory",
        type=str,
    )

    return parser.parse_args(args)


def load_config(args):
    """Return the configuration from ``args.config`` updated by `args`.

    Parameters
    ----------
    args : argparse.Namespace
        The parsed command line arguments.

    Returns
    -------
    configparser.ConfigParser
        The configuration.
    """
    config = ConfigParser()
    config.read(args.config)

    overrides = {
        "ae_title": args.ae_title,
        "port": args.port,
        "max_pdu": args.max_pdu,
        "acse_timeout": args.acse_timeout,
        "dimse_timeout": args.dimse_timeout,
        "network_timeout": args.network_timeout,
        "bind_address": args.bind_address,
        "instance_location": args.dir,
        "log_file": args.log_file,
    }
    for key, value in overrides.items():
        if value:
            config["DEFAULT"][key] = value

    return config


def get_destinations(config):
    """Return the known move destinations from `config`.

    Parameters
    ----------
    config : configparser.ConfigParser
        The configuration, each section other than ``DEFAULT`` is a move
        destination with ``address`` and ``port`` values.

    Returns
    -------
    dict
        The move destinations as ``{'AE_TITLE': (addr, port)}``.
    """
    dests = {}
    for ae_title in config.sections():
        dest = config[ae_title]
        dests[ae_title.strip()] = (dest["address"], dest.getint("port"))

    return dests


def build_ae(app_config):
    """Return the configured application entity.

    Parameters
    ----------
    app_config : configparser.SectionProxy
        The ``DEFAULT`` configuration section.

    Returns
    -------
    pynetdicom.ae.ApplicationEntity
        The AE, with the supported presentation contexts added.
    """
    ae = AE(app_config["ae_title"])
    ae.maximum_pdu_size = app_config.getint("max_pdu")
    ae.acse_timeout = app_config.getfloat("acse_timeout")
    ae.dimse_timeout = app_config.getfloat("dimse_timeout")
    ae.network_timeout = app_config.getfloat("network_timeout")

    ## Add supported presentation contexts
    # Verification SCP
    ae.add_supported_context(Verification, ALL_TRANSFER_SYNTAXES)

    # Query/Retrieve SCP
    ae.add_supported_context(PatientRootQueryRetrieveInformationModelFind)
    ae.add_supported_context(PatientRootQueryRetrieveInformationModelMove)
    ae.add_supported_context(PatientRootQueryRetrieveInformationModelGet)
    ae.add_supported_context(StudyRootQueryRetrieveInformationModelFind)
    ae.add_supported_context(StudyRootQueryRetrieveInformationModelMove)
    ae.add_supported_context(StudyRootQueryRetrieveInformationModelGet)

    # C-GET sub-operations: the requestor acts as the Storage SCP
    for cx in StoragePresentationContexts:
        ae.add_supported_context(
            cx.abstract_syntax, ALL_TRANSFER_SYNTAXES, scp_role=True, scu_role=False
        )

    # C-MOVE sub-operations: requested from the move destination
    ae.requested_contexts = StoragePresentationContexts

    return ae


def main(args=None):
    """Run the application.

    Parameters
    ----------
    args : list of str, optional
        The command line arguments, excluding the program name. If not used
        then ``sys.argv[1:]`` is used instead.
    """
    args = _setup_argparser(args)

    if args.version:
        print(f"dicompot v{__version__}")
        sys.exit()

    config = load_config(args)
    app_config = config["DEFAULT"]

    APP_LOGGER = setup_logging(
        args,
        "dicompot",
        log_file=app_config.get("log_file"),
        max_bytes=app_config.getint("log_max_bytes", 0),
        backup_count=app_config.getint("log_backup_count", 0),
    )
    APP_LOGGER.debug(f"dicompot v{__version__}")
    APP_LOGGER.debug("")
    APP_LOGGER.debug("Using configuration from:")
    APP_LOGGER.debug(f"  {args.config}")
    APP_LOGGER.debug("")

    # Log configuration settings
    _log_config(config, APP_LOGGER)

    try:
        address = validate_bind_address(app_config["bind_address"])
        port = validate_port(app_config["port"])
    except ValueError as exc:
        APP_LOGGER.error(f"{exc}, please try again")
        sys.exit(1)

    try:
        catalog = build_catalog(app_config["instance_location"])
    except NotADirectoryError as exc:
        APP_LOGGER.error(str(exc))
        sys.exit(1)

    dests = get_destinations(config)
    ae = build_ae(app_config)

    APP_LOGGER.info(BANNER)
    APP_LOGGER.info(f"-| dicompot v{__version__}")
    APP_LOGGER.info(f"-| Loaded {len(catalog)} images")
    APP_LOGGER.info(f"-| Listening on {address}:{port}")
    APP_LOGGER.info(f"-| Local AE Title: {ae.ae_title}")
    APP_LOGGER.info("-| Attacker log: ")

    # Set our handler bindings
    handlers = [
        (evt.EVT_C_ECHO, handle_echo, [APP_LOGGER]),
        (evt.EVT_C_FIND, handle_find, [catalog, APP_LOGGER]),
        (evt.EVT_C_GET, handle_get, [catalog, APP_LOGGER]),
        (evt.EVT_C_MOVE, handle_move, [dests, catalog, APP_LOGGER]),
    ]

    # Listen for incoming association requests
    ae.start_server((address, port), evt_handlers=handlers)


if __name__ == "__main__":
    main()
