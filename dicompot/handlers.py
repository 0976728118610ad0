"""Event handlers for the dicompot service."""

from itertools import chain

from pydicom.dataset import Dataset

from dicompot.matching import InternalMatchError
from dicompot.responders import QueryCancelled, respond_find, respond_retrieve


def _requestor(event):
    """Return a description of the peer that sent the request."""
    requestor = event.assoc.requestor
    timestamp = event.timestamp.strftime("%Y-%m-%d %H:%M:%S")

    return f"{requestor.address}:{requestor.port} at {timestamp}"


def _query_keys(filters):
    """Return the query keys as a str suitable for logging."""
    keys = []
    for elem in filters:
        name = elem.keyword or str(elem.tag)
        if elem.VR == "SQ":
            keys.append(f"{name}=<sequence>")
        elif elem.value is None:
            keys.append(f"{name}=")
        else:
            keys.append(f"{name}={elem.value}")

    return ", ".join(keys) or "(none)"


def _cancel_check(event):
    """Return a callable that's ``True`` once the requestor gives up."""

    def is_cancelled():
        return event.is_cancelled or not event.assoc.is_established

    return is_cancelled


def _decode_query(event, name, logger):
    """Return the request's query keys, or ``None`` if not decodable."""
    try:
        filters = list(event.identifier)
    except Exception as exc:
        logger.error(f"Unable to decode the {name} Identifier")
        logger.exception(exc)
        return None

    logger.info(
        f"{name} query: SOP Class '{event.request.AffectedSOPClassUID}', "
        f"Transfer Syntax '{event.context.transfer_syntax}'"
    )
    logger.info(f"{name} query keys: {_query_keys(filters)}")

    return filters


def _failure_status(exc, name, error_status, logger):
    """Log the match pass failure `exc` and return the response status."""
    if isinstance(exc, InternalMatchError):
        logger.error(f"Internal error while matching the {name} query: {exc}")
        return error_status

    logger.error(f"Invalid {name} Identifier received: {exc}")
    # Identifier does not match SOP class
    return 0xA900


def _retrieve(event, catalog, name, error_status, logger):
    """Yield the sub-operation count then the C-GET or C-MOVE results."""
    filters = _decode_query(event, name, logger)
    if filters is None:
        # A non-zero count is required for the failure status to be sent
        yield 1
        yield error_status, None
        return

    results = respond_retrieve(catalog, filters, _cancel_check(event))
    try:
        first = next(results, None)
    except QueryCancelled:
        logger.info(f"{name} request cancelled")
        yield 0
        return

    if first is None:
        yield 0
        return

    if first.path is None:
        yield 1
        yield _failure_status(first.error, name, error_status, logger), None
        return

    # Number of sub-operations
    yield first.remaining + 1

    try:
        for result in chain([first], results):
            if result.error is not None:
                # A pending status without a dataset is counted by pynetdicom
                #   as a failed sub-operation
                logger.warning(f"Unable to send '{result.path}': {result.error}")
                yield 0xFF00, result.path
                continue

            logger.debug(f"Sending '{result.path}', {result.remaining} remaining")
            yield 0xFF00, result.dataset
    except QueryCancelled:
        logger.info(f"{name} request cancelled")
        yield 0xFE00, None


def handle_echo(event, logger):
    """Handler for evt.EVT_C_ECHO.

    Parameters
    ----------
    event : pynetdicom.events.Event
        The corresponding event.
    logger : logging.Logger
        The application's logger.

    Returns
    -------
    int
        The status of the C-ECHO operation, always ``0x0000`` (Success).
    """
    logger.info(f"Received C-ECHO request from {_requestor(event)}")

    return 0x0000


def handle_find(event, catalog, logger):
    """Handler for evt.EVT_C_FIND.

    Parameters
    ----------
    event : pynetdicom.events.Event
        The C-FIND request :class:`~pynetdicom.events.Event`.
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    logger : logging.Logger
        The application's logger.

    Yields
    ------
    int, pydicom.dataset.Dataset or None
        The C-FIND response's *Status* and if the *Status* is pending then
        the dataset to be sent, otherwise ``None``.
    """
    logger.info(f"Received C-FIND request from {_requestor(event)}")

    filters = _decode_query(event, "C-FIND", logger)
    if filters is None:
        yield 0xC310, None
        return

    try:
        for result in respond_find(catalog, filters, _cancel_check(event)):
            if result.error is not None:
                status = _failure_status(result.error, "C-FIND", 0xC320, logger)
                yield status, None
                return

            response = Dataset()
            for elem in result.elements:
                response.add(elem)

            response.RetrieveAETitle = event.assoc.ae.ae_title
            yield 0xFF00, response
    except QueryCancelled:
        logger.info("C-FIND request cancelled")
        yield 0xFE00, None


def handle_get(event, catalog, logger):
    """Handler for evt.EVT_C_GET.

    Parameters
    ----------
    event : pynetdicom.events.Event
        The C-GET request :class:`~pynetdicom.events.Event`.
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    logger : logging.Logger
        The application's logger.

    Yields
    ------
    int
        The number of sub-operations required to complete the request.
    int, pydicom.dataset.Dataset or None
        The C-GET response's *Status* and if the *Status* is pending then
        the dataset to be sent, otherwise ``None``.
    """
    logger.info(f"Received C-GET request from {_requestor(event)}")

    yield from _retrieve(event, catalog, "C-GET", 0xC420, logger)


def handle_move(event, destinations, catalog, logger):
    """Handler for evt.EVT_C_MOVE.

    Parameters
    ----------
    event : pynetdicom.events.Event
        The C-MOVE request :class:`~pynetdicom.events.Event`.
    destinations : dict
        The known move destinations as ``{'AE_TITLE': (addr, port)}``.
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    logger : logging.Logger
        The application's logger.

    Yields
    ------
    (str, int) or (None, None)
        The (IP address, port) of the *Move Destination* (if known).
    int
        The number of sub-operations required to complete the request.
    int, pydicom.dataset.Dataset or None
        The C-MOVE response's *Status* and if the *Status* is pending then
        the dataset to be sent, otherwise ``None``.
    """
    destination = event.move_destination
    if isinstance(destination, bytes):
        destination = destination.decode("ascii", errors="replace")

    destination = destination.strip()
    logger.info(
        f"Received C-MOVE request from {_requestor(event)} with move "
        f"destination '{destination}'"
    )

    try:
        addr, port = destinations[destination]
    except KeyError:
        logger.warning(f"Unknown move destination '{destination}' requested")
        yield None, None
        return

    yield addr, port

    yield from _retrieve(event, catalog, "C-MOVE", 0xC520, logger)
