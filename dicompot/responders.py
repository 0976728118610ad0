"""Match passes over the catalog and the responses built from them."""

import logging
from typing import Callable, Iterable, Iterator, NamedTuple

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset

from dicompot.catalog import Catalog, read_record
from dicompot.matching import FilterMatcher, InternalMatchError, MatchError


LOGGER = logging.getLogger(__name__)

CancelCheckType = Callable[[], bool]


class QueryCancelled(Exception):
    """Raised when the requestor no longer wants the query's results."""


class MatchResult(NamedTuple):
    """A record that matched a query.

    `elements` has one element per query key, in the same order as the keys.
    """

    path: str
    elements: list[DataElement]


class FindResult(NamedTuple):
    """An item in the response to a C-FIND query, either matched elements or
    the error that ended the query.
    """

    elements: list[DataElement] | None = None
    error: Exception | None = None


class RetrieveResult(NamedTuple):
    """An item in the response to a C-GET or C-MOVE query.

    `remaining` is the number of items still to follow this one. If the match
    pass failed then `path` is ``None`` and `error` is set. If the matched file
    couldn't be read then `path` is set and `error` is set.
    """

    remaining: int
    path: str | None
    dataset: Dataset | None = None
    error: Exception | None = None


def _check_cancelled(is_cancelled: CancelCheckType | None) -> None:
    if is_cancelled is not None and is_cancelled():
        raise QueryCancelled("The query was cancelled by the requestor")


def find_matches(
    catalog: Catalog,
    filters: Iterable[DataElement],
    is_cancelled: CancelCheckType | None = None,
) -> list[MatchResult]:
    """Return the catalog's records that match `filters`.

    The catalog is locked for the duration of the match pass.

    Parameters
    ----------
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    filters : iterable of pydicom.dataelem.DataElement
        The query keys.
    is_cancelled : callable, optional
        A callable taking no arguments that returns ``True`` when the query
        should be abandoned, checked before each record is matched.

    Returns
    -------
    list of dicompot.responders.MatchResult
        The matches, in catalog order.

    Raises
    ------
    MatchError
        If one of the query keys can't be used for matching.
    InternalMatchError
        If a record matched without producing one element per query key.
    QueryCancelled
        If `is_cancelled` returned ``True``.
    """
    matcher = FilterMatcher(filters)
    nr_keys = len(matcher.filters)

    matches = []
    with catalog.lock:
        for record in catalog:
            _check_cancelled(is_cancelled)
            matched, elements = matcher.evaluate(record)
            if not matched:
                continue

            if not elements or len(elements) != nr_keys:
                raise InternalMatchError(
                    f"'{record.path}' matched the query with {len(elements)} "
                    f"element(s) for {nr_keys} query key(s)"
                )

            matches.append(MatchResult(record.path, elements))

    return matches


def respond_find(
    catalog: Catalog,
    filters: Iterable[DataElement],
    is_cancelled: CancelCheckType | None = None,
) -> Iterator[FindResult]:
    """Yield the response items for a C-FIND query.

    Parameters
    ----------
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    filters : iterable of pydicom.dataelem.DataElement
        The query keys.
    is_cancelled : callable, optional
        A callable taking no arguments that returns ``True`` when the query
        should be abandoned.

    Yields
    ------
    dicompot.responders.FindResult
        One item per match, or a single item with the error if the match pass
        failed.

    Raises
    ------
    QueryCancelled
        If `is_cancelled` returned ``True``.
    """
    try:
        matches = find_matches(catalog, filters, is_cancelled)
    except MatchError as exc:
        yield FindResult(error=exc)
        return

    LOGGER.info(f"Find query matched {len(matches)} instance(s)")

    for match in matches:
        _check_cancelled(is_cancelled)
        yield FindResult(elements=match.elements)


def respond_retrieve(
    catalog: Catalog,
    filters: Iterable[DataElement],
    is_cancelled: CancelCheckType | None = None,
) -> Iterator[RetrieveResult]:
    """Yield the response items for a C-GET or C-MOVE query.

    Each matching file is read in full, including its *Pixel Data*, only when
    its item is about to be yielded and without holding the catalog lock.

    Parameters
    ----------
    catalog : dicompot.catalog.Catalog
        The catalog to search.
    filters : iterable of pydicom.dataelem.DataElement
        The query keys.
    is_cancelled : callable, optional
        A callable taking no arguments that returns ``True`` when the query
        should be abandoned.

    Yields
    ------
    dicompot.responders.RetrieveResult
        One item per match with the number of items remaining after it, or a
        single item with the error if the match pass failed.

    Raises
    ------
    QueryCancelled
        If `is_cancelled` returned ``True``.
    """
    try:
        matches = find_matches(catalog, filters, is_cancelled)
    except MatchError as exc:
        yield RetrieveResult(0, None, error=exc)
        return

    LOGGER.info(f"Retrieve query matched {len(matches)} instance(s)")

    nr_matches = len(matches)
    for ii, match in enumerate(matches):
        _check_cancelled(is_cancelled)
        remaining = nr_matches - ii - 1
        try:
            record = read_record(match.path, include_pixel_data=True)
        except Exception as exc:
            LOGGER.error(f"{match.path}: failed to read DICOM file: {exc}")
            yield RetrieveResult(remaining, match.path, error=exc)
            continue

        yield RetrieveResult(remaining, match.path, dataset=record.dataset)
