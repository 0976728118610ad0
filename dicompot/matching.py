"""Matching of Query/Retrieve *Identifier* keys against cataloged datasets.

The matching types are those of Part 4, Annex C.2.2.2 of the DICOM Standard:

* Single Value Matching
* List of UID Matching
* Universal Matching
* Wild Card Matching
* Range Matching
* Sequence Matching
"""

import logging
import re
from typing import TYPE_CHECKING, Any, Iterable

from pydicom.dataelem import DataElement
from pydicom.dataset import Dataset
from pydicom.multival import MultiValue
from pydicom.tag import Tag

if TYPE_CHECKING:  # pragma: no cover
    from dicompot.catalog import Record


LOGGER = logging.getLogger(__name__)

# VRs that support wild card matching
_TEXT_VR = ("AE", "CS", "LO", "LT", "PN", "SH", "ST", "UC", "UR", "UT")
# VRs that support range matching
_RANGE_VR = ("DA", "DT", "TM")
_NUMERIC_VR = ("DS", "FD", "FL", "IS", "SL", "SS", "SV", "UL", "US", "UV")
# (0008,0052) Query/Retrieve Level and (0008,0005) Specific Character Set
#   describe the query itself and always match
_QUERY_TAGS = (Tag(0x0008, 0x0052), Tag(0x0008, 0x0005))
# A UTC offset, +/-HHMM
_OFFSET = r"[+-](?:0\d|1[0-4])[0-5]\d"
# A DT value with a UTC offset, which isn't a range even if the offset is
#   negative
_DT_OFFSET_VALUE = re.compile(rf"\d{{4,}}(?:\.\d+)?{_OFFSET}")
# A DT range, either bound may carry a UTC offset
_DT_BOUND = rf"(?:\d+(?:\.\d+)?(?:{_OFFSET})?)?"
_DT_RANGE = re.compile(rf"({_DT_BOUND})-({_DT_BOUND})")
_DT_OFFSET = re.compile(rf"{_OFFSET}$")


class MatchError(Exception):
    """Raised when a query key can't be used for matching."""


class InternalMatchError(MatchError):
    """Raised when a match doesn't produce one element per query key."""


def _values(value: Any) -> list[Any]:
    """Return the value of an element as a list."""
    if value is None:
        return []

    if isinstance(value, (MultiValue, list, tuple)):
        return list(value)

    return [value]


def _text(value: Any, vr: str) -> str:
    """Return `value` as a normalised str for comparison."""
    text = str(value).strip()
    if vr == "PN":
        # Trailing empty component groups are insignificant
        return text.rstrip("^ ").upper()

    if vr == "DA":
        # ACR-NEMA style dates, YYYY.MM.DD
        return text.replace(".", "")

    if vr == "TM":
        # ACR-NEMA style times, HH:MM:SS
        return text.replace(":", "")

    return text


def _describe(elem: DataElement) -> tuple[str, str]:
    """Return the name and criterion of the query key `elem`."""
    name = elem.keyword or str(elem.tag)
    if elem.VR == "SQ":
        return name, f"{len(elem.value or [])} item(s)"

    return name, "\\".join(str(v) for v in _values(elem.value))


def is_universal(elem: DataElement) -> bool:
    """Return ``True`` if the query key `elem` uses universal matching.

    Parameters
    ----------
    elem : pydicom.dataelem.DataElement
        The query key.

    Returns
    -------
    bool
        ``True`` if the key has no value, is a sequence with no items or its
        value is a single ``'*'``.
    """
    if elem.VR == "SQ":
        return not elem.value

    values = _values(elem.value)
    if not values or all(v in (None, "", b"") for v in values):
        return True

    return elem.VR in _TEXT_VR and len(values) == 1 and str(values[0]) == "*"


def _match_wildcard(criterion: str, values: list[Any], vr: str) -> bool:
    """Return ``True`` if any of `values` matches the wild card `criterion`.

    '*' matches any sequence of characters (including none) and '?' matches
    any single character. Matching is case-sensitive, except for PN.
    """
    pattern = "".join(
        ".*" if char == "*" else "." if char == "?" else re.escape(char)
        for char in _text(criterion, vr)
    )
    regex = re.compile(pattern, re.DOTALL)

    return any(regex.fullmatch(_text(v, vr)) for v in values)


def _range_bounds(criterion: Any, vr: str) -> tuple[str, str] | None:
    """Return the (start, end) of the range `criterion`, or ``None`` if it's
    a single value.

    Either bound may be empty, but not both. A DT bound keeps its UTC offset.
    """
    text = str(criterion).strip()
    if "-" not in text:
        return None

    if vr == "DT":
        if _DT_OFFSET_VALUE.fullmatch(text):
            return None

        match = _DT_RANGE.fullmatch(text)
        if match is None:
            raise MatchError(f"Invalid range matching value '{criterion}'")

        start, end = match.groups()
    elif text.count("-") == 1:
        start, end = text.split("-")
    else:
        raise MatchError(f"Invalid range matching value '{criterion}'")

    if not start and not end:
        raise MatchError(f"Invalid range matching value '{criterion}'")

    return start, end


def _range_text(value: Any, vr: str) -> str:
    """Return `value` normalised for range comparison."""
    text = _text(value, vr)
    if vr == "DT":
        # Bounds and values are compared without their UTC offsets
        return _DT_OFFSET.sub("", text)

    return text


def _match_range(bounds: tuple[str, str], values: list[Any], vr: str) -> bool:
    """Return ``True`` if any of `values` is within the range `bounds`.

    The range is inclusive and may be open at either end (but not both).
    """
    start, end = (_range_text(v, vr) for v in bounds)
    for value in values:
        value = _range_text(value, vr)
        if not value:
            continue

        if start and value < start:
            continue

        # Compare at the precision of the upper bound so it's inclusive
        if end and value[: len(end)] > end:
            continue

        return True

    return False


def _match_single(criterion: Any, values: list[Any], vr: str) -> bool:
    """Return ``True`` if any of `values` equals `criterion`."""
    if vr in _NUMERIC_VR:
        try:
            target = float(criterion)
        except (TypeError, ValueError) as exc:
            raise MatchError(
                f"Invalid single value matching value '{criterion}' for VR {vr}"
            ) from exc

        for value in values:
            try:
                if float(value) == target:
                    return True
            except (TypeError, ValueError):
                continue

        return False

    if isinstance(criterion, (bytes, int, float)):
        return any(v == criterion for v in values)

    target = _text(criterion, vr)
    return any(_text(v, vr) == target for v in values)


def _match_sequence(
    elem: DataElement | None, key: DataElement
) -> tuple[bool, DataElement | None]:
    """Perform sequence matching of the query key `key` against `elem`."""
    items = list(key.value or [])
    if not items:
        return True, elem

    if len(items) > 1:
        raise MatchError(
            f"The sequence query key {_describe(key)[0]} contains more than "
            "one item"
        )

    subkeys = list(items[0])
    if elem is None or not elem.value:
        if all(is_universal(subkey) for subkey in subkeys):
            return True, None

        return False, None

    for item in elem.value:
        if all(match_element(item, subkey)[0] for subkey in subkeys):
            return True, elem

    return False, None


def match_element(
    ds: Dataset, key: DataElement
) -> tuple[bool, DataElement | None]:
    """Return whether `ds` satisfies the query key `key`.

    Parameters
    ----------
    ds : pydicom.dataset.Dataset
        The dataset to check.
    key : pydicom.dataelem.DataElement
        The query key, one of the elements of a C-FIND, C-GET or C-MOVE
        request's *Identifier*.

    Returns
    -------
    bool
        ``True`` if `ds` matches, ``False`` otherwise.
    pydicom.dataelem.DataElement or None
        If matched, the element from `ds` corresponding to `key`. ``None`` if
        there's no match, or if `key` uses universal matching and `ds` doesn't
        contain the element.

    Raises
    ------
    MatchError
        If `key` can't be used for matching.
    """
    tag = key.tag
    if tag in _QUERY_TAGS:
        return True, key

    if tag.group == 0x0002:
        raise MatchError(
            f"The query key {_describe(key)[0]} is a File Meta Information element"
        )

    elem = ds[tag] if tag in ds else None

    if key.VR == "SQ":
        return _match_sequence(elem, key)

    if is_universal(key):
        return True, elem

    if elem is None or elem.is_empty:
        return False, None

    values = _values(elem.value)
    criteria = _values(key.value)

    if key.VR == "UI":
        wanted = {str(uid).strip() for uid in criteria}
        if any(str(uid).strip() in wanted for uid in values):
            return True, elem

        return False, None

    if len(criteria) > 1:
        raise MatchError(f"Multiple values found in the query key {_describe(key)[0]}")

    criterion = criteria[0]
    bounds = _range_bounds(criterion, key.VR) if key.VR in _RANGE_VR else None
    if key.VR in _TEXT_VR and ("*" in str(criterion) or "?" in str(criterion)):
        matched = _match_wildcard(criterion, values, key.VR)
    elif bounds is not None:
        matched = _match_range(bounds, values, key.VR)
    else:
        matched = _match_single(criterion, values, key.VR)

    return (True, elem) if matched else (False, None)


def placeholder(key: DataElement) -> DataElement:
    """Return an empty element with the same tag and VR as `key`."""
    return DataElement(key.tag, key.VR, key.empty_value)


class FilterMatcher:
    """Match records against the keys of a single query.

    Parameters
    ----------
    filters : iterable of pydicom.dataelem.DataElement
        The query keys, usually the elements of a C-FIND, C-GET or C-MOVE
        request's *Identifier*. A record matches when it matches every key.

    Attributes
    ----------
    filters : list of pydicom.dataelem.DataElement
        The query keys.
    """

    def __init__(self, filters: Iterable[DataElement]) -> None:
        self.filters = list(filters)
        self._miss_logged = False

    def evaluate(self, record: "Record") -> tuple[bool, list[DataElement]]:
        """Match `record` against the query keys.

        Evaluation stops at the first key that doesn't match. The first miss
        during the lifetime of the matcher is logged.

        Parameters
        ----------
        record : dicompot.catalog.Record
            The record to match.

        Returns
        -------
        bool
            ``True`` if `record` matches every key, ``False`` otherwise.
        list of pydicom.dataelem.DataElement
            If matched then one element per key, in the same order as the
            keys, otherwise an empty list. A key using universal matching for
            an element not in the record gives an empty placeholder element.

        Raises
        ------
        MatchError
            If one of the keys can't be used for matching.
        """
        elements = []
        for key in self.filters:
            matched, elem = match_element(record.dataset, key)
            if not matched:
                self._log_miss(key)
                return False, []

            elements.append(elem if elem is not None else placeholder(key))

        return True, elements

    def _log_miss(self, key: DataElement) -> None:
        if self._miss_logged:
            return

        self._miss_logged = True
        name, term = _describe(key)
        LOGGER.info(
            f"Query key miss - {name}: '{term}'",
            extra={"filter_tag": name, "filter_term": term},
        )
