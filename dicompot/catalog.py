"""The catalog of DICOM files presented to peers.

Files are found by walking an image directory, then read once without their
*Pixel Data* so that the catalog's memory use stays bounded. The full file is
only read again when a peer retrieves it.
"""

import logging
import os
import threading
from typing import Iterable, Iterator

from pydicom import dcmread
from pydicom.dataset import Dataset

from dicompot import _config


LOGGER = logging.getLogger(__name__)


class Record:
    """A single cataloged DICOM file.

    Attributes
    ----------
    path : str
        The location of the file, unique within a :class:`Catalog`.
    dataset : pydicom.dataset.Dataset
        The file's dataset. Records held by a :class:`Catalog` have no
        *Pixel Data*.
    """

    def __init__(self, path: str, dataset: Dataset) -> None:
        self.path = path
        self.dataset = dataset

    def __repr__(self) -> str:
        return f"Record(path={self.path!r})"


class Catalog:
    """The records served by the application, keyed by path.

    Each path is present at most once; adding a record for a path that's
    already in the catalog has no effect. Iterating over the catalog yields
    its records sorted by path, which is the order results are sent in.

    Attributes
    ----------
    lock : threading.Lock
        Held for the duration of a query's match pass.
    """

    def __init__(self, records: Iterable[Record] = ()) -> None:
        self._records: dict[str, Record] = {}
        self._order: list[str] | None = None
        self.lock = threading.Lock()

        for record in records:
            self.add(record)

    def add(self, record: Record) -> bool:
        """Add `record` to the catalog.

        Parameters
        ----------
        record : dicompot.catalog.Record
            The record to add.

        Returns
        -------
        bool
            ``True`` if the record was added, ``False`` if a record with the
            same path was already present.
        """
        if record.path in self._records:
            return False

        self._records[record.path] = record
        self._order = None

        return True

    def __contains__(self, path: object) -> bool:
        return path in self._records

    def __getitem__(self, path: str) -> Record:
        return self._records[path]

    def __iter__(self) -> Iterator[Record]:
        for path in self.paths:
            yield self._records[path]

    def __len__(self) -> int:
        return len(self._records)

    @property
    def paths(self) -> list[str]:
        """Return the cataloged paths in sorted order."""
        if self._order is None:
            self._order = sorted(self._records)

        return list(self._order)


def read_record(path: str, include_pixel_data: bool = False) -> Record:
    """Read the DICOM file at `path`.

    Parameters
    ----------
    path : str
        The path to the file.
    include_pixel_data : bool, optional
        If ``False`` (default) then stop reading at the *Pixel Data* element.

    Returns
    -------
    dicompot.catalog.Record
        The record for the file.

    Raises
    ------
    Exception
        Any exception raised by :func:`~pydicom.filereader.dcmread` when the
        file can't be read or decoded.
    """
    ds = dcmread(
        path, stop_before_pixels=not include_pixel_data, force=_config.FORCE_READ
    )

    return Record(path, ds)


def scan(root: str) -> list[str]:
    """Return the paths of the candidate DICOM files in or under `root`.

    All files directly inside a directory containing a ``DICOMDIR`` file are
    candidates, regardless of their extension. Elsewhere only files with one
    of the extensions in :attr:`~dicompot._config.IMAGE_EXTENSIONS` are.

    Parameters
    ----------
    root : str
        The directory to search.

    Returns
    -------
    list of str
        The sorted, unique candidate paths.
    """
    extensions = tuple(ext.lower() for ext in _config.IMAGE_EXTENSIONS)
    marker = _config.DICOMDIR_MARKER

    def _on_error(exc: OSError) -> None:
        LOGGER.warning(f"{exc.filename}: skipping: {exc.strerror}")

    candidates = set()
    for dirpath, _, filenames in os.walk(root, onerror=_on_error):
        if marker in filenames:
            candidates.update(
                os.path.join(dirpath, fname) for fname in filenames if fname != marker
            )
            continue

        candidates.update(
            os.path.join(dirpath, fname)
            for fname in filenames
            if os.path.splitext(fname)[1].lower() in extensions
        )

    return sorted(candidates)


def build_catalog(root: str) -> Catalog:
    """Return a :class:`Catalog` of the DICOM files in or under `root`.

    Files that can't be read are logged and left out of the catalog.

    Parameters
    ----------
    root : str
        The image directory.

    Returns
    -------
    dicompot.catalog.Catalog
        The catalog, with one record per successfully read file.

    Raises
    ------
    NotADirectoryError
        If `root` isn't an existing directory.
    """
    if not os.path.isdir(root):
        raise NotADirectoryError(
            f"The image directory '{root}' doesn't exist or isn't a directory"
        )

    catalog = Catalog()
    for path in scan(root):
        if path in catalog:
            continue

        try:
            record = read_record(path)
        except Exception as exc:
            LOGGER.error(f"{path}: failed to parse DICOM file: {exc}")
            continue

        catalog.add(record)

    LOGGER.debug(f"Cataloged {len(catalog)} DICOM file(s) under '{root}'")

    return catalog
