"""dicompot configuration options"""


IMAGE_EXTENSIONS: tuple[str, ...] = (".dcm", ".dicom")
"""File extensions that mark a file as a candidate image when scanning.

Matching is case-insensitive. Files inside a directory containing a
:attr:`DICOMDIR_MARKER` file are read regardless of their extension.

Default: ``(".dcm", ".dicom")``

Examples
--------

>>> from dicompot import _config
>>> _config.IMAGE_EXTENSIONS = (".dcm", ".ima")
"""


DICOMDIR_MARKER: str = "DICOMDIR"
"""The name of the file that marks a flat directory of DICOM files.

Default: ``"DICOMDIR"``
"""


FORCE_READ: bool = False
"""Read files that are missing the DICOM File Meta Information header.

If ``True`` then files are passed to :func:`~pydicom.filereader.dcmread`
with ``force=True``, which may produce meaningless datasets for files that
aren't DICOM.

Default: ``False``

Examples
--------

>>> from dicompot import _config
>>> _config.FORCE_READ = True
"""
