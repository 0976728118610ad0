"""Utility functions for the dicompot tests."""

import os
import socket

from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, generate_uid

from pynetdicom.sop_class import CTImageStorage


PORTS = {}


def get_port() -> int:
    """Return a probably-open port that each worker can use"""
    worker_id = os.environ.get("PYTEST_XDIST_WORKER")
    if worker_id in PORTS:
        return PORTS[worker_id]

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("localhost", 0))
        PORTS[worker_id] = s.getsockname()[1]

    return PORTS[worker_id]


def make_dataset(**kwargs):
    """Return a CT Image dataset, updated using the keyword `kwargs`.

    A keyword with a value of ``None`` removes the element.
    """
    ds = Dataset()
    ds.SOPClassUID = CTImageStorage
    ds.SOPInstanceUID = generate_uid()
    ds.PatientID = "1CT1"
    ds.PatientName = "CompressedSamples^CT1"
    ds.StudyInstanceUID = generate_uid()
    ds.StudyDate = "20040119"
    ds.StudyTime = "072730"
    ds.SeriesInstanceUID = generate_uid()
    ds.Modality = "CT"
    ds.SeriesNumber = 1
    ds.InstanceNumber = 1

    for keyword, value in kwargs.items():
        if value is None:
            if keyword in ds:
                delattr(ds, keyword)
            continue

        setattr(ds, keyword, value)

    return ds


def write_dataset(fpath, ds=None, pixel_data=True):
    """Write `ds` to `fpath` in the DICOM File Format and return `fpath`.

    Parameters
    ----------
    fpath : str or pathlib.Path
        The path to write to, any missing directories are created.
    ds : pydicom.dataset.Dataset, optional
        The dataset to write, if not used then a new dataset is created.
    pixel_data : bool, optional
        Add a small monochrome image to the dataset (default ``True``).
    """
    ds = make_dataset() if ds is None else ds

    if pixel_data:
        ds.SamplesPerPixel = 1
        ds.PhotometricInterpretation = "MONOCHROME2"
        ds.Rows = 2
        ds.Columns = 2
        ds.BitsAllocated = 8
        ds.BitsStored = 8
        ds.HighBit = 7
        ds.PixelRepresentation = 0
        ds.PixelData = b"\x00\x01\x02\x03"

    ds.file_meta = FileMetaDataset()
    ds.file_meta.MediaStorageSOPClassUID = ds.SOPClassUID
    ds.file_meta.MediaStorageSOPInstanceUID = ds.SOPInstanceUID
    ds.file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    os.makedirs(os.path.dirname(os.fspath(fpath)), exist_ok=True)
    ds.save_as(fpath, enforce_file_format=True)

    return fpath


def make_identifier(**kwargs):
    """Return a query *Identifier* with the elements in `kwargs`."""
    ds = Dataset()
    for keyword, value in kwargs.items():
        setattr(ds, keyword, value)

    return ds
