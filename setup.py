from setuptools import setup, find_packages
from pathlib import Path


BASE_DIR = Path(__file__).parent

VERSION_FILE = BASE_DIR / "dicompot" / "_version.py"
with open(VERSION_FILE) as f:
    exec(f.read())

with open(BASE_DIR / "README.rst", "r") as f:
    long_description = f.read()

setup(
    name="dicompot",
    packages=find_packages(),
    include_package_data=True,
    package_data={"dicompot": ["default.ini"]},
    version=__version__,
    zip_safe=False,
    description="A DICOM Query/Retrieve honeypot",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    license="MIT",
    keywords="dicom pacs honeypot network security medicalimaging pydicom pynetdicom",
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Intended Audience :: Information Technology",
        "Intended Audience :: Healthcare Industry",
        "Development Status :: 3 - Alpha",
        "Natural Language :: English",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Topic :: Security",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
    install_requires=["pydicom>=3.0", "pynetdicom>=2.1", "structlog>=22.1"],
    extras_require={  # will also install from `install_requires`
        "tests": ["pytest", "pyfakefs"],
    },
    python_requires=">=3.10",
)
