import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="gridarchive",
    version="0.3.0",
    install_requires=[
        "numpy>=1.21",
        "pandas>1.3",
        "xarray",
        "netCDF4>=1.6",
        "pyproj>=3.1",  # first version with allow_ballpark
        "PyYAML",
        "tqdm",
    ],
    extras_require={
        "dev": [
            "pytest",
            "black==22.3.0",
        ],
        "test": ["pytest"],
    },
    description="A package that builds rolling CF NetCDF archives from a sequence of gridded forecast files.",
    license="BSD-3",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["gridarchive", "gridarchive.*"]),
    include_package_data=True,
    classifiers=[
        "License :: OSI Approved :: BSD License",
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
    ],
    python_requires=">=3.9",
)
