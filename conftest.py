# content of conftest.py
import pytest
import numpy
import gridarchive


@pytest.fixture(autouse=True)
def add_np(doctest_namespace):
    doctest_namespace["np"] = numpy


@pytest.fixture(autouse=True)
def add_gridarchive(doctest_namespace):
    doctest_namespace["gridarchive"] = gridarchive
