import pytest

from stashx import StoreRegistry


@pytest.fixture
def registry():
    r = StoreRegistry()
    yield r
    r.dispose_all()
