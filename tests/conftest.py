from collections.abc import Iterator

import pytest

import mockspace
from mockspace import Space


@pytest.fixture
def space() -> Iterator[Space]:
    space = Space()
    previous = mockspace.use_space(space)
    try:
        yield space
    finally:
        mockspace.use_space(previous)
        space.reset_all()
