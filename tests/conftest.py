import pytest

from relay_helpers import Peer


@pytest.fixture
def peers():
    made = []

    def factory(n):
        for _ in range(n):
            made.append(Peer())
        return made[-n:]

    try:
        yield factory
    finally:
        for p in made:
            p.close()
