import pytest
from fastapi.testclient import TestClient


@pytest.fixture()
def client(session_factory):
    from app import create_app

    return TestClient(create_app())
