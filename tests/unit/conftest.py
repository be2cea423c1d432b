import os
import sys

import pytest
import requests

# Get the directory of the current conftest.py file
current_dir = os.path.dirname(os.path.abspath(__file__))

# Calculate the project root (adjust the number of ".." if needed)
project_root = os.path.abspath(os.path.join(current_dir, '../../'))

# Insert the project root at the beginning of sys.path
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from helpers import FakeBrowser, MockApplication


@pytest.fixture
def mock_app():
    """Factory for MockApplication servers, closed after the test."""
    servers = []

    def factory(responses, host='127.0.0.1', port=0):
        server = MockApplication(responses, host=host, port=port)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def http_session():
    session = requests.Session()
    session.trust_env = False
    return session
