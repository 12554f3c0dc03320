"""Adapter test helpers."""

import pytest


@pytest.fixture
def attach():
    """Mark an adapter connected with a stand-in native client."""
    def _attach(adapter, client, **attributes):
        adapter._client = client
        adapter._initialized = True
        for name, value in attributes.items():
            setattr(adapter, name, value)
        return adapter

    return _attach
