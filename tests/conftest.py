"""Shared pytest fixtures."""

import pytest
from bs4 import BeautifulSoup

import csprender.config as config_mod
from csprender.config import clear_settings_cache
from csprender.lib.csp import CSP_HEADER
from csprender.lib.hooks import hooks
from csprender.response import PipelineResponse


@pytest.fixture
def clean_hooks():
    """Save and restore the render hook callbacks around a test."""
    saved = {name: list(cbs) for name, cbs in hooks.callbacks.items()}
    yield
    for name, cbs in saved.items():
        hooks.callbacks[name][:] = cbs


@pytest.fixture
def clean_settings(tmp_path, monkeypatch):
    """Run with an empty working directory and no cached settings."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CSPRENDER_ENV", raising=False)
    config_mod._config_path_override = None
    clear_settings_cache()
    yield tmp_path
    config_mod._config_path_override = None
    clear_settings_cache()


@pytest.fixture
def make_response():
    """Factory for responses, optionally carrying a CSP header."""
    def _make(csp=None):
        response = PipelineResponse()
        if csp is not None:
            response.headers[CSP_HEADER] = csp
        return response
    return _make


@pytest.fixture
def make_soup():
    """Factory that parses HTML the same way the pipeline does."""
    def _make(html):
        return BeautifulSoup(html, "html.parser")
    return _make
