import os

import pytest

AppTest = pytest.importorskip("streamlit.testing.v1").AppTest

UI_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    'src', 'storefront', 'ui', 'app_streamlit.py',
)


def test_console_renders_with_empty_store(monkeypatch):
    monkeypatch.delenv('STOREFRONT_DATA_DIR', raising=False)

    at = AppTest.from_file(UI_PATH, default_timeout=30).run()

    assert not at.exception
    assert at.title[0].value == "Storefront Admin"
    assert len(at.tabs) == 4
