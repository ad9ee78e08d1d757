"""
Pytest configuration and shared fixtures for mathword tests.
"""
import io
import sys
import zipfile
from pathlib import Path

import pytest
from lxml import etree

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from mathword.config import Settings

NAMESPACES = {
    'w': 'http://schemas.openxmlformats.org/wordprocessingml/2006/main',
    'm': 'http://schemas.openxmlformats.org/officeDocument/2006/math',
}


@pytest.fixture
def test_settings():
    """Settings with a fake API key and small chunks."""
    return Settings(gemini_api_key="test-key", ai_chunk_size=1000, ai_concurrency=2)


@pytest.fixture
def document_xml():
    """Returns a function that parses word/document.xml out of .docx bytes."""
    def _parse(docx_bytes: bytes):
        with zipfile.ZipFile(io.BytesIO(docx_bytes)) as zf:
            return etree.fromstring(zf.read('word/document.xml'))
    return _parse
