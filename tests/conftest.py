"""
Pytest configuration and fixtures for PDF Viewer Backend tests.
"""

import asyncio
import os
import threading
from typing import Dict, List, Optional, Tuple

import pymupdf
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["PDF_VIEWER_GATEWAY_URL"] = "http://gateway.test"
os.environ["PDF_VIEWER_LOG_LEVEL"] = "DEBUG"

from pdf_viewer_backend.document_loader import load_document
from pdf_viewer_backend.errors import RenderError, RenderErrorKind
from pdf_viewer_backend.main import app, session_manager
from pdf_viewer_backend.page_renderer import PageRenderer
from pdf_viewer_backend.raster_cache import RasterImage


def build_pdf(page_count: int, rotations: Optional[List[int]] = None) -> bytes:
    """Build a small PDF with one line of text per page."""
    doc = pymupdf.open()
    for index in range(page_count):
        page = doc.new_page(width=612, height=792)
        page.insert_text((72, 72), f"Page {index + 1}", fontsize=24)
        if rotations:
            page.set_rotation(rotations[index])
    data = doc.tobytes()
    doc.close()
    return data


class StubRenderer(PageRenderer):
    """
    Renderer double that encodes its inputs instead of rasterizing.

    - fail_pages: page indices that raise DECODE_FAILED
    - fail_keys: (page, rotation) pairs that raise DECODE_FAILED
    - gate(page, rotation): renders for that key block until the event is set
    - started(page, rotation): set as soon as a render for that key begins
    """

    def __init__(self) -> None:
        self.fail_pages: set[int] = set()
        self.fail_keys: set[Tuple[int, int]] = set()
        self.calls: List[Tuple[int, int, float]] = []
        self._gates: Dict[Tuple[int, int], threading.Event] = {}
        self._started: Dict[Tuple[int, int], threading.Event] = {}
        self._lock = threading.Lock()

    def gate(self, page_index: int, rotation: int) -> threading.Event:
        with self._lock:
            return self._gates.setdefault((page_index, rotation), threading.Event())

    def started(self, page_index: int, rotation: int) -> threading.Event:
        with self._lock:
            return self._started.setdefault((page_index, rotation), threading.Event())

    def reset_calls(self) -> None:
        with self._lock:
            self.calls.clear()

    def render(self, document, page_index, rotation, scale):
        key = (page_index, rotation)
        with self._lock:
            self.calls.append((page_index, rotation, scale))
            gate = self._gates.get(key)
        self.started(page_index, rotation).set()
        if gate is not None and not gate.wait(timeout=10):
            raise TimeoutError(f"gate for {key} never opened")
        if page_index in self.fail_pages or key in self.fail_keys:
            raise RenderError(RenderErrorKind.DECODE_FAILED, f"page {page_index} is corrupt", page_index=page_index)
        return RasterImage(data=f"{page_index}:{rotation}:{scale}".encode(), width=10, height=10)


@pytest.fixture
def pdf_factory():
    """Return the PDF builder so tests can choose page counts and rotations."""
    return build_pdf


@pytest.fixture
def sample_pdf():
    """A three-page PDF."""
    return build_pdf(3)


@pytest.fixture
def load():
    """Load bytes into a Document synchronously."""
    documents = []

    def _load(data: bytes, **kwargs):
        document = asyncio.run(load_document(data, **kwargs))
        documents.append(document)
        return document

    yield _load

    for document in documents:
        document.close()


@pytest.fixture
def stub_renderer():
    return StubRenderer()


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def manager():
    """The application's session manager; sessions are closed after each test."""
    yield session_manager
    session_manager.close_all()
