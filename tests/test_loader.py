"""Tests for document loading."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from docrag.ingestion.loader import iter_pdf_pages, load_document, load_documents, read_text
from docrag.utils.files import document_id_for


def make_pdf(pages):
    mock_doc = MagicMock()
    mock_doc.__len__ = MagicMock(return_value=len(pages))
    mock_doc.__getitem__ = MagicMock(side_effect=lambda i: pages[i])
    return mock_doc


def make_page(text=None, error=None):
    page = MagicMock()
    if error is not None:
        page.get_text.side_effect = error
    else:
        page.get_text.return_value = text
    return page


class TestIterPdfPages:
    """Test iter_pdf_pages function."""

    @patch("docrag.ingestion.loader.fitz")
    def test_pages_in_order(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        """Should yield normalized text page by page."""
        mock_fitz.open.return_value = make_pdf([make_page("  Page 1\n\n  text "), make_page("Page 2")])

        pages = list(iter_pdf_pages(tmp_path / "doc.pdf"))

        assert len(pages) == 2
        assert pages[0] == "Page 1\ntext"
        assert pages[1] == "Page 2"

    @patch("docrag.ingestion.loader.fitz")
    def test_skips_blank_pages(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_fitz.open.return_value = make_pdf([make_page("   "), make_page("Content")])

        assert list(iter_pdf_pages(tmp_path / "doc.pdf")) == ["Content"]

    @patch("docrag.ingestion.loader.fitz")
    @patch("docrag.ingestion.loader.LOGGER")
    def test_page_error_logged(
        self, mock_logger: MagicMock, mock_fitz: MagicMock, tmp_path: Path
    ) -> None:
        """Should log a warning and continue on page extraction error."""
        mock_fitz.open.return_value = make_pdf(
            [make_page("Page 1"), make_page(error=Exception("Extraction failed")), make_page("Page 3")]
        )

        pages = list(iter_pdf_pages(tmp_path / "doc.pdf"))

        assert pages == ["Page 1", "Page 3"]
        mock_logger.warning.assert_called_once()

    @patch("docrag.ingestion.loader.fitz")
    def test_document_closed(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_doc = make_pdf([make_page("Page 1")])
        mock_fitz.open.return_value = mock_doc

        list(iter_pdf_pages(tmp_path / "doc.pdf"))

        mock_doc.close.assert_called_once()


class TestReadText:
    """Test read_text dispatch."""

    def test_plain_text(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("Hello world", encoding="utf-8")

        assert read_text(path) == "Hello world"

    @patch("docrag.ingestion.loader.fitz")
    def test_pdf_pages_joined(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_fitz.open.return_value = make_pdf([make_page("One"), make_page("Two")])
        path = tmp_path / "doc.PDF"
        path.write_bytes(b"dummy")

        assert read_text(path) == "One\nTwo"


class TestLoadDocument:
    """Test load_document function."""

    def test_text_document(self, tmp_path: Path) -> None:
        path = tmp_path / "readme.md"
        path.write_text("# Title\n\nBody text", encoding="utf-8")

        document = load_document(path)

        assert document.id == document_id_for(path)
        assert document.name == "readme.md"
        assert document.text == "# Title\n\nBody text"
        assert document.character_count == len(document.text)
        assert document.size_bytes == path.stat().st_size
        assert document.error is None

    def test_empty_file_flagged(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.txt"
        path.write_text("  \n ", encoding="utf-8")

        document = load_document(path)

        assert document.error == "No text extracted"
        assert not document.is_usable

    @patch("docrag.ingestion.loader.fitz")
    def test_read_failure_recorded(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        """Should never raise, the error travels on the document."""
        mock_fitz.open.side_effect = RuntimeError("cannot open broken document")
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"not a pdf")

        document = load_document(path)

        assert document.text == ""
        assert "cannot open" in document.error
        assert document.size_bytes == len(b"not a pdf")


class TestLoadDocuments:
    """Test load_documents function."""

    def test_walks_directories(self, tmp_path: Path) -> None:
        (tmp_path / "sub").mkdir()
        (tmp_path / "a.txt").write_text("first", encoding="utf-8")
        (tmp_path / "sub" / "b.md").write_text("second", encoding="utf-8")
        (tmp_path / "ignored.csv").write_text("x,y", encoding="utf-8")

        documents = load_documents([tmp_path])

        assert sorted(doc.name for doc in documents) == ["a.txt", "b.md"]
