# core/page_renderer.py
import base64
from typing import List, Optional
import fitz
from config.settings import settings
from core.entities import Document, PreparedPage
from util.errors import PreparationError
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

JPEG = "image/jpeg"


class PdfPageRenderer:
    """
    Renders every PDF page to a JPEG suitable for a vision model.

    Rendering is deterministic for a given file, so callers may cache the output.
    """

    def __init__(
        self,
        scale: float = settings.RENDER_SCALE,
        max_width: int = settings.RENDER_MAX_WIDTH,
        jpeg_quality: int = settings.RENDER_JPEG_QUALITY,
    ) -> None:
        self._scale = scale
        self._max_width = max_width
        self._quality = jpeg_quality

    def _matrix_for(self, page: "fitz.Page") -> "fitz.Matrix":
        zoom = self._scale
        width = page.rect.width * zoom
        if width > self._max_width:
            zoom = zoom * self._max_width / width
        return fitz.Matrix(zoom, zoom)

    def prepare(self, document: Document) -> List[PreparedPage]:
        """
        Return one PreparedPage per rendered page, in page order.
        Raises PreparationError when the file cannot be opened or yields no pages.
        """
        out: List[PreparedPage] = []
        try:
            with timed(logger, "pdf.render", file=document.filename):
                with fitz.open(document.path) as doc:
                    for i in range(doc.page_count):
                        page = doc.load_page(i)
                        pix = page.get_pixmap(matrix=self._matrix_for(page), alpha=False)
                        data = pix.tobytes(output="jpeg", jpg_quality=self._quality)
                        out.append(
                            PreparedPage(
                                page=i + 1,
                                media_type=JPEG,
                                data=base64.b64encode(data).decode("ascii"),
                            )
                        )
        except Exception as e:
            logger.error("pdf.render.error file=%s", document.filename, exc_info=True)
            raise PreparationError(
                f"Failed to convert {document.filename} to images: {e}"
            ) from e

        if not out:
            raise PreparationError(f"No images could be extracted from {document.filename}")
        logger.info("pdf.pages file=%s count=%d", document.filename, len(out))
        return out

    def page_count(self, path: str) -> Optional[int]:
        """
        Number of pages, or None if the file cannot be parsed.
        Used only for capacity planning, so failures are logged, not raised.
        """
        try:
            with fitz.open(path) as doc:
                return doc.page_count
        except Exception:
            logger.warning("pdf.count.error path=%s", path, exc_info=True)
            return None
