from __future__ import annotations

import base64
import io
import logging

from roster_scanner.ports.image_encoder_port import ImageEncoderPort

LOGGER = logging.getLogger(__name__)

MAX_DIMENSION = 2048
MAX_ENCODED_BYTES = 1024 * 1024
INITIAL_QUALITY = 0.85
MIN_QUALITY = 0.5
QUALITY_STEP = 0.1


class PillowImageEncoder(ImageEncoderPort):
    """Downscale and JPEG-encode a roster photo or the first page of a PDF."""

    def __init__(
        self,
        max_dimension: int = MAX_DIMENSION,
        max_bytes: int = MAX_ENCODED_BYTES,
        pdf_dpi: int = 200,
    ) -> None:
        self._max_dimension = max_dimension
        self._max_bytes = max_bytes
        self._pdf_dpi = pdf_dpi

    def encode(self, file_bytes: bytes, mime_type: str) -> str:
        try:
            from PIL import Image
        except ImportError as exc:
            raise RuntimeError(
                "Pillow is required for roster images. Install with: pip install pillow"
            ) from exc

        try:
            if mime_type == "application/pdf" or self._is_pdf_bytes(file_bytes):
                image = self._first_pdf_page(file_bytes)
            else:
                image = Image.open(io.BytesIO(file_bytes))
                image.load()
        except RuntimeError:
            raise
        except Exception as exc:
            raise RuntimeError("Failed to load roster image.") from exc

        image = self._fit(image.convert("RGB"))
        quality = INITIAL_QUALITY
        data = self._to_jpeg(image, quality)
        while len(data) > self._max_bytes and quality - QUALITY_STEP >= MIN_QUALITY - 1e-9:
            quality = round(quality - QUALITY_STEP, 2)
            data = self._to_jpeg(image, quality)
        LOGGER.debug(
            "Encoded roster image %sx%s at quality %.2f (%s bytes)",
            image.width,
            image.height,
            quality,
            len(data),
        )
        return base64.b64encode(data).decode("ascii")

    def _fit(self, image):
        width, height = image.size
        longest = max(width, height)
        if longest <= self._max_dimension:
            return image
        scale = self._max_dimension / longest
        size = (max(1, round(width * scale)), max(1, round(height * scale)))
        return image.resize(size)

    @staticmethod
    def _to_jpeg(image, quality: float) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=int(round(quality * 100)))
        return buffer.getvalue()

    def _first_pdf_page(self, pdf_bytes: bytes):
        try:
            from pdf2image import convert_from_bytes
        except ImportError as exc:
            raise RuntimeError(
                "pdf2image is required for PDF rosters. Install with: pip install pdf2image"
            ) from exc
        pages = convert_from_bytes(pdf_bytes, dpi=self._pdf_dpi, first_page=1, last_page=1)
        if not pages:
            raise RuntimeError("PDF has no pages.")
        return pages[0]

    @staticmethod
    def _is_pdf_bytes(data: bytes) -> bool:
        return data.lstrip().startswith(b"%PDF")
