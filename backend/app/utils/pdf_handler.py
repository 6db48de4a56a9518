"""
PDF handling utilities for in-memory processing.
Rasterizes uploaded PDFs to images without saving to disk.
"""
import logging
from typing import List
from io import BytesIO
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from PIL import Image

logger = logging.getLogger(__name__)

# PDF user space is 72 points per inch
PDF_POINTS_PER_INCH = 72


class PDFHandler:
    """Handler for PDF processing in memory."""

    @staticmethod
    def scale_to_dpi(scale: float) -> int:
        """Convert a render scale factor (1.0 = 72 dpi) to dots per inch."""
        return max(1, int(round(PDF_POINTS_PER_INCH * scale)))

    @staticmethod
    def pdf_to_images(pdf_bytes: bytes, first_page_only: bool = True, scale: float = 1.0) -> List[Image.Image]:
        """
        Convert PDF bytes to PIL Image objects.

        Args:
            pdf_bytes: PDF file as bytes
            first_page_only: If True, only convert first page
            scale: Render scale factor relative to 72 dpi

        Returns:
            List of PIL Image objects (empty if conversion fails)
        """
        dpi = PDFHandler.scale_to_dpi(scale)
        try:
            if first_page_only:
                images = convert_from_bytes(pdf_bytes, dpi=dpi, first_page=1, last_page=1)
            else:
                images = convert_from_bytes(pdf_bytes, dpi=dpi)

            logger.info(f"Converted PDF to {len(images)} image(s) at {dpi} dpi")
            return images

        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, OSError, ValueError) as e:
            logger.error(f"Error converting PDF to images: {e}")
            return []

    @staticmethod
    def image_to_bytes(image: Image.Image, format: str = 'PNG') -> bytes:
        """
        Convert PIL Image to bytes.

        Args:
            image: PIL Image object
            format: Image format (PNG, JPEG, etc.)

        Returns:
            Image as bytes
        """
        buffer = BytesIO()
        image.save(buffer, format=format)
        return buffer.getvalue()
