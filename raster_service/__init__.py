"""
Raster Service - Dedicated service for PDF to JPEG conversion.

This service accepts a PDF (base64 payload or file upload) and returns
one base64-encoded JPEG per page. Rasterization is delegated to an
external renderer (PyMuPDF or poppler).
"""

__version__ = "1.0.0"
