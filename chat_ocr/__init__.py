"""
Chat OCR - OCR orchestration for chat attachments.
"""

__version__ = "1.0.0"
