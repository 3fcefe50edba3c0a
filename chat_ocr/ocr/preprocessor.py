"""
Image preprocessing for improved Tesseract accuracy.
Grayscale, contrast normalization, sharpening and rescaling.
"""

import io

import cv2
import numpy as np
from PIL import Image, ImageOps
from pillow_heif import register_heif_opener

from chat_ocr.logger import get_logger

# Register HEIF opener with Pillow (phone uploads are often HEIC)
register_heif_opener()

logger = get_logger(__name__)

# Images whose shorter side is below this are upscaled before recognition
MIN_OCR_DIMENSION = 1000
MAX_UPSCALE_FACTOR = 3.0
MAX_OCR_DIMENSION = 4000

_SHARPEN_KERNEL = np.array([
    [0, -1, 0],
    [-1, 5, -1],
    [0, -1, 0]
], dtype=np.float32)


class ImagePreprocessor:
    """Preprocesses raster images for OCR. Never fails: falls back to input."""

    @staticmethod
    def preprocess(image_bytes: bytes) -> bytes:
        """
        Preprocess image for OCR.

        Pipeline:
        1. Decode (HEIC supported) and apply EXIF orientation
        2. Convert to grayscale
        3. Upscale small images / downscale huge ones
        4. Normalize contrast (CLAHE)
        5. Sharpen

        Args:
            image_bytes: Input image bytes

        Returns:
            PNG bytes, or the original bytes if preprocessing fails
        """
        try:
            image = ImagePreprocessor._load_oriented(image_bytes)
            gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
            scaled = ImagePreprocessor._rescale(gray)
            normalized = ImagePreprocessor._normalize_contrast(scaled)
            sharpened = cv2.filter2D(normalized, -1, _SHARPEN_KERNEL)

            success, encoded = cv2.imencode('.png', sharpened)
            if not success:
                logger.warning("Failed to encode preprocessed image")
                return image_bytes

            return encoded.tobytes()

        except Exception as e:
            logger.warning("Preprocessing failed, using original", extra={"error": str(e)})
            return image_bytes

    @staticmethod
    def _load_oriented(image_bytes: bytes) -> np.ndarray:
        """
        Decode with Pillow (JPEG, PNG, HEIC) and rotate per EXIF.

        Returns:
            RGB image array
        """
        img = ImageOps.exif_transpose(Image.open(io.BytesIO(image_bytes)))
        return np.array(img.convert("RGB"))

    @staticmethod
    def _rescale(image: np.ndarray) -> np.ndarray:
        """
        Upscale images too small for Tesseract, cap very large ones.

        Args:
            image: Grayscale image

        Returns:
            Rescaled image (or input if already within bounds)
        """
        height, width = image.shape[:2]
        shorter, longer = min(height, width), max(height, width)

        if shorter < MIN_OCR_DIMENSION:
            factor = min(MIN_OCR_DIMENSION / shorter, MAX_UPSCALE_FACTOR)
            if longer * factor > MAX_OCR_DIMENSION:
                factor = MAX_OCR_DIMENSION / longer
            if factor > 1.0:
                logger.debug("Upscaling image for OCR", extra={"factor": factor})
                return cv2.resize(image, None, fx=factor, fy=factor, interpolation=cv2.INTER_CUBIC)
            return image

        if longer > MAX_OCR_DIMENSION:
            factor = MAX_OCR_DIMENSION / longer
            return cv2.resize(image, None, fx=factor, fy=factor, interpolation=cv2.INTER_AREA)

        return image

    @staticmethod
    def _normalize_contrast(image: np.ndarray) -> np.ndarray:
        """
        Stretch contrast with CLAHE (Contrast Limited Adaptive Histogram
        Equalization), robust to uneven lighting on phone photos.
        """
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        return clahe.apply(image)
