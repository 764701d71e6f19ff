"""Emote image normalization with Qt image I/O.

Only QImage is used (no QPixmap), so these helpers are safe to call from a
worker thread.
"""

import logging

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt
from PySide6.QtGui import QImage, QImageReader

logger = logging.getLogger(__name__)

MAX_EMOTE_HEIGHT = 32


def decode_first_frame(data: bytes) -> QImage | None:
    """Decode only the first frame of a still or animated image."""
    if not data:
        return None

    buffer = QBuffer(QByteArray(data))
    buffer.open(QIODevice.OpenModeFlag.ReadOnly)
    reader = QImageReader(buffer)
    reader.setAutoTransform(True)
    image = reader.read()
    buffer.close()

    if image.isNull():
        image = QImage.fromData(data)
    if image.isNull():
        return None
    return image


def encode_png(image: QImage) -> bytes | None:
    """Encode a QImage to PNG bytes."""
    if image is None or image.isNull():
        return None
    buffer = QBuffer()
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    ok = image.save(buffer, "PNG")
    data = bytes(buffer.data()) if ok else None
    buffer.close()
    return data or None


def normalize_emote_image(data: bytes, max_height: int = MAX_EMOTE_HEIGHT) -> bytes | None:
    """Decode an emote, keep its first frame and cap its height.

    Images taller than ``max_height`` are scaled down with aspect ratio
    preserved; smaller ones are left as they are. Returns PNG bytes, or
    None if the data could not be decoded.
    """
    image = decode_first_frame(data)
    if image is None:
        return None

    if image.height() > max_height:
        image = image.scaledToHeight(
            max_height, mode=Qt.TransformationMode.SmoothTransformation
        )

    return encode_png(image)
