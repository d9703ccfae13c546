"""Normalizes uploads into the single stored image profile."""
from dataclasses import dataclass
from io import BytesIO
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from app.exceptions import InvalidImageException, TranscodeException
from app.settings import settings

log = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"
OUTPUT_EXTENSION = ".jpg"


@dataclass(frozen=True)
class TranscodedImage:
    data: bytes
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.data)


def transcode(file_bytes: bytes) -> TranscodedImage:
    """
        Shrinks the image so its longer edge fits the configured maximum and
        re-encodes it as JPEG. Dimensions are read back from the encoded output.
    """
    max_edge = settings.transcode_max_edge
    try:
        with Image.open(BytesIO(file_bytes)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")
            img.thumbnail((max_edge, max_edge), Image.LANCZOS)

            buf = BytesIO()
            img.save(buf, format="JPEG", quality=settings.transcode_quality)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        log.info("Rejected undecodable upload: %s", e)
        raise InvalidImageException("Invalid image file")
    except (OSError, ValueError) as e:
        log.error(f"Transcoding failed: {e}")
        raise TranscodeException(f"Failed to transcode image: {e}")

    data = buf.getvalue()
    with Image.open(BytesIO(data)) as out:
        width, height = out.size

    log.debug("Transcoded %d bytes to %dx%d JPEG of %d bytes", len(file_bytes), width, height, len(data))
    return TranscodedImage(data=data, width=width, height=height)
