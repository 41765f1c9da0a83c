"""ImageConditioner: fits raw image bytes to a provider's size and token profile."""
import base64
import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from inference_relay.config import ImageProfile
from inference_relay.constants import (
    CHARS_PER_TOKEN,
    IMAGE_MEDIA_TYPE,
    MAX_IMAGE_BYTES,
    MSG_IMAGE_REENCODED,
)

logger = logging.getLogger(__name__)


class ImageDecodeError(ValueError):
    """Source bytes are not a decodable image (or exceed the upload limit)."""


@dataclass(frozen=True)
class ConditionedImage:
    data: bytes
    width: int
    height: int
    passes: int
    estimated_tokens: int
    media_type: str = IMAGE_MEDIA_TYPE

    @property
    def base64(self) -> str:
        return base64.standard_b64encode(self.data).decode()

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.base64}"


def estimate_tokens(encoded: bytes) -> int:
    """Token proxy for an encoded image: base64 length / 4, rounded up."""
    return math.ceil(len(base64.standard_b64encode(encoded)) / CHARS_PER_TOKEN)


def _decode(raw: bytes) -> Image.Image:
    match len(raw):
        case 0:
            raise ImageDecodeError("Empty image payload")
        case n if n > MAX_IMAGE_BYTES:
            raise ImageDecodeError(f"Image too large ({n} bytes, max {MAX_IMAGE_BYTES})")
        case _:
            pass
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            return ImageOps.exif_transpose(img).convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageDecodeError(f"Invalid image: {exc}") from exc


def _encode(img: Image.Image, max_dimension: int, quality: int) -> tuple[bytes, int, int]:
    raster = img.copy()
    # thumbnail() shrinks in place, keeps aspect ratio and never upscales.
    raster.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    raster.save(out, format="JPEG", quality=quality)
    width, height = raster.size
    raster.close()
    return out.getvalue(), width, height


class ImageConditioner:

    def condition(self, raw: bytes, profile: ImageProfile) -> ConditionedImage:
        """Resize and JPEG-encode ``raw`` to fit ``profile``.

        The first pass uses the profile's bounding box and quality. If the
        token estimate exceeds ``profile.token_budget`` a single second pass
        re-encodes at the fallback box and quality; its result is returned
        even if still over budget.
        """
        img = _decode(raw)
        try:
            data, width, height = _encode(img, profile.max_dimension, profile.quality)
            tokens = estimate_tokens(data)
            match profile.token_budget:
                case int() as budget if tokens > budget:
                    logger.info(MSG_IMAGE_REENCODED, tokens, budget, profile.fallback_dimension)
                    data, width, height = _encode(
                        img,
                        min(profile.fallback_dimension, profile.max_dimension),
                        profile.fallback_quality,
                    )
                    return ConditionedImage(data, width, height, 2, estimate_tokens(data))
                case _:
                    return ConditionedImage(data, width, height, 1, tokens)
        finally:
            img.close()
