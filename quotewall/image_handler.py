"""
Image Handler

Utilities for decoding, generating and filtering the background rasters the compositor
draws on, and for writing finished wallpapers to disk.

Decoding: load_image() is the single place a file on disk turns into a PIL Image. It is used by
the image cache on a miss. Failures are reported as InvalidImageError so the cache can turn them
into "absent" without catching arbitrary exceptions.

Image manipulation: is intended only to support the limited set of background filters a
wallpaper needs (blur, glow, sepia, grayscale, vintage, brightness, contrast). This is not
intended to be a comprehensive photo manipulation library.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from PIL import (
    Image,
    ImageChops,
    ImageColor,
    ImageEnhance,
    ImageFilter,
    ImageOps,
    UnidentifiedImageError,
)

from quotewall.errors import QuotewallError
from quotewall.models import ImageEffectSettings

logger = logging.getLogger(__name__)

# sepia tones used by both the sepia and vintage filters
SEPIA_DARK = "#2e1f0f"
SEPIA_LIGHT = "#f3e4c8"


class InvalidImageError(QuotewallError):
    """
    Raised when a provided binary input file is not an image. Wrapper around the PIL
    UnidentifiedImageError (and missing/unreadable files) for better identification of errors
    during debugging and custom error messaging.
    """

    pass


def validate_image(input) -> str:
    """
    Determine whether input is a valid image and return its format string. PIL only reads the
    header here, so this is cheap enough to use as a validation method before committing to a
    full decode.
    """

    try:
        with Image.open(input) as image:

            return image.format

    except UnidentifiedImageError:
        raise InvalidImageError(f"Input {str(input)} does not appear to be an image.")

    except Image.DecompressionBombError as error:
        raise InvalidImageError(f"Input {str(input)} is too large to decode: {error}")

    except (FileNotFoundError, IsADirectoryError):
        raise InvalidImageError(f"Input {str(input)} could not be found.")


def target_size(
    original: tuple, width: Optional[int] = None, height: Optional[int] = None
) -> tuple:
    """
    Work out the size an image should be resized to. When only one of width/height is given the
    other is derived from the original aspect ratio. Neither given means keep the original size.
    """

    original_width, original_height = original

    if width is None and height is None:
        return original

    if height is None:
        return (width, max(1, int(width * original_height / original_width)))

    if width is None:
        return (max(1, int(height * original_width / original_height)), height)

    return (width, height)


def load_image(
    path: Union[str, Path], width: Optional[int] = None, height: Optional[int] = None
) -> Image.Image:
    """
    Decode the image at path fully into memory as RGB, resizing if a target size was given.
    The returned image is detached from the file so the handle is closed on return.
    """

    path = Path(path).expanduser()

    try:
        with Image.open(path) as image:
            image.load()
            size = target_size(image.size, width, height)

            # drop alpha and palettes here so every cached image has the same mode
            decoded = image.convert("RGB")

    except UnidentifiedImageError:
        raise InvalidImageError(f"Input {str(path)} does not appear to be an image.")

    except Image.DecompressionBombError as error:
        # not an OSError, so it needs its own branch
        raise InvalidImageError(f"Input {str(path)} is too large to decode: {error}")

    except (OSError, ValueError) as error:
        # truncated files, permission problems, missing files and directories all land here
        raise InvalidImageError(f"Input {str(path)} could not be decoded: {error}")

    if size != decoded.size:
        resized = decoded.resize(size, resample=Image.Resampling.LANCZOS)
        decoded.close()
        return resized

    return decoded


def solid_background(size: tuple, color: str) -> Image.Image:
    """Create a solid color raster of the given size from a hex (or named) color."""

    return Image.new("RGB", size, ImageColor.getrgb(color))


def fit_background(image: Image.Image, size: tuple) -> Image.Image:
    """Return an RGB copy of image stretched to size. The input image is left untouched."""

    if image.mode != "RGB":
        converted = image.convert("RGB")
    else:
        converted = image.copy()

    if converted.size == size:
        return converted

    resized = converted.resize(size, resample=Image.Resampling.LANCZOS)
    converted.close()
    return resized


def blur(image: Image.Image, radius: float = 5, blur_func=ImageFilter.GaussianBlur) -> Image.Image:
    """
    Apply a blur to an image. The input image is not modified.

    blur_func accepts either ImageFilter.GaussianBlur or ImageFilter.BoxBlur
    """

    return image.filter(blur_func(radius=radius))


def glow(image: Image.Image, intensity: float = 1.0) -> Image.Image:
    """
    Soft glow: screen a blurred copy of the image over itself. Intensity scales both the blur
    radius and how much of the screened result is kept.
    """

    blurred = blur(image, radius=max(1, int(intensity * 8)))
    screened = ImageChops.screen(image, blurred)
    return Image.blend(image, screened, min(1.0, 0.5 * intensity))


def greyscale(image: Image.Image) -> Image.Image:
    """Convert image to greyscale, keeping RGB mode so it can be drawn on like any background."""

    return ImageOps.grayscale(image).convert("RGB")


def colorize(image: Image.Image, black_value, white_value) -> Image.Image:
    """
    Wraps the PIL colorize method from the ImageOps library. Converts image to greyscale, then
    maps black pixel values to black_value and white pixel values to white_value.
    """

    return ImageOps.colorize(ImageOps.grayscale(image), black=black_value, white=white_value)


def sepia(image: Image.Image) -> Image.Image:
    return colorize(image, SEPIA_DARK, SEPIA_LIGHT)


def vintage(image: Image.Image) -> Image.Image:
    """Sepia with flattened contrast and a touch of fade, like an old print."""

    toned = ImageEnhance.Contrast(sepia(image)).enhance(0.8)
    return ImageEnhance.Brightness(toned).enhance(1.05)


def apply_effect(image: Image.Image, effect: Optional[ImageEffectSettings]) -> Image.Image:
    """
    Apply the filter described by effect and return a new image. Inactive or missing effect
    settings return the image unchanged (same object).
    """

    if effect is None or not effect.active:
        return image

    intensity = effect.intensity

    if effect.filter_type == "blur":
        return blur(image, radius=intensity * 5)

    if effect.filter_type == "glow":
        return glow(image, intensity)

    if effect.filter_type == "sepia":
        return sepia(image)

    if effect.filter_type == "grayscale":
        return greyscale(image)

    if effect.filter_type == "vintage":
        return vintage(image)

    if effect.filter_type == "brightness":
        return ImageEnhance.Brightness(image).enhance(intensity)

    if effect.filter_type == "contrast":
        return ImageEnhance.Contrast(image).enhance(intensity)

    return image


def save_image(image: Image.Image, file_path: Union[str, Path]) -> Path:
    """
    Write image as a lossless PNG at file_path, creating parent directories if needed, and
    return the resolved destination. Unlike the background loaders this does raise on
    failure: a wallpaper that could not be written is something the caller must hear about.
    """

    destination_path = Path(file_path).expanduser().resolve()

    # edge case where destination path is a folder
    if destination_path.is_dir():
        raise IsADirectoryError(f"Destination file {destination_path} is a directory.")

    destination_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(destination_path, format="PNG")

    logger.debug("saved %s (%dx%d)", destination_path, *image.size)
    return destination_path
