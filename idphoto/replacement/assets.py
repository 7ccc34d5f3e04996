from abc import ABC, abstractmethod
import io
from pathlib import Path
import re
from typing import Iterable, Tuple
import uuid

import numpy as np
from PIL import Image, UnidentifiedImageError

from idphoto.errors import AssetDecodeError, AssetNotFoundError
from idphoto.logging import logger
from idphoto.structures import ReplacementAsset

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".bmp")

_HEX_COLOR = re.compile(r"[0-9a-fA-F]{6}")


class AssetStore(ABC):
    """Resolves opaque asset identifiers to encoded image bytes."""

    @abstractmethod
    def get_bytes(self, asset_id: str) -> bytes:
        """Return the encoded bytes of an asset or raise AssetNotFoundError."""
        pass

    @abstractmethod
    def save(self, data: bytes, extension: str = ".png") -> str:
        """Store encoded bytes under a new identifier and return it."""
        pass


class FileSystemAssetStore(AssetStore):
    def __init__(self, directory: str, extensions: Iterable[str] = IMAGE_EXTENSIONS):
        """
        Asset store backed by a single directory.

        Identifiers are file names, file stems, or a prefix of a file name.

        Args:
            directory (str): Directory holding the asset files.
            extensions (Iterable[str]): File extensions considered to be assets.
        """
        self.directory = Path(directory)
        self.extensions = tuple(ext.lower() for ext in extensions)

    def _candidates(self):
        if not self.directory.is_dir():
            return []
        return sorted(
            path for path in self.directory.iterdir()
            if path.is_file() and path.suffix.lower() in self.extensions
        )

    def resolve(self, asset_id: str) -> Path:
        """
        Find the file for an identifier.

        An exact file name wins over a matching stem, which wins over a name prefix.

        Args:
            asset_id (str): The asset identifier.

        Returns:
            Path: Path to the asset file.
        """
        if not asset_id or "/" in asset_id or "\\" in asset_id or asset_id in (".", ".."):
            raise AssetNotFoundError(f"Invalid asset identifier: {asset_id!r}")

        candidates = self._candidates()
        for path in candidates:
            if path.name == asset_id:
                return path
        for path in candidates:
            if path.stem == asset_id:
                return path
        for path in candidates:
            if path.name.startswith(asset_id):
                return path

        raise AssetNotFoundError(f"Asset not found: {asset_id} in {self.directory}")

    def get_bytes(self, asset_id: str) -> bytes:
        path = self.resolve(asset_id)
        try:
            return path.read_bytes()
        except OSError as e:
            raise AssetNotFoundError(f"Asset could not be read: {path}") from e

    def save(self, data: bytes, extension: str = ".png") -> str:
        """
        Store uploaded bytes under a fresh identifier.

        Args:
            data (bytes): Encoded image data. Must be decodable.
            extension (str): File extension to store the data under.

        Returns:
            str: The new asset identifier.
        """
        # Refuse anything that could not be used later
        decode_asset(data)

        extension = extension.lower() if extension.startswith(".") else f".{extension.lower()}"
        if extension not in self.extensions:
            raise AssetDecodeError(f"Unsupported asset extension: {extension}")

        asset_id = str(uuid.uuid4())
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / f"{asset_id}{extension}").write_bytes(data)

        logger.info({"event": "asset_saved", "asset_id": asset_id, "bytes": len(data)})
        return asset_id


def parse_color(color: str) -> Tuple[int, int, int]:
    """
    Parse a "#RRGGBB" or "RRGGBB" color.

    Args:
        color (str): The hex color.

    Returns:
        Tuple[int, int, int]: The RGB color.
    """
    value = (color or "").strip()
    if value.startswith("#"):
        value = value[1:]

    if not _HEX_COLOR.fullmatch(value):
        raise AssetDecodeError(
            f"Invalid color: {color!r}",
            user_message="The background color is not valid. Please use the #RRGGBB format.",
        )

    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def decode_asset(data: bytes, name: str = "") -> ReplacementAsset:
    """
    Decode an image asset and split off its transparency.

    Any pixel with a non-zero alpha counts as visible.

    Args:
        data (bytes): Encoded image data.
        name (str): Name used in logs and errors.

    Returns:
        ReplacementAsset: Opaque RGB image plus a boolean alpha mask when the source has transparency.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info

            if has_alpha:
                rgba = np.array(image.convert("RGBA"))
                return ReplacementAsset(
                    image=np.ascontiguousarray(rgba[:, :, :3]),
                    alpha=rgba[:, :, 3] > 0,
                    name=name,
                )

            return ReplacementAsset(image=np.array(image.convert("RGB")), name=name)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error({"event": "asset_decode_failed", "asset": name, "error": str(e)})
        raise AssetDecodeError(f"Asset could not be decoded: {name or '<bytes>'}") from e


def color_asset(color: str) -> ReplacementAsset:
    return ReplacementAsset(color=parse_color(color), name=color)


def load_asset(store: AssetStore, asset_id: str) -> ReplacementAsset:
    """
    Fetch and decode an asset from a store.

    Args:
        store (AssetStore): The asset store.
        asset_id (str): The asset identifier.

    Returns:
        ReplacementAsset: The decoded asset.
    """
    return decode_asset(store.get_bytes(asset_id), name=asset_id)
