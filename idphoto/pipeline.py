from dataclasses import dataclass
import threading
import time
from typing import Optional

import numpy as np

from idphoto.editing.operations import NO_FACE_MESSAGE, center_face as center_on_faces, crop_image, detect_faces, \
    enhance_image, get_face_classifier, resize_image, tile_layout
from idphoto.errors import AssetNotFoundError
from idphoto.logging import logger
from idphoto.metrics import EDIT_TOTAL_TIME
from idphoto.replacement.assets import AssetStore, color_asset, load_asset
from idphoto.replacement.compositing import composite_background, composite_garment, cut_out_subject
from idphoto.segmentation.labels import overlay_labels
from idphoto.segmentation.refinement import refine_label_mask, refine_saliency_mask, subject_classes
from idphoto.segmentation.synthesis import synthesize_label_mask
from idphoto.services.base import BaseModelService
from idphoto.sessions import PhotoSession, PhotoSessionStore
from idphoto.structures import BoundingBox, CompositeResult, CompositeStatus, LabelMask, RefinedMask
from idphoto.utils.processing import get_image_png_bytes, load_image
from idphoto.utils.transforms import validate_image


@dataclass
class EditResult:
    photo_id: str
    applied: bool
    image: np.ndarray
    message: str = ""
    bounding_box: Optional[BoundingBox] = None


class PhotoEditor:
    def __init__(
            self,
            garment_service: BaseModelService,
            asset_store: AssetStore,
            saliency_service: Optional[BaseModelService] = None,
            sessions: Optional[PhotoSessionStore] = None,
            face_classifier=None,
    ):
        """
        Runs segmentation-guided edits against per-photo sessions.

        Every edit holds the photo's lock for the whole chain and only replaces the current
        image once the chain has succeeded.

        Args:
            garment_service (BaseModelService): Multi-class clothes segmentation model.
            asset_store (AssetStore): Store with garment and background assets.
            saliency_service (Optional[BaseModelService]): Saliency model for the subject mask.
                Without it the subject is every non-background class of the garment model.
            sessions (Optional[PhotoSessionStore]): Session registry.
            face_classifier: Face detector with a `detectMultiScale` method, the OpenCV frontal
                face cascade is loaded on first use when omitted.
        """
        self.garment_service = garment_service
        self.saliency_service = saliency_service
        self.asset_store = asset_store
        self.sessions = sessions if sessions is not None else PhotoSessionStore()
        self.face_classifier = face_classifier
        self._face_lock = threading.Lock()

    def open(self, photo_id: str, image: np.ndarray) -> PhotoSession:
        validate_image(image)
        return self.sessions.open(photo_id, image)

    def upload(self, photo_id: str, data: bytes) -> PhotoSession:
        """
        Decode an uploaded photo and open a session for it.

        Args:
            photo_id (str): Identifier of the photo.
            data (bytes): Encoded image data.

        Returns:
            PhotoSession: The new session.
        """
        return self.open(photo_id, load_image(data))

    def export_png(self, photo_id: str) -> bytes:
        return get_image_png_bytes(self.current_image(photo_id))

    def current_image(self, photo_id: str) -> np.ndarray:
        session = self.sessions.get(photo_id)
        with session.lock:
            return session.current.copy()

    def garment_labels(self, image: np.ndarray) -> LabelMask:
        volume = self.garment_service.segment(image)
        return synthesize_label_mask(volume, self.garment_service.config.segmentation)

    def garment_mask(self, image: np.ndarray) -> RefinedMask:
        """
        Segment the photo and refine the garment classes into a hard mask.

        Args:
            image (np.ndarray): The photo.

        Returns:
            RefinedMask: Garment mask at photo resolution.
        """
        config = self.garment_service.config
        height, width = image.shape[:2]

        return refine_label_mask(
            self.garment_labels(image),
            width=width,
            height=height,
            selected_classes=config.segmentation.selected_classes,
            config=config.refinement,
        )

    def subject_mask(self, image: np.ndarray) -> RefinedMask:
        """
        Segment the photo and refine the subject into a soft-edged mask.

        Args:
            image (np.ndarray): The photo.

        Returns:
            RefinedMask: Subject mask at photo resolution.
        """
        height, width = image.shape[:2]

        if self.saliency_service is None:
            labels = self.garment_labels(image)
            return refine_label_mask(
                labels,
                width=width,
                height=height,
                selected_classes=subject_classes(labels.num_classes),
                config=self.garment_service.config.refinement,
            )

        config = self.saliency_service.config
        volume = self.saliency_service.segment(image)
        labels = synthesize_label_mask(volume, config.segmentation)

        return refine_saliency_mask(labels, width=width, height=height, config=config.refinement)

    def _subject_service(self) -> BaseModelService:
        return self.saliency_service if self.saliency_service is not None else self.garment_service

    def _background_source(self, session: PhotoSession):
        if session.background_source is not None and session.background_mask is not None:
            return session.background_source, session.background_mask

        source = session.current
        return source, self.subject_mask(source)

    def _finish(
            self,
            session: PhotoSession,
            operation: str,
            result: CompositeResult,
            start: float,
    ) -> EditResult:
        if result.applied:
            session.commit(result.image)

        total_time = time.perf_counter() - start
        EDIT_TOTAL_TIME.labels(operation=operation).observe(total_time)
        logger.info({
            "event": "edit_completed",
            "photo_id": session.photo_id,
            "operation": operation,
            "status": result.status.value,
            "time": total_time,
        })

        return EditResult(
            photo_id=session.photo_id,
            applied=result.applied,
            image=session.current.copy(),
            message=result.message,
            bounding_box=result.bounding_box,
        )

    def replace_garment(self, photo_id: str, style: Optional[str] = None, asset_id: Optional[str] = None) -> EditResult:
        """
        Replace the clothes in the photo with a garment asset.

        Args:
            photo_id (str): The photo to edit.
            style (Optional[str]): Garment style from the catalog, the default style when omitted.
            asset_id (Optional[str]): Explicit garment asset, takes precedence over the style.

        Returns:
            EditResult: The outcome. `applied` is False when no clothing was found.
        """
        start = time.perf_counter()

        if asset_id is None:
            catalog = self.garment_service.config.replacement
            style = style or catalog.default_garment
            if style not in catalog.garments:
                raise AssetNotFoundError(
                    f"Unknown garment style: {style}",
                    user_message=f"The garment style '{style}' is not available.",
                )
            asset_id = catalog.garments[style]

        asset = load_asset(self.asset_store, asset_id)

        session = self.sessions.get(photo_id)
        with session.lock:
            image = session.current
            result = composite_garment(image, self.garment_mask(image), asset)
            if result.applied:
                session.reset_background_state()

            return self._finish(session, "garment", result, start)

    def replace_background(self, photo_id: str, color: Optional[str] = None, asset_id: Optional[str] = None) -> EditResult:
        """
        Replace the background of the photo with a solid color or an image asset.

        Repeated replacements start again from the photo the first replacement started from,
        so backgrounds do not stack.

        Args:
            photo_id (str): The photo to edit.
            color (Optional[str]): Hex color of the new background.
            asset_id (Optional[str]): Background image asset.

        Returns:
            EditResult: The outcome. `applied` is False when no subject was found.
        """
        if (color is None) == (asset_id is None):
            raise ValueError("Exactly one of color or asset_id must be given")

        start = time.perf_counter()
        asset = color_asset(color) if color is not None else load_asset(self.asset_store, asset_id)
        estimate_foreground = self._subject_service().config.replacement.estimate_foreground

        session = self.sessions.get(photo_id)
        with session.lock:
            source, mask = self._background_source(session)
            result = composite_background(source, mask, asset, estimate_foreground=estimate_foreground)
            edit = self._finish(session, "background", result, start)
            if result.applied:
                session.background_source, session.background_mask = source, mask

            return edit

    def remove_background(self, photo_id: str) -> EditResult:
        """
        Make everything around the subject transparent.

        Args:
            photo_id (str): The photo to edit.

        Returns:
            EditResult: The outcome with an RGBA image. `applied` is False when no subject was found.
        """
        start = time.perf_counter()

        session = self.sessions.get(photo_id)
        with session.lock:
            source, mask = self._background_source(session)
            result = cut_out_subject(source, mask)
            edit = self._finish(session, "removal", result, start)
            if result.applied:
                session.background_source, session.background_mask = source, mask

            return edit

    def crop(self, photo_id: str, x: int, y: int, width: int, height: int) -> EditResult:
        start = time.perf_counter()

        session = self.sessions.get(photo_id)
        with session.lock:
            cropped = crop_image(session.current, x, y, width, height)
            session.reset_background_state()
            return self._finish(
                session, "crop", CompositeResult(image=cropped, status=CompositeStatus.Applied), start
            )

    def resize(
            self,
            photo_id: str,
            width: Optional[int] = None,
            height: Optional[int] = None,
            keep_aspect_ratio: bool = False,
    ) -> EditResult:
        start = time.perf_counter()

        session = self.sessions.get(photo_id)
        with session.lock:
            resized = resize_image(session.current, width, height, keep_aspect_ratio=keep_aspect_ratio)
            session.reset_background_state()
            return self._finish(
                session, "resize", CompositeResult(image=resized, status=CompositeStatus.Applied), start
            )

    def enhance(self, photo_id: str, brightness: float = 0.0, contrast: float = 0.0) -> EditResult:
        """
        Adjust brightness and contrast of the photo.

        Consecutive adjustments are applied to the photo as it was before the first one, so
        they replace each other instead of adding up. Any other edit ends the adjustment.

        Args:
            photo_id (str): The photo to edit.
            brightness (float): Brightness change in [-100, 100].
            contrast (float): Contrast change in [-100, 100].

        Returns:
            EditResult: The outcome.
        """
        start = time.perf_counter()

        session = self.sessions.get(photo_id)
        with session.lock:
            base = session.reference if session.reference is not None else session.current
            enhanced = enhance_image(base, brightness=brightness, contrast=contrast)
            session.reset_background_state()
            edit = self._finish(
                session, "enhance", CompositeResult(image=enhanced, status=CompositeStatus.Applied), start
            )
            session.reference = base

            return edit

    def layout(
            self,
            photo_id: str,
            rows: int,
            cols: int,
            sheet_width_mm: float,
            sheet_height_mm: float,
            border_mm: float = 0.0,
    ) -> EditResult:
        """
        Replace the photo with a print sheet holding a grid of copies.

        Args:
            photo_id (str): The photo to lay out.
            rows (int): Number of rows.
            cols (int): Number of columns.
            sheet_width_mm (float): Sheet width in millimeters.
            sheet_height_mm (float): Sheet height in millimeters.
            border_mm (float): White border around every copy in millimeters.

        Returns:
            EditResult: The outcome with the sheet as image.
        """
        start = time.perf_counter()

        session = self.sessions.get(photo_id)
        with session.lock:
            sheet = tile_layout(session.current, rows, cols, sheet_width_mm, sheet_height_mm, border_mm=border_mm)
            session.reset_background_state()
            return self._finish(
                session, "layout", CompositeResult(image=sheet, status=CompositeStatus.Applied), start
            )

    def _face_classifier(self):
        with self._face_lock:
            if self.face_classifier is None:
                self.face_classifier = get_face_classifier()
            return self.face_classifier

    def center_face(self, photo_id: str) -> EditResult:
        """
        Shift the photo horizontally so the detected faces are centered.

        Args:
            photo_id (str): The photo to edit.

        Returns:
            EditResult: The outcome. `applied` is False when no face was found.
        """
        start = time.perf_counter()
        classifier = self._face_classifier()

        session = self.sessions.get(photo_id)
        with session.lock:
            image = session.current
            faces = detect_faces(image, classifier)
            if faces:
                result = CompositeResult(image=center_on_faces(image, faces), status=CompositeStatus.Applied)
                session.reset_background_state()
            else:
                logger.info({"event": "composite_skipped", "reason": "no_face"})
                result = CompositeResult(image=image.copy(), status=CompositeStatus.NoRegion, message=NO_FACE_MESSAGE)

            return self._finish(session, "center_face", result, start)

    def undo(self, photo_id: str) -> EditResult:
        session = self.sessions.get(photo_id)
        with session.lock:
            applied = session.undo()
            return EditResult(
                photo_id=photo_id,
                applied=applied,
                image=session.current.copy(),
                message="" if applied else "Nothing to undo.",
            )

    def redo(self, photo_id: str) -> EditResult:
        session = self.sessions.get(photo_id)
        with session.lock:
            applied = session.redo()
            return EditResult(
                photo_id=photo_id,
                applied=applied,
                image=session.current.copy(),
                message="" if applied else "Nothing to redo.",
            )

    def segment_preview(self, photo_id: str, opacity: float = 0.3) -> np.ndarray:
        """
        Color every detected clothes class over the current photo.

        Args:
            photo_id (str): The photo to preview.
            opacity (float): Weight of the class colors.

        Returns:
            np.ndarray: RGB preview image.
        """
        session = self.sessions.get(photo_id)
        with session.lock:
            image = session.current
            labels = self.garment_labels(image)
            return overlay_labels(image, labels.values, opacity=opacity)
