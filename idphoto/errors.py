class PhotoEditingError(Exception):
    """Base class for every error raised by the editing pipeline."""

    user_message = "The photo could not be edited."

    def __init__(self, detail: str = "", user_message: str = None):
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class InvalidImageError(PhotoEditingError):
    user_message = "The photo could not be read. Please upload a valid image."


class InvalidModelOutputError(PhotoEditingError):
    user_message = "The segmentation model returned an unexpected result."


class AssetNotFoundError(PhotoEditingError):
    user_message = "The selected replacement asset is missing. Please choose another one."


class AssetDecodeError(PhotoEditingError):
    user_message = "The selected replacement asset could not be decoded. Please upload a valid image or color."


class InferenceUnavailableError(PhotoEditingError):
    user_message = "The segmentation service is currently unavailable. Please try again later."
