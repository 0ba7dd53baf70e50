"""Exception types raised by the rendering and export pipeline."""


class CarouselError(Exception):
    """Base class for carousel pipeline errors."""


class CaptureError(CarouselError):
    """The raster primitive failed to produce a bitmap."""


class TaintedSurfaceError(CaptureError):
    """A cross-origin image reached the raster primitive without being embedded."""


class DeliveryError(CarouselError):
    """A delivery strategy failed; the next one should be tried."""


class ShareCancelledError(DeliveryError):
    """The user dismissed the share sheet."""


class ShareRejectedError(DeliveryError):
    """The platform refused the share call (too many files, no gesture, ...)."""


class ExportBusyError(CarouselError):
    """Another export is already running against the same export surfaces."""


class PreviewLockedError(CarouselError):
    """The preview is locked until the font gate clears."""


class MissingCredentialError(CarouselError):
    """No text-generation credential is configured."""
