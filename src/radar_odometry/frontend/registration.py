"""Frame registration: relative 2-D rigid transforms between two frames.

The back end only depends on the TransformEstimator protocol. The
PhaseCorrelationEstimator is a Fourier-Mellin registration of cartesian
range images using OpenCV phase correlation:

1. Rotation: phase correlation of the log-polar magnitude spectra
   (magnitude spectra are translation invariant, rotation shows up as a
   shift along the angular axis)
2. Translation: phase correlation after de-rotating the target image
"""

from __future__ import annotations

import math
from typing import Protocol

import cv2
import numpy as np

from ..geometry import Pose2
from .window import Frame


class TransformEstimator(Protocol):
    """Computes the relative transform between two frames.

    Must be total (always returns a transform, possibly a poor one) and
    free of side effects.
    """

    def estimate_transform(self, source: Frame, target: Frame) -> Pose2:
        """Return the pose of target expressed in the frame of source."""
        ...


def _as_image(data: object) -> np.ndarray:
    """Validate a frame payload and convert it to a float64 image."""
    image = np.asarray(data)
    if image.ndim != 2:
        raise ValueError(f"Expected a 2D cartesian image, got shape {image.shape}")
    return image.astype(np.float64)


class PhaseCorrelationEstimator:
    """Coarse registration of cartesian radar images by phase correlation.

    Image columns map to the body x-axis (forward) and rows to the body
    y-axis, with the vehicle at the image center. A scene shift of +d pixels
    between source and target corresponds to a vehicle motion of
    -d * meters_per_pixel. A scene rotated by +a degrees (counter-clockwise
    on screen, as cv2.getRotationMatrix2D measures it) corresponds to a
    vehicle heading change of +a.
    """

    def __init__(
        self,
        meters_per_pixel: float = 1.0,
        use_window: bool = True,
        estimate_rotation: bool = True,
        angular_bins: int = 360,
    ) -> None:
        """Initialize the estimator.

        Args:
            meters_per_pixel: Cartesian image resolution
            use_window: Apply a Hanning window before both correlations
            estimate_rotation: If False, only translation is estimated
            angular_bins: Rows of the log-polar spectrum (angular resolution)
        """
        if meters_per_pixel <= 0:
            raise ValueError(f"meters_per_pixel must be > 0, got {meters_per_pixel}")
        self._meters_per_pixel = meters_per_pixel
        self._use_window = use_window
        self._estimate_rotation = estimate_rotation
        self._angular_bins = angular_bins
        self._windows: dict[tuple[int, int], np.ndarray] = {}

    def estimate_transform(self, source: Frame, target: Frame) -> Pose2:
        """Register target against source.

        Args:
            source: Reference frame (cartesian image payload)
            target: Frame to register

        Returns:
            Relative transform (Δx, Δy, Δθ) of target in the source frame
        """
        src = _as_image(source.data)
        dst = _as_image(target.data)
        if src.shape != dst.shape:
            raise ValueError(f"Image shapes differ: {src.shape} vs {dst.shape}")

        angle_deg = self._rotation_deg(src, dst) if self._estimate_rotation else 0.0
        if abs(angle_deg) > 1e-3:
            # Undo the scene rotation so only the shift remains
            dst = self._rotate(dst, -angle_deg)

        if self._use_window:
            (dx, dy), _ = cv2.phaseCorrelate(src, dst, self._window(src.shape))
        else:
            (dx, dy), _ = cv2.phaseCorrelate(src, dst)

        return Pose2(
            -dx * self._meters_per_pixel,
            -dy * self._meters_per_pixel,
            math.radians(angle_deg),
        )

    def _rotation_deg(self, src: np.ndarray, dst: np.ndarray) -> float:
        """Estimate the on-screen rotation of dst relative to src in degrees.

        The sign follows cv2.getRotationMatrix2D: positive is
        counter-clockwise in the displayed image. A counter-clockwise scene
        rotation shows up as a negative shift along the angular axis of the
        log-polar spectrum.
        """
        lp_src = self._log_polar_spectrum(src)
        lp_dst = self._log_polar_spectrum(dst)
        (_, shift_rows), _ = cv2.phaseCorrelate(lp_src, lp_dst)
        angle = -shift_rows * 360.0 / self._angular_bins
        # Magnitude spectra are symmetric, so rotation is known modulo 180
        if angle > 90.0:
            angle -= 180.0
        elif angle < -90.0:
            angle += 180.0
        return angle

    def _log_polar_spectrum(self, image: np.ndarray) -> np.ndarray:
        if self._use_window:
            # Suppress the border cross that would pin the estimate at zero
            image = image * self._window(image.shape)
        spectrum = np.abs(np.fft.fftshift(np.fft.fft2(image)))
        spectrum = np.log1p(spectrum)
        h, w = spectrum.shape
        center = (w / 2.0, h / 2.0)
        radius = min(center)
        radial_bins = max(int(radius), 1)
        return cv2.warpPolar(
            spectrum,
            (radial_bins, self._angular_bins),
            center,
            radius,
            cv2.WARP_POLAR_LOG | cv2.INTER_LINEAR,
        )

    @staticmethod
    def _rotate(image: np.ndarray, angle_deg: float) -> np.ndarray:
        h, w = image.shape
        M = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle_deg, 1.0)
        return cv2.warpAffine(image, M, (w, h), flags=cv2.INTER_LINEAR)

    def _window(self, shape: tuple[int, int]) -> np.ndarray:
        if shape not in self._windows:
            h, w = shape
            self._windows[shape] = cv2.createHanningWindow((w, h), cv2.CV_64F)
        return self._windows[shape]
