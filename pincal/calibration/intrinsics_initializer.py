# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the initialization of the intrinsics of a :class:`.PinholeProjection` from a single observation of
a planar grid calibration target.

Description of the Technique
----------------------------

The principal point is assumed to be at the center of the image and the distortion is cleared.  Candidate focal lengths
are then generated, each candidate is scored by estimating the pose of the target with it
(:func:`.estimate_transformation`) and computing the mean reprojection error over the target
(:func:`.compute_reprojection_error`), and the candidate with the lowest mean error is kept.

Row candidates
    Under a lens with radial distortion a straight row of the grid images onto a circle.  With the image points
    :math:`(u, v)` relative to the principal point, the null vector :math:`\mathbf{c}` of the stacked rows
    :math:`[u, v, 0.5, -0.5(u^2+v^2)]` describes that circle and, for a row that is not radial from the principal point,
    constrains the focal length

    .. math::
        t = c_0^2 + c_1^2 + c_2c_3, \quad d = \sqrt{1/t}, \quad
        \mathbf{n} = d[c_0, c_1]^T, \quad \gamma = \left|\frac{c_2d}{\sqrt{1-\mathbf{n}^T\mathbf{n}}}\right|

    Rows with too few detected corners, :math:`t<0`, or :math:`\|\mathbf{n}\|` above
    :attr:`~IntrinsicsInitializerOptions.max_line_normal_norm` (a radial line) are skipped.

Homography candidate
    The rows of an undistorted image are straight lines, for which the row estimate is always rejected as radial.  When
    :attr:`~IntrinsicsInitializerOptions.use_homography_candidate` is set, one more candidate is derived from the
    homography :math:`\mathbf{H}=[\mathbf{h}_1, \mathbf{h}_2, \mathbf{h}_3]` between the target plane and the centered
    image points.  For square pixels with a known principal point the orthonormality of the first two rotation columns
    gives two linear equations in :math:`1/f^2`

    .. math::
        \mathbf{h}_1^T\boldsymbol{\omega}\mathbf{h}_2 = 0, \quad
        \mathbf{h}_1^T\boldsymbol{\omega}\mathbf{h}_1 = \mathbf{h}_2^T\boldsymbol{\omega}\mathbf{h}_2, \quad
        \boldsymbol{\omega} = \text{diag}(1/f^2, 1/f^2, 1)

    which are solved in the least squares sense.

Use
---

    >>> from pincal.calibration import initialize_intrinsics
    >>> success = initialize_intrinsics(model, [observation])

or, to tune the behavior, create an :class:`IntrinsicsInitializer` with :class:`IntrinsicsInitializerOptions`.
"""

import logging

from dataclasses import dataclass

from typing import Optional, Sequence, Iterator, Tuple

import numpy as np
import cv2
from scipy.linalg import svd

from pincal._typing import ARRAY_LIKE
from pincal.camera_models import PinholeProjection
from pincal.calibration.targets import GridCalibrationTargetObservation
from pincal.calibration.pose_estimation import estimate_transformation
from pincal.calibration.reprojection import compute_reprojection_error
from pincal.utilities.options import UserOptions
from pincal.utilities.mixin_classes import UserOptionConfigured


_LOGGER: logging.Logger = logging.getLogger(__name__)


@dataclass
class IntrinsicsInitializerOptions(UserOptions):

    min_corners: int = 3
    """
    Rows (and reprojections) need strictly more than this many corners to be used
    """

    max_line_normal_norm: float = 0.95
    """
    Rows whose normalized line normal is longer than this are considered radial and skipped
    """

    use_homography_candidate: bool = True
    """
    Whether to also score a focal length derived from the plane to image homography of the whole observation
    """


def estimate_row_focal_length(centered_points: ARRAY_LIKE, min_corners: int = 3,
                              max_line_normal_norm: float = 0.95) -> Optional[float]:
    """
    Estimates the focal length from the image of a single straight row of target corners.

    :param centered_points: The detected corners of the row relative to the principal point as a nx2 array
    :param min_corners: The row needs strictly more than this many corners
    :param max_line_normal_norm: The largest normalized line normal accepted before the row is considered radial
    :return: The focal length estimate or ``None`` if the row does not constrain the focal length
    """

    centered_points = np.asarray(centered_points, dtype=np.float64).reshape(-1, 2)

    if centered_points.shape[0] <= min_corners:
        _LOGGER.debug(f'Only {centered_points.shape[0]} corners in the row, more than {min_corners} are required')
        return None

    u = centered_points[:, 0]
    v = centered_points[:, 1]

    design = np.column_stack([u, v, np.full_like(u, 0.5), -0.5 * (u * u + v * v)])

    # the right singular vector of the smallest singular value is the least squares null vector
    _, _, vh = svd(design)
    c0, c1, c2, c3 = vh[-1]

    t = c0 * c0 + c1 * c1 + c2 * c3
    if t <= 0:
        _LOGGER.debug('Skipping a bad SVD solution')
        return None

    d = np.sqrt(1.0 / t)
    nx = c0 * d
    ny = c1 * d

    if np.hypot(nx, ny) > max_line_normal_norm:
        _LOGGER.debug('Skipping a radial line')
        return None

    nz = np.sqrt(1.0 - nx * nx - ny * ny)

    return float(abs(c2 * d / nz))


def estimate_homography_focal_length(target_points: ARRAY_LIKE, centered_points: ARRAY_LIKE) -> Optional[float]:
    """
    Estimates the focal length from the homography between a planar target and its image.

    Square pixels and a principal point at the origin of ``centered_points`` are assumed.

    :param target_points: The corners in the target plane as a nx2 array
    :param centered_points: The detected corners relative to the principal point as a nx2 array
    :return: The focal length estimate or ``None`` if the homography does not constrain the focal length (for instance
             when the target is parallel to the image plane)
    """

    target_points = np.asarray(target_points, dtype=np.float64).reshape(-1, 2)
    centered_points = np.asarray(centered_points, dtype=np.float64).reshape(-1, 2)

    if target_points.shape[0] < 4:
        return None

    homography, _ = cv2.findHomography(target_points, centered_points, method=0)

    if homography is None:
        _LOGGER.debug('The homography could not be estimated')
        return None

    h = homography

    a1 = h[0, 0] * h[0, 1] + h[1, 0] * h[1, 1]
    b1 = h[2, 0] * h[2, 1]
    a2 = h[0, 0] ** 2 + h[1, 0] ** 2 - h[0, 1] ** 2 - h[1, 1] ** 2
    b2 = h[2, 0] ** 2 - h[2, 1] ** 2

    denominator = a1 * a1 + a2 * a2
    if denominator == 0:
        return None

    inverse_focal2 = -(a1 * b1 + a2 * b2) / denominator

    if inverse_focal2 <= 0:
        _LOGGER.debug('The homography does not constrain the focal length')
        return None

    return float(1.0 / np.sqrt(inverse_focal2))


class IntrinsicsInitializer(UserOptionConfigured[IntrinsicsInitializerOptions], IntrinsicsInitializerOptions):
    """
    This class initializes the intrinsics of a :class:`.PinholeProjection` from one observation of a grid target.

    Each candidate focal length is tried on a private copy of the model, so the model passed to :meth:`initialize` is
    only written once, after every candidate has been scored.  The result has the principal point at the image
    center, the resolution of the observation, cleared distortion, and both focal lengths set to the best candidate
    (0 if no candidate could be scored).

    .. note:: With the default options the homography candidate is scored alongside the rows, so :meth:`initialize`
              can succeed even when no row produced a usable focal length (as for an undistorted image, where every
              row is a straight line).  Set :attr:`~IntrinsicsInitializerOptions.use_homography_candidate` to
              ``False`` to only succeed when at least one row produced a scored candidate.
    """

    def __init__(self, options: Optional[IntrinsicsInitializerOptions] = None):
        """
        :param options: the dataclass containing the options to configure the class with
        """

        super().__init__(IntrinsicsInitializerOptions, options=options)

    def _candidates(self, model: PinholeProjection,
                    observation: GridCalibrationTargetObservation) -> Iterator[Tuple[str, float]]:
        """
        Yields the labelled candidate focal lengths for the observation.
        """

        target = observation.target
        principal_point = np.array([model.cu, model.cv])

        for row in range(target.rows):

            centered = [point - principal_point
                        for point in (observation.image_grid_point(row, col) for col in range(target.cols))
                        if point is not None]

            if len(centered) <= self.min_corners:
                _LOGGER.debug(f'Skipping row {row} because it only had {len(centered)} corners. '
                              f'Minimum: {self.min_corners}')
                continue

            gamma = estimate_row_focal_length(centered, self.min_corners, self.max_line_normal_norm)

            if gamma is None:
                _LOGGER.debug(f'Row {row} does not constrain the focal length')
                continue

            yield f'row {row}', gamma

        if self.use_homography_candidate:

            gamma = estimate_homography_focal_length(observation.get_corners_target_frame()[:2].T,
                                                     observation.get_corners_image_frame().T - principal_point)

            if gamma is not None:
                yield 'homography', gamma

    def _score(self, model: PinholeProjection, observation: GridCalibrationTargetObservation,
               gamma: float) -> Optional[float]:
        """
        Returns the mean reprojection error of a candidate focal length or ``None`` if it cannot be scored.
        """

        candidate = model.copy()
        candidate.set_parameters([gamma, gamma, model.cu, model.cv])

        T_target_camera = estimate_transformation(candidate, observation)

        if T_target_camera is None:
            return None

        error, count = compute_reprojection_error(candidate, observation, T_target_camera)

        if count <= self.min_corners:
            _LOGGER.debug(f'Only {count} corners reprojected, more than {self.min_corners} are required')
            return None

        return error / count

    def initialize(self, model: PinholeProjection,
                   observations: Sequence[GridCalibrationTargetObservation]) -> bool:
        """
        Initializes the intrinsics of ``model`` in place.

        Only the first observation is used.

        :param model: The model to initialize
        :param observations: The observations of the calibration target
        :return: ``True`` if at least one candidate focal length could be scored
        :raises ValueError: if no observations are provided
        """

        if len(observations) == 0:
            raise ValueError('At least one observation is required to initialize the intrinsics')

        if len(observations) > 1:
            _LOGGER.debug('Only one observation is used to initialize the pinhole intrinsics, using the first')

        observation = observations[0]

        if observation.target is None:
            _LOGGER.error('The observation has no target geometry')
            return False

        # the principal point starts at the image center
        base = model.copy()
        base.cu = (observation.im_cols - 1.0) / 2.0
        base.cv = (observation.im_rows - 1.0) / 2.0
        base.ru = observation.im_cols
        base.rv = observation.im_rows
        base.distortion.clear()

        best_gamma = 0.0
        best_error = np.inf
        success = False

        for label, gamma in self._candidates(base, observation):

            _LOGGER.debug(f'Testing a focal length estimate of {gamma} from {label}')

            mean_error = self._score(base, observation, gamma)

            if mean_error is None:
                _LOGGER.debug(f'Skipping {label} as it could not be scored')
                continue

            if mean_error < best_error:
                _LOGGER.debug(f'{label} produced the new best estimate: {mean_error} < {best_error}')
                best_error = mean_error
                best_gamma = gamma
                success = True

        base.set_parameters([best_gamma, best_gamma, base.cu, base.cv])

        model.set_parameters(base.get_parameters())
        model.ru = base.ru
        model.rv = base.rv
        model.distortion = base.distortion

        return success


def initialize_intrinsics(model: PinholeProjection, observations: Sequence[GridCalibrationTargetObservation],
                          options: Optional[IntrinsicsInitializerOptions] = None) -> bool:
    """
    Initializes the intrinsics of ``model`` in place from the first of ``observations``.

    See :class:`IntrinsicsInitializer` for details.

    :param model: The model to initialize
    :param observations: The observations of the calibration target
    :param options: The options for the initialization
    :return: ``True`` if at least one candidate focal length could be scored
    :raises ValueError: if no observations are provided
    """

    return IntrinsicsInitializer(options).initialize(model, observations)
