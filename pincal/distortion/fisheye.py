# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the fisheye (field of view) distortion strategy.

Theory
______

The field of view model of Devernay and Faugeras describes the lens with a single parameter :math:`w`, the field of
view of the corresponding ideal fisheye lens

.. math::
    \mathbf{x}_d = \frac{\arctan\left(2\tan\left(\frac{w}{2}\right)r\right)}{wr}\mathbf{x}

where :math:`\mathbf{x}` is the undistorted normalized image plane location and :math:`r=\|\mathbf{x}\|`.  The model
can be inverted in closed form

.. math::
    r = \frac{\tan(r_dw)}{2\tan\left(\frac{w}{2}\right)}

For :math:`w^2` below :attr:`FisheyeDistortion.identity_threshold` the mapping is treated as the identity and close to
the optical axis a second order series expansion of the scale factor is used.
"""

import numpy as np

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY
from pincal.distortion.distortion import Distortion


class FisheyeDistortion(Distortion):
    """
    The field of view fisheye distortion strategy with the single coefficient ``w`` (radians).

    Setting ``w`` to 0 makes this the identity mapping.
    """

    parameter_names = ('w',)

    identity_threshold: float = 1e-5
    """
    Values of ``w**2`` below this are treated as no distortion
    """

    axis_threshold: float = 1e-5
    """
    Values of ``r**2`` below this use the series expansion of the scale factor
    """

    def __init__(self, w: float = 0.0):
        """
        :param w: The field of view parameter in radians
        """

        self.w = float(w)

    def _scale(self, radius: float) -> float:
        r"""
        Computes the scale factor :math:`s=\arctan(ar)/(wr)` with :math:`a=2\tan(w/2)`.
        """

        two_tan = 2 * np.tan(self.w / 2)

        if radius * radius < self.axis_threshold:
            return (two_tan - two_tan ** 3 * radius * radius / 3) / self.w

        return np.arctan(two_tan * radius) / (self.w * radius)

    def distort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        point = np.array(point, dtype=np.float64).ravel()[:2]

        if self.w * self.w < self.identity_threshold:
            return point

        return self._scale(float(np.linalg.norm(point))) * point

    def undistort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        point = np.array(point, dtype=np.float64).ravel()[:2]

        if self.w * self.w < self.identity_threshold:
            return point

        radius = float(np.linalg.norm(point))
        two_tan = 2 * np.tan(self.w / 2)

        if radius * radius < self.axis_threshold:
            return self.w / two_tan * point

        return np.tan(radius * self.w) / (radius * two_tan) * point

    def distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_d/\partial\mathbf{x}`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_d}{\partial\mathbf{x}} = s\mathbf{I}_{2\times 2} +
            \frac{1}{r}\frac{\partial s}{\partial r}\mathbf{x}\mathbf{x}^T

        with

        .. math::
            \frac{\partial s}{\partial r} = \frac{\frac{ar}{1+a^2r^2} - \arctan(ar)}{wr^2}

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2x2 Jacobian matrix
        """

        point = np.asarray(point, dtype=np.float64).ravel()[:2]

        if self.w * self.w < self.identity_threshold:
            return np.eye(2)

        radius = float(np.linalg.norm(point))
        two_tan = 2 * np.tan(self.w / 2)

        scale = self._scale(radius)

        if radius * radius < self.axis_threshold:
            dscale_dradius_over_radius = -2 * two_tan ** 3 / (3 * self.w)
        else:
            ar = two_tan * radius
            dscale_dradius_over_radius = (ar / (1 + ar * ar) - np.arctan(ar)) / (self.w * radius ** 3)

        return scale * np.eye(2) + dscale_dradius_over_radius * np.outer(point, point)

    def parameter_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_d/\partial w`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_d}{\partial w} = \left(\frac{1+\tan^2\left(\frac{w}{2}\right)}{w(1+a^2r^2)} -
            \frac{s}{w}\right)\mathbf{x}

        The scale factor is even in :math:`w`, so the derivative is 0 where the mapping is treated as the identity.

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2x1 Jacobian matrix
        """

        point = np.asarray(point, dtype=np.float64).ravel()[:2]

        if self.w * self.w < self.identity_threshold:
            return np.zeros((2, 1))

        radius = float(np.linalg.norm(point))
        tan_half = np.tan(self.w / 2)
        ar = 2 * tan_half * radius

        dscale_dw = (1 + tan_half * tan_half) / (self.w * (1 + ar * ar)) - self._scale(radius) / self.w

        return (dscale_dw * point).reshape(2, 1)

    @classmethod
    def get_test_distortion(cls) -> 'FisheyeDistortion':
        return cls(0.9)
