# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the equidistant (Kannala-Brandt) distortion strategy.

Theory
______

The equidistant model distorts the angle of incidence :math:`\theta=\arctan(r)` with an odd polynomial

.. math::
    \theta_d = \theta(1 + k_1\theta^2 + k_2\theta^4 + k_3\theta^6 + k_4\theta^8) \\
    \mathbf{x}_d = \frac{\theta_d}{r}\mathbf{x}

where :math:`\mathbf{x}` is the undistorted normalized image plane location and :math:`r=\|\mathbf{x}\|`.  Points
within :attr:`EquidistantDistortion.axis_threshold` of the optical axis are left untouched.
"""

import numpy as np

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY
from pincal.distortion.distortion import Distortion


class EquidistantDistortion(Distortion):
    """
    The equidistant distortion strategy with the four polynomial coefficients ``k1`` through ``k4``.

    Unlike the other strategies, all coefficients at 0 is not the identity mapping, but the ideal equidistant
    (f-theta) projection.
    """

    parameter_names = ('k1', 'k2', 'k3', 'k4')

    axis_threshold: float = 1e-8

    def __init__(self, k1: float = 0.0, k2: float = 0.0, k3: float = 0.0, k4: float = 0.0):

        self.k1 = float(k1)
        self.k2 = float(k2)
        self.k3 = float(k3)
        self.k4 = float(k4)

    def _polynomial(self, theta: float) -> tuple[float, float]:
        """
        Returns the distorted angle and its derivative with respect to the undistorted angle.
        """

        theta2 = theta * theta
        theta4 = theta2 * theta2
        theta6 = theta4 * theta2
        theta8 = theta4 * theta4

        theta_d = theta * (1 + self.k1 * theta2 + self.k2 * theta4 + self.k3 * theta6 + self.k4 * theta8)
        dtheta_d = 1 + 3 * self.k1 * theta2 + 5 * self.k2 * theta4 + 7 * self.k3 * theta6 + 9 * self.k4 * theta8

        return theta_d, dtheta_d

    def distort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        point = np.array(point, dtype=np.float64).ravel()[:2]

        radius = float(np.linalg.norm(point))

        if radius < self.axis_threshold:
            return point

        theta_d, _ = self._polynomial(np.arctan(radius))

        return theta_d / radius * point

    def distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_d/\partial\mathbf{x}`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_d}{\partial\mathbf{x}} = \frac{\theta_d}{r}\mathbf{I}_{2\times 2} +
            \frac{1}{r^2}\left(\frac{\partial\theta_d/\partial\theta}{1+r^2} - \frac{\theta_d}{r}\right)
            \mathbf{x}\mathbf{x}^T

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2x2 Jacobian matrix
        """

        point = np.asarray(point, dtype=np.float64).ravel()[:2]

        radius = float(np.linalg.norm(point))

        if radius < self.axis_threshold:
            return np.eye(2)

        theta_d, dtheta_d = self._polynomial(np.arctan(radius))

        radial = theta_d / radius

        return radial * np.eye(2) + (dtheta_d / (1 + radius * radius) - radial) / radius ** 2 * np.outer(point, point)

    def parameter_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        point = np.asarray(point, dtype=np.float64).ravel()[:2]

        radius = float(np.linalg.norm(point))

        if radius < self.axis_threshold:
            return np.zeros((2, 4))

        theta = np.arctan(radius)
        theta2 = theta * theta

        powers = np.array([theta2, theta2 ** 2, theta2 ** 3, theta2 ** 4])

        return np.outer(theta / radius * point, powers)

    @classmethod
    def get_test_distortion(cls) -> 'EquidistantDistortion':
        return cls(-0.2, 0.13, 0.0005, 0.0001)
