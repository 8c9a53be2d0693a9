# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the radial-tangential (plumb bob) distortion strategy.

Theory
______

The radial-tangential model combines a 2nd and 4th order radial term with the two decentering (tangential) terms

.. math::
    \mathbf{x}_d = (1 + k_1r^2 + k_2r^4)\mathbf{x} +
    \left[\begin{array}{c} 2p_1xy+p_2(r^2+2x^2) \\ p_1(r^2+2y^2) + 2p_2xy \end{array}\right]

where :math:`\mathbf{x}=[x, y]^T` is the undistorted normalized image plane location and :math:`r^2=x^2+y^2`.  This
matches the first 4 coefficients of the OpenCV/Brown distortion vector.
"""

import numpy as np

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY
from pincal.distortion.distortion import Distortion


class RadialTangentialDistortion(Distortion):
    """
    The radial-tangential distortion strategy with coefficients ``k1``, ``k2`` (radial) and ``p1``, ``p2``
    (tangential).

    With all coefficients set to 0 this is the identity mapping.
    """

    parameter_names = ('k1', 'k2', 'p1', 'p2')

    def __init__(self, k1: float = 0.0, k2: float = 0.0, p1: float = 0.0, p2: float = 0.0):
        """
        :param k1: The 2nd order radial distortion coefficient
        :param k2: The 4th order radial distortion coefficient
        :param p1: The first tangential distortion coefficient
        :param p2: The second tangential distortion coefficient
        """

        self.k1 = float(k1)
        self.k2 = float(k2)
        self.p1 = float(p1)
        self.p2 = float(p2)

    def distort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        x, y = np.asarray(point, dtype=np.float64).ravel()[:2]

        # compute the powers of the radial distance from the optical axis
        radius2 = x * x + y * y
        radial = self.k1 * radius2 + self.k2 * radius2 * radius2

        xy = x * y

        return np.array([x + x * radial + 2 * self.p1 * xy + self.p2 * (radius2 + 2 * x * x),
                         y + y * radial + 2 * self.p2 * xy + self.p1 * (radius2 + 2 * y * y)])

    def distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_d/\partial\mathbf{x}`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_d}{\partial\mathbf{x}} = (1 + k_1r^2 + k_2r^4)\mathbf{I}_{2\times 2} +
            2(k_1 + 2k_2r^2)\mathbf{x}\mathbf{x}^T +
            \left[\begin{array}{cc} 2p_1y + 6p_2x & 2p_1x + 2p_2y \\ 2p_1x + 2p_2y & 6p_1y + 2p_2x\end{array}\right]

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2x2 Jacobian matrix
        """

        x, y = np.asarray(point, dtype=np.float64).ravel()[:2]

        radius2 = x * x + y * y
        radial = self.k1 * radius2 + self.k2 * radius2 * radius2
        dradial = 2 * self.k1 + 4 * self.k2 * radius2

        cross = dradial * x * y + 2 * self.p1 * x + 2 * self.p2 * y

        return np.array([[1 + radial + dradial * x * x + 2 * self.p1 * y + 6 * self.p2 * x, cross],
                         [cross, 1 + radial + dradial * y * y + 6 * self.p1 * y + 2 * self.p2 * x]])

    def parameter_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:

        x, y = np.asarray(point, dtype=np.float64).ravel()[:2]

        radius2 = x * x + y * y
        radius4 = radius2 * radius2

        return np.array([[x * radius2, x * radius4, 2 * x * y, radius2 + 2 * x * x],
                         [y * radius2, y * radius4, radius2 + 2 * y * y, 2 * x * y]])

    @classmethod
    def get_test_distortion(cls) -> 'RadialTangentialDistortion':
        return cls(-0.2, 0.13, 0.0005, 0.0001)
