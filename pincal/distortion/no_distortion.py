# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the identity distortion, used for ideal pinhole cameras.
"""

import numpy as np

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY
from pincal.distortion.distortion import Distortion


class NoDistortion(Distortion):
    """
    A distortion strategy which leaves every point untouched.

    It has no coefficients, so :attr:`minimal_dimensions` is 0 and :meth:`parameter_jacobian` returns a 2x0 matrix.
    """

    def distort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        return np.array(point, dtype=np.float64).ravel()

    def undistort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        return np.array(point, dtype=np.float64).ravel()

    def distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        return np.eye(2)

    def undistortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        return np.eye(2)

    def parameter_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        return np.zeros((2, 0))

    @classmethod
    def get_test_distortion(cls) -> 'NoDistortion':
        return cls()
