# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the :class:`Transformation` class, a rigid transformation (rotation followed by translation)
between two frames.

Transformations are named by the frames they connect, ``T_a_b`` transforms points expressed in frame ``b`` into
frame ``a``

.. math::
    \mathbf{x}_a = \mathbf{R}_{ab}\mathbf{x}_b + \mathbf{t}_{ab}

so that ``T_a_b * T_b_c`` is ``T_a_c`` and ``T_a_b.inverse()`` is ``T_b_a``.
"""

import copy

import numpy as np
import cv2

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY


class Transformation:
    """
    A rigid transformation stored as a 3x3 rotation matrix and a translation vector.

    The rotation can be provided either as a rotation matrix or as a rotation vector (axis scaled by the angle in
    radians), in which case it is converted using :func:`cv2.Rodrigues`.  This is a value type; use :meth:`copy` to
    break references.
    """

    def __init__(self, rotation: ARRAY_LIKE | None = None, translation: ARRAY_LIKE | None = None):
        """
        :param rotation: The rotation as a 3x3 matrix or a length 3 rotation vector.  Defaults to the identity.
        :param translation: The translation as a length 3 vector.  Defaults to 0.
        """

        self._rotation: DOUBLE_ARRAY = np.eye(3)
        self._translation: DOUBLE_ARRAY = np.zeros(3)

        if rotation is not None:
            self.rotation = rotation

        if translation is not None:
            self.translation = translation

    @classmethod
    def from_matrix(cls, matrix: ARRAY_LIKE) -> 'Transformation':
        """
        Builds a transformation from a 4x4 (or 3x4) homogeneous transformation matrix.
        """

        matrix = np.asarray(matrix, dtype=np.float64)

        return cls(matrix[:3, :3], matrix[:3, 3])

    @property
    def rotation(self) -> DOUBLE_ARRAY:
        """
        The 3x3 rotation matrix
        """
        return self._rotation

    @rotation.setter
    def rotation(self, val: ARRAY_LIKE):

        val = np.array(val, dtype=np.float64)

        if val.size == 3:
            val, _ = cv2.Rodrigues(val.reshape(3, 1))

        elif val.shape != (3, 3):
            raise ValueError('The rotation must be a 3x3 matrix or a length 3 rotation vector')

        self._rotation = val

    @property
    def translation(self) -> DOUBLE_ARRAY:
        """
        The translation vector
        """
        return self._translation

    @translation.setter
    def translation(self, val: ARRAY_LIKE):

        val = np.array(val, dtype=np.float64).ravel()

        if val.size != 3:
            raise ValueError('The translation must be a length 3 vector')

        self._translation = val

    @property
    def rotation_vector(self) -> DOUBLE_ARRAY:
        """
        The rotation expressed as a rotation vector (axis times angle in radians)
        """

        vector, _ = cv2.Rodrigues(self._rotation)

        return vector.ravel()

    @property
    def matrix(self) -> DOUBLE_ARRAY:
        """
        The 4x4 homogeneous transformation matrix
        """

        out = np.eye(4)
        out[:3, :3] = self._rotation
        out[:3, 3] = self._translation

        return out

    def inverse(self) -> 'Transformation':
        """
        Returns the inverse transformation.
        """

        rotation_t = self._rotation.T

        return Transformation(rotation_t, -rotation_t @ self._translation)

    def apply(self, points: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Transforms points.

        :param points: The points to transform as a length 3 array or a 3xn array
        :return: The transformed points in the same shape as the input
        """

        points = np.asarray(points, dtype=np.float64)

        if points.ndim == 1:
            return self._rotation @ points + self._translation

        return self._rotation @ points + self._translation.reshape(3, 1)

    def __mul__(self, other: 'Transformation') -> 'Transformation':

        if isinstance(other, Transformation):
            return Transformation(self._rotation @ other.rotation,
                                  self._rotation @ other.translation + self._translation)

        return NotImplemented

    def __eq__(self, other) -> bool:

        if not isinstance(other, Transformation):
            return NotImplemented

        return np.array_equal(self._rotation, other.rotation) and np.array_equal(self._translation, other.translation)

    def __repr__(self) -> str:
        return 'Transformation(rotation={0!r}, translation={1!r})'.format(self.rotation_vector, self._translation)

    def copy(self) -> 'Transformation':
        """
        Returns a deep copy of self.
        """
        return copy.deepcopy(self)
