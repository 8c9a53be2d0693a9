# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the planar grid calibration target and the observation of such a target in a single image.

Targets are laid out on the :math:`z=0` plane of the target frame with the first corner at the origin, columns
increasing along :math:`x` and rows increasing along :math:`y`.  Corners are indexed row major, ``index = row * cols +
col``.  Extracting the corners from an image is not handled here; detections are provided to the observation with
:meth:`.GridCalibrationTargetObservation.update_image_point`.
"""

from typing import Optional, Iterable

import numpy as np

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY
from pincal.utilities.mixin_classes import AttributePrinting


class GridCalibrationTarget(AttributePrinting):
    """
    A planar grid of corners (for instance the inner corners of a checkerboard).
    """

    def __init__(self, rows: int, cols: int, row_spacing: float, col_spacing: Optional[float] = None):
        """
        :param rows: The number of corner rows
        :param cols: The number of corner columns
        :param row_spacing: The distance between neighboring rows
        :param col_spacing: The distance between neighboring columns.  Defaults to ``row_spacing``
        """

        if rows < 1 or cols < 1:
            raise ValueError('The target must have at least one row and one column')

        self.rows = int(rows)
        self.cols = int(cols)
        self.row_spacing = float(row_spacing)
        self.col_spacing = float(row_spacing if col_spacing is None else col_spacing)

    @property
    def size(self) -> int:
        """
        The total number of corners on the target
        """
        return self.rows * self.cols

    def grid_coordinates(self, index: int) -> tuple[int, int]:
        """
        Converts a corner index into its (row, col) location on the grid.
        """

        if not 0 <= index < self.size:
            raise IndexError(f'Corner index {index} is out of range for a target with {self.size} corners')

        return divmod(int(index), self.cols)

    def grid_point(self, row: int, col: int) -> DOUBLE_ARRAY:
        """
        Returns the location of the corner at (row, col) in the target frame.
        """

        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f'Grid location ({row}, {col}) is outside of the {self.rows}x{self.cols} target')

        return np.array([col * self.col_spacing, row * self.row_spacing, 0.0])

    def point(self, index: int) -> DOUBLE_ARRAY:
        """
        Returns the location of the corner with the given index in the target frame.
        """
        return self.grid_point(*self.grid_coordinates(index))

    def points(self) -> DOUBLE_ARRAY:
        """
        Returns every corner of the target as a 3xn array in index order.
        """

        cols, rows = np.meshgrid(np.arange(self.cols), np.arange(self.rows))

        return np.vstack([cols.ravel() * self.col_spacing, rows.ravel() * self.row_spacing, np.zeros(self.size)])


class GridCalibrationTargetObservation(AttributePrinting):
    """
    The detections of a :class:`GridCalibrationTarget` in a single image.

    Corners which were not detected simply have no image point (:meth:`image_point` returns ``None``).
    """

    def __init__(self, target: Optional[GridCalibrationTarget], im_rows: int, im_cols: int,
                 image_points: Optional[dict[int, ARRAY_LIKE]] = None):
        """
        :param target: The target that was observed.  ``None`` when the target geometry is unknown.
        :param im_rows: The number of rows in the image
        :param im_cols: The number of columns in the image
        :param image_points: An optional mapping from corner index to the detected pixel location
        """

        self.target = target
        self.im_rows = int(im_rows)
        self.im_cols = int(im_cols)

        self._image_points: dict[int, DOUBLE_ARRAY] = {}

        if image_points is not None:
            for index, point in image_points.items():
                self.update_image_point(index, point)

    @property
    def image_points(self) -> dict[int, DOUBLE_ARRAY]:
        """
        The detected pixel locations keyed by corner index
        """
        return dict(self._image_points)

    @property
    def has_successful_observation(self) -> bool:
        """
        Whether at least one corner was detected
        """
        return bool(self._image_points)

    def update_image_point(self, index: int, point: ARRAY_LIKE) -> None:
        """
        Sets the detected pixel location of a corner.
        """

        point = np.array(point, dtype=np.float64).ravel()

        if point.size != 2:
            raise ValueError('Image points must have 2 elements')

        self._image_points[int(index)] = point

    def remove_image_point(self, index: int) -> None:
        """
        Marks a corner as not detected.
        """
        self._image_points.pop(int(index), None)

    def image_point(self, index: int) -> Optional[DOUBLE_ARRAY]:
        """
        Returns the detected pixel location of a corner or ``None`` if it was not detected.
        """

        point = self._image_points.get(int(index))

        return None if point is None else point.copy()

    def image_grid_point(self, row: int, col: int) -> Optional[DOUBLE_ARRAY]:
        """
        Returns the detected pixel location of the corner at (row, col) or ``None`` if it was not detected.
        """

        if self.target is None:
            raise ValueError('The observation has no target geometry')

        return self.image_point(row * self.target.cols + col)

    def get_corners_indices(self) -> list[int]:
        """
        Returns the indices of the detected corners in increasing order.
        """
        return sorted(self._image_points)

    def get_corners_image_frame(self) -> DOUBLE_ARRAY:
        """
        Returns the detected pixel locations as a 2xn array ordered as :meth:`get_corners_indices`.
        """
        return self._stack((self._image_points[index] for index in self.get_corners_indices()), 2)

    def get_corners_target_frame(self) -> DOUBLE_ARRAY:
        """
        Returns the target frame locations of the detected corners as a 3xn array ordered as
        :meth:`get_corners_indices`.
        """

        if self.target is None:
            raise ValueError('The observation has no target geometry')

        return self._stack((self.target.point(index) for index in self.get_corners_indices()), 3)

    @staticmethod
    def _stack(points: Iterable[DOUBLE_ARRAY], rows: int) -> DOUBLE_ARRAY:
        return np.array(list(points), dtype=np.float64).reshape(-1, rows).T
