# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides small planar geometry helpers used when working with circle based calibration patterns.
"""

from typing import List, Tuple

import numpy as np

from pincal._typing import ARRAY_LIKE


def intersect_circles(x1: float, y1: float, r1: float, x2: float, y2: float, r2: float) -> List[Tuple[float, float]]:
    """
    Computes the intersection points of two circles.

    :param x1: The x coordinate of the center of the first circle
    :param y1: The y coordinate of the center of the first circle
    :param r1: The radius of the first circle
    :param x2: The x coordinate of the center of the second circle
    :param y2: The y coordinate of the center of the second circle
    :param r2: The radius of the second circle
    :return: The intersection points, empty when the circles are disjoint, nested, or concentric, a single point when
             they touch
    """

    distance = np.hypot(x1 - x2, y1 - y2)

    if distance > r1 + r2 or distance < abs(r1 - r2) or distance == 0:
        return []

    # distance from the first center to the chord along the center line
    a = (r1 * r1 - r2 * r2 + distance * distance) / (2.0 * distance)
    h = np.sqrt(max(r1 * r1 - a * a, 0.0))

    x3 = x1 + a * (x2 - x1) / distance
    y3 = y1 + a * (y2 - y1) / distance

    if h < 1e-10:
        return [(float(x3), float(y3))]

    dx = h * (y2 - y1) / distance
    dy = h * (x2 - x1) / distance

    return [(float(x3 + dx), float(y3 - dy)), (float(x3 - dx), float(y3 + dy))]


def fit_circle(points: ARRAY_LIKE) -> Tuple[float, float, float]:
    """
    Fits a circle to a set of 2D points using the modified least squares method of Umbach and Jones (A Few Methods for
    Fitting Circles to Data, IEEE Transactions on Instrumentation and Measurement, 2000).

    The radius is the mean distance of the points from the fitted center.

    :param points: The points as a nx2 array
    :return: The center x, center y and radius of the circle
    :raises ValueError: if fewer than 3 points are given or the points are collinear
    """

    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)

    n = points.shape[0]

    if n < 3:
        raise ValueError('At least 3 points are required to fit a circle')

    x = points[:, 0]
    y = points[:, 1]

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xx = (x * x).sum()
    sum_yy = (y * y).sum()

    a = n * sum_xx - sum_x ** 2
    b = n * (x * y).sum() - sum_x * sum_y
    c = n * sum_yy - sum_y ** 2
    d = 0.5 * (n * (x * y * y).sum() - sum_x * sum_yy + n * (x ** 3).sum() - sum_x * sum_xx)
    e = 0.5 * (n * (x * x * y).sum() - sum_y * sum_xx + n * (y ** 3).sum() - sum_y * sum_yy)

    determinant = a * c - b * b

    if abs(determinant) <= np.finfo(np.float64).eps * max(abs(a * c), 1.0):
        raise ValueError('The points are collinear')

    center_x = (d * c - b * e) / determinant
    center_y = (a * e - b * d) / determinant

    radius = np.hypot(x - center_x, y - center_y).mean()

    return float(center_x), float(center_y), float(radius)
