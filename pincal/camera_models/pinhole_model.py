# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides a subclass of :class:`.ProjectionModel` that implements the pinhole camera model with a pluggable
lens distortion strategy.

Theory
______

A camera frame point :math:`\mathbf{x}_C=[x, y, z]^T` is first projected onto the normalized image plane by dividing
by its depth, then distorted by the :class:`.Distortion` strategy, and finally converted to pixels using the focal
lengths and principal point

.. math::
    \mathbf{x}_I = \frac{1}{z}\left[\begin{array}{c} x \\ y \end{array}\right] \\
    \mathbf{x}_I' = d(\mathbf{x}_I) \\
    \mathbf{x}_P = \left[\begin{array}{cc} f_u & 0 \\ 0 & f_v \end{array}\right]\mathbf{x}_I' +
    \left[\begin{array}{c} c_u \\ c_v \end{array}\right]

where :math:`d()` is the distortion.  A projection is valid when the point is in front of the camera (:math:`z>0`) and
the keypoint lies in the half open image rectangle :math:`0\leq u<r_u`, :math:`0\leq v<r_v`.

The inverse takes a keypoint back to the distorted normalized image plane with the reciprocal focal lengths, removes
the distortion, and returns the point with unit depth :math:`[x_I, y_I, 1]^T`.

Use
___

This is a concrete implementation of a :class:`.ProjectionModel`, therefore to use this class you simply need to
initialize it with the intrinsics and a distortion strategy.

    >>> from pincal.camera_models import PinholeProjection
    >>> from pincal.distortion import RadialTangentialDistortion
    >>> model = PinholeProjection(fu=400, fv=400, cu=320, cv=240, ru=640, rv=480,
    ...                           distortion=RadialTangentialDistortion(-0.2, 0.13, 0.0005, 0.0001))
    >>> model.euclidean_to_keypoint([0, 0, 1])
    KeypointProjection(keypoint=array([320., 240.]), valid=True, status=<ProjectionStatus.KEYPOINT_VISIBLE: 1>,
    jacobian=None)
"""

import warnings

from typing import Optional, Type

import numpy as np

# apparently lxml has security vulnerabilities but adding warning to documentation to avoid
# loading unverified files
import lxml.etree as etree  # nosec

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY, CONFIG
from pincal.exceptions import ConfigurationError
from pincal.camera_models.camera_model import (ProjectionModel, ProjectionStatus, KeypointProjection,
                                               PointBackProjection, _as_vector)
from pincal.distortion import (Distortion, NoDistortion, RadialTangentialDistortion, distortion_from_config)


def _reciprocal(numerator: float, denominator: float) -> float:
    """
    Divides without raising, a zero denominator gives inf (or nan for 0/0).
    """

    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.float64(numerator) / np.float64(denominator))


class PinholeProjection(ProjectionModel):
    r"""
    This class provides an implementation of the pinhole projection with lens distortion.

    The intrinsics are the focal lengths :attr:`fu`, :attr:`fv` and principal point :attr:`cu`, :attr:`cv` (all in
    pixels) along with the image resolution :attr:`ru` (columns) and :attr:`rv` (rows).  Setting any of them updates
    the cached :attr:`recip_fu`, :attr:`recip_fv` and :attr:`fu_over_fv`.  A focal length of 0 is allowed (it is the
    result of a failed intrinsics initialization) and gives infinite reciprocals.

    The distortion is owned by the model.  Assigning a distortion stores a copy of it, so a strategy instance is never
    shared between models.

    The projection parameters (:meth:`get_parameters`) are :math:`[f_u, f_v, c_u, c_v]`.  Two models are equal when
    every intrinsic, every cached value, and the distortion are bitwise identical (:meth:`is_binary_equal`).
    """

    important_attributes = ['fu', 'fv', 'cu', 'cv', 'ru', 'rv']

    def __init__(self, fu: float = 1.0, fv: float = 1.0, cu: float = 0.0, cv: float = 0.0, ru: int = 1, rv: int = 1,
                 distortion: Optional[Distortion] = None):
        """
        :param fu: The focal length along the image columns in pixels
        :param fv: The focal length along the image rows in pixels
        :param cu: The column of the principal point in pixels
        :param cv: The row of the principal point in pixels
        :param ru: The number of columns in the image
        :param rv: The number of rows in the image
        :param distortion: The distortion strategy.  Defaults to :class:`.NoDistortion`
        """

        self._fu = float(fu)
        self._fv = float(fv)
        self._cu = float(cu)
        self._cv = float(cv)
        self._ru = int(ru)
        self._rv = int(rv)

        self._recip_fu = 1.0
        self._recip_fv = 1.0
        self._fu_over_fv = 1.0

        self._distortion: Distortion = NoDistortion() if distortion is None else distortion.copy()

        self._update_temporaries()

    def __repr__(self) -> str:

        template = "{cls}(fu={fu!r}, fv={fv!r}, cu={cu!r}, cv={cv!r}, ru={ru!r}, rv={rv!r}, distortion={dist!r})"

        return template.format(cls=type(self).__name__, fu=self._fu, fv=self._fv, cu=self._cu, cv=self._cv,
                               ru=self._ru, rv=self._rv, dist=self._distortion)

    def __eq__(self, other) -> bool:

        if not isinstance(other, PinholeProjection):
            return NotImplemented

        return self.is_binary_equal(other)

    def _update_temporaries(self):
        self._recip_fu = _reciprocal(1.0, self._fu)
        self._recip_fv = _reciprocal(1.0, self._fv)
        self._fu_over_fv = _reciprocal(self._fu, self._fv)

    @property
    def fu(self) -> float:
        """
        The focal length along the image columns in pixels
        """
        return self._fu

    @fu.setter
    def fu(self, val: float):
        self._fu = float(val)
        self._update_temporaries()

    @property
    def fv(self) -> float:
        """
        The focal length along the image rows in pixels
        """
        return self._fv

    @fv.setter
    def fv(self, val: float):
        self._fv = float(val)
        self._update_temporaries()

    @property
    def cu(self) -> float:
        """
        The column of the principal point in pixels
        """
        return self._cu

    @cu.setter
    def cu(self, val: float):
        self._cu = float(val)

    @property
    def cv(self) -> float:
        """
        The row of the principal point in pixels
        """
        return self._cv

    @cv.setter
    def cv(self, val: float):
        self._cv = float(val)

    @property
    def ru(self) -> int:
        """
        The number of columns in the image
        """
        return self._ru

    @ru.setter
    def ru(self, val: int):
        self._ru = int(val)

    @property
    def rv(self) -> int:
        """
        The number of rows in the image
        """
        return self._rv

    @rv.setter
    def rv(self, val: int):
        self._rv = int(val)

    @property
    def recip_fu(self) -> float:
        """
        The cached value of ``1/fu``
        """
        return self._recip_fu

    @property
    def recip_fv(self) -> float:
        """
        The cached value of ``1/fv``
        """
        return self._recip_fv

    @property
    def fu_over_fv(self) -> float:
        """
        The cached value of ``fu/fv``
        """
        return self._fu_over_fv

    @property
    def distortion(self) -> Distortion:
        """
        The distortion strategy owned by this model
        """
        return self._distortion

    @distortion.setter
    def distortion(self, val: Distortion):
        if not isinstance(val, Distortion):
            raise TypeError('The distortion must be an instance of Distortion')

        self._distortion = val.copy()

    @property
    def minimal_dimensions(self) -> int:
        return 4

    @property
    def parameter_size(self) -> tuple[int, int]:
        """
        The shape of the projection parameters as a column vector
        """
        return 4, 1

    # ------------------------------------------------------------------------------------------------------------------
    # projection
    # ------------------------------------------------------------------------------------------------------------------

    def _normalize(self, point: DOUBLE_ARRAY) -> tuple[DOUBLE_ARRAY, float]:
        """
        Returns the normalized image plane location and the inverse depth of a camera frame point.
        """

        with np.errstate(divide='ignore', invalid='ignore'):
            inverse_depth = np.float64(1.0) / point[2]
            return point[:2] * inverse_depth, float(inverse_depth)

    def _compute_dnormalized_dpoint(self, point: DOUBLE_ARRAY, inverse_depth: float) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_I/\partial\mathbf{x}_C`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_I}{\partial\mathbf{x}_C} = \left[\begin{array}{ccc}
            1/z & 0 & -x/z^2 \\ 0 & 1/z & -y/z^2\end{array}\right]
        """

        inverse_depth2 = inverse_depth * inverse_depth

        return np.array([[inverse_depth, 0, -point[0] * inverse_depth2],
                         [0, inverse_depth, -point[1] * inverse_depth2]])

    def _compute_dpixel_ddistorted(self) -> DOUBLE_ARRAY:
        return np.diag([self._fu, self._fv])

    def euclidean_to_keypoint(self, point: ARRAY_LIKE, compute_jacobian: bool = False) -> KeypointProjection:
        r"""
        Projects a camera frame point onto the image.

        The keypoint is valid when it lies inside the image *and* the point has positive depth.  The cause of an invalid
        projection is reported by the status, where :attr:`.ProjectionStatus.POINT_BEHIND_CAMERA` takes precedence over
        :attr:`.ProjectionStatus.KEYPOINT_OUTSIDE_IMAGE_BOX`.

        When requested, the Jacobian is

        .. math::
            \frac{\partial\mathbf{x}_P}{\partial\mathbf{x}_C} = \left[\begin{array}{cc} f_u & 0 \\ 0 & f_v
            \end{array}\right]\frac{\partial\mathbf{x}_I'}{\partial\mathbf{x}_I}
            \frac{\partial\mathbf{x}_I}{\partial\mathbf{x}_C}

        :param point: The point in the camera frame as a length 3 array
        :param compute_jacobian: Whether to compute the 2x3 Jacobian of the keypoint with respect to the point
        :return: The keypoint, whether it is valid, the detailed status, and optionally the Jacobian
        """

        point = _as_vector(point, 3, 'euclidean point')

        normalized, inverse_depth = self._normalize(point)

        with np.errstate(divide='ignore', invalid='ignore'):
            distorted = self._distortion.distort(normalized)

            keypoint = np.array([self._fu * distorted[0] + self._cu, self._fv * distorted[1] + self._cv])

        if not point[2] > 0:
            status = ProjectionStatus.POINT_BEHIND_CAMERA
        elif not self.is_inside_image(keypoint):
            status = ProjectionStatus.KEYPOINT_OUTSIDE_IMAGE_BOX
        else:
            status = ProjectionStatus.KEYPOINT_VISIBLE

        jacobian = None

        if compute_jacobian:
            with np.errstate(divide='ignore', invalid='ignore'):
                jacobian = (self._compute_dpixel_ddistorted() @ self._distortion.distortion_jacobian(normalized) @
                            self._compute_dnormalized_dpoint(point, inverse_depth))

        return KeypointProjection(keypoint, status is ProjectionStatus.KEYPOINT_VISIBLE, status, jacobian)

    def keypoint_to_euclidean(self, keypoint: ARRAY_LIKE, compute_jacobian: bool = False) -> PointBackProjection:
        r"""
        Back projects a keypoint to a camera frame point with unit depth.

        The returned point is always :math:`[x_I, y_I, 1]^T`; scale it if a specific depth is needed.  The validity flag
        only reports whether the input keypoint is inside the image.

        When requested, the Jacobian is

        .. math::
            \frac{\partial\mathbf{x}_C}{\partial\mathbf{x}_P} = \left[\begin{array}{c}
            \frac{\partial\mathbf{x}_I}{\partial\mathbf{x}_I'}\left[\begin{array}{cc} 1/f_u & 0 \\ 0 & 1/f_v
            \end{array}\right] \\ \mathbf{0}_{1\times 2}\end{array}\right]

        :param keypoint: The pixel location as a length 2 array
        :param compute_jacobian: Whether to compute the 3x2 Jacobian of the point with respect to the keypoint
        :return: The point, whether the keypoint is inside the image, and optionally the Jacobian
        """

        keypoint = _as_vector(keypoint, 2, 'keypoint')

        jacobian = None

        # a zero focal length leaves non-finite values here
        with np.errstate(divide='ignore', invalid='ignore'):
            distorted = np.array([(keypoint[0] - self._cu) * self._recip_fu,
                                  (keypoint[1] - self._cv) * self._recip_fv])

            normalized = self._distortion.undistort(distorted)

            if compute_jacobian:
                jacobian = np.zeros((3, 2))
                jacobian[:2] = self._distortion.undistortion_jacobian(distorted) @ np.diag([self._recip_fu,
                                                                                             self._recip_fv])

        return PointBackProjection(np.array([normalized[0], normalized[1], 1.0]), self.is_inside_image(keypoint),
                                   jacobian)

    def euclidean_to_keypoint_intrinsics_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes the Jacobian of the keypoint with respect to :math:`[f_u, f_v, c_u, c_v]`, which is given by

        .. math::
            \frac{\partial\mathbf{x}_P}{\partial\mathbf{c}} = \left[\begin{array}{cccc}
            x_I' & 0 & 1 & 0 \\ 0 & y_I' & 0 & 1\end{array}\right]

        where :math:`[x_I', y_I']^T` is the distorted normalized image plane location of the point.

        :param point: The point in the camera frame as a length 3 array
        :return: The 2x4 Jacobian
        """

        normalized, _ = self._normalize(_as_vector(point, 3, 'euclidean point'))

        with np.errstate(divide='ignore', invalid='ignore'):
            distorted = self._distortion.distort(normalized)

        return np.array([[distorted[0], 0, 1, 0],
                         [0, distorted[1], 0, 1]])

    def euclidean_to_keypoint_distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes the Jacobian of the keypoint with respect to the distortion coefficients.

        This is the parameter Jacobian of the distortion evaluated at the undistorted normalized image plane location
        with the rows scaled by :math:`f_u` and :math:`f_v` respectively.

        :param point: The point in the camera frame as a length 3 array
        :return: The 2xK Jacobian where K is the number of distortion coefficients
        """

        normalized, _ = self._normalize(_as_vector(point, 3, 'euclidean point'))

        with np.errstate(divide='ignore', invalid='ignore'):
            return self._compute_dpixel_ddistorted() @ self._distortion.parameter_jacobian(normalized)

    def is_inside_image(self, keypoint: ARRAY_LIKE) -> bool:
        """
        Checks whether a keypoint lies in ``[0, ru) x [0, rv)``.

        :param keypoint: The pixel location as a length 2 array
        :return: ``True`` if the keypoint is inside the image
        """

        u, v = _as_vector(keypoint, 2, 'keypoint')

        return bool(0 <= u < self._ru and 0 <= v < self._rv)

    # ------------------------------------------------------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------------------------------------------------------

    def get_parameters(self) -> DOUBLE_ARRAY:
        """
        Returns the intrinsics as the vector :math:`[f_u, f_v, c_u, c_v]`.
        """
        return np.array([self._fu, self._fv, self._cu, self._cv])

    def set_parameters(self, parameters: ARRAY_LIKE) -> None:
        """
        Overwrites the intrinsics from the vector :math:`[f_u, f_v, c_u, c_v]`.
        """

        self._fu, self._fv, self._cu, self._cv = (float(val) for val in _as_vector(parameters, 4, 'parameter vector'))

        self._update_temporaries()

    def update(self, delta: ARRAY_LIKE) -> None:
        """
        Adds ``delta`` to the intrinsics :math:`[f_u, f_v, c_u, c_v]`.
        """

        self.set_parameters(self.get_parameters() + _as_vector(delta, 4, 'update vector'))

    def resize_intrinsics(self, scale: float) -> None:
        """
        Scales the intrinsics for use on an image resampled by ``scale``.

        The focal lengths, principal point and resolution are multiplied by ``scale``.  The resolution is truncated to
        whole pixels.

        :param scale: The factor the image was resized by
        """

        self._fu *= scale
        self._fv *= scale
        self._cu *= scale
        self._cv *= scale
        self._ru = int(self._ru * scale)
        self._rv = int(self._rv * scale)

        self._update_temporaries()

    def is_binary_equal(self, other: 'PinholeProjection') -> bool:
        """
        Checks for exact equality of every intrinsic, every cached value and the distortion.

        :param other: The model to compare to
        :return: ``True`` if the models are identical
        """

        if not isinstance(other, PinholeProjection):
            return False

        mine = [self._fu, self._fv, self._cu, self._cv, self._ru, self._rv,
                self._recip_fu, self._recip_fv, self._fu_over_fv]
        theirs = [other.fu, other.fv, other.cu, other.cv, other.ru, other.rv,
                  other.recip_fu, other.recip_fv, other.fu_over_fv]

        return np.array_equal(mine, theirs, equal_nan=True) and self._distortion.is_binary_equal(other.distortion)

    # ------------------------------------------------------------------------------------------------------------------
    # sampling helpers
    # ------------------------------------------------------------------------------------------------------------------

    def create_random_keypoint(self, rng: Optional[np.random.Generator] = None) -> DOUBLE_ARRAY:
        """
        Draws a keypoint uniformly over the image.

        :param rng: The random generator to use.  A new default generator is used when ``None``
        :return: The keypoint as a length 2 array
        """

        if rng is None:
            rng = np.random.default_rng()

        return np.abs(rng.uniform(-1, 1, 2)) * [self._ru, self._rv]

    def create_random_visible_point(self, depth: float = -1.0,
                                    rng: Optional[np.random.Generator] = None) -> DOUBLE_ARRAY:
        """
        Draws a camera frame point that projects into the image.

        A random keypoint is back projected and the resulting ray is scaled so that the point is ``depth`` away from
        the camera center.

        :param depth: The distance of the point from the camera.  A negative value draws it uniformly in [0, 100].
        :param rng: The random generator to use.  A new default generator is used when ``None``
        :return: The point as a length 3 array
        """

        if rng is None:
            rng = np.random.default_rng()

        ray = self.keypoint_to_euclidean(self.create_random_keypoint(rng)).point

        if depth < 0:
            depth = rng.uniform(0, 100)

        return ray / np.linalg.norm(ray) * depth

    def get_border_rays(self) -> DOUBLE_ARRAY:
        """
        Returns the homogeneous directions through the image corners and border midpoints.

        The columns correspond to the keypoints ``(0, 0)``, ``(0, rv/2)``, ``(0, rv-1)``, ``(ru-1, 0)``,
        ``(ru-1, rv/2)``, ``(ru-1, rv-1)``, ``(ru/2, 0)`` and ``(ru/2, rv-1)``.

        :return: The 4x8 array of directions
        """

        ru = self._ru
        rv = self._rv

        keypoints = [(0.0, 0.0), (0.0, rv * 0.5), (0.0, rv - 1.0),
                     (ru - 1.0, 0.0), (ru - 1.0, rv * 0.5), (ru - 1.0, rv - 1.0),
                     (ru * 0.5, 0.0), (ru * 0.5, rv - 1.0)]

        return np.array([self.keypoint_to_homogeneous(keypoint).point for keypoint in keypoints]).T

    @classmethod
    def get_test_projection(cls,
                            distortion_type: Type[Distortion] = RadialTangentialDistortion) -> 'PinholeProjection':
        """
        Returns a 640x480 model with focal lengths of 400 pixels, the principal point at (320, 240) and the test
        distortion of ``distortion_type``.
        """

        return cls(400.0, 400.0, 320.0, 240.0, 640, 480, distortion_type.get_test_distortion())

    # ------------------------------------------------------------------------------------------------------------------
    # configuration/persistence
    # ------------------------------------------------------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: CONFIG) -> 'PinholeProjection':
        """
        Builds a model from a key/value configuration source.

        The keys ``fu``, ``fv``, ``cu``, ``cv``, ``ru`` and ``rv`` are required.  An optional ``distortion`` mapping is
        passed to :func:`.distortion_from_config`, without it there is no distortion.

            >>> PinholeProjection.from_config({'fu': 400, 'fv': 400, 'cu': 320, 'cv': 240, 'ru': 640, 'rv': 480,
            ...                                'distortion': {'type': 'fisheye', 'w': 0.9}})

        :param config: The configuration mapping
        :return: The configured model
        :raises ConfigurationError: if a key is missing or has the wrong type
        """

        values = {}

        for key, kind in (('fu', float), ('fv', float), ('cu', float), ('cv', float), ('ru', int), ('rv', int)):

            if key not in config:
                raise ConfigurationError(f'Missing required key {key!r} in the projection configuration')

            try:
                values[key] = kind(config[key])
            except (TypeError, ValueError) as err:
                raise ConfigurationError(f'The value of {key!r} must be a {kind.__name__}') from err

        distortion = None
        if config.get('distortion') is not None:
            distortion = distortion_from_config(config['distortion'])

        return cls(distortion=distortion, **values)

    def to_elem(self, elem: etree._Element) -> etree._Element:
        """
        Stores this model in an :class:`lxml.etree.SubElement`.

        In addition to the intrinsics, the distortion is stored in a ``distortion`` sub-element (see
        :meth:`.Distortion.to_elem`).

        :param elem: The :class:`lxml.etree.SubElement` class to store this model in
        :return: The :class:`lxml.etree.SubElement` for this model
        """

        super().to_elem(elem)

        node = elem.find('distortion')

        if node is not None:
            # drop the stale coefficients in case the distortion type changed
            elem.remove(node)

        self._distortion.to_elem(etree.SubElement(elem, 'distortion'))

        return elem

    @classmethod
    def from_elem(cls, elem: etree._Element) -> 'PinholeProjection':
        """
        Builds a model from an element written by :meth:`to_elem`.

        :param elem: The element containing the model
        :return: The model stored in the element
        :raises ConfigurationError: if the element was written with a newer serialization version
        """

        inst = super().from_elem(elem)

        node = elem.find('distortion')

        if node is None:
            warnings.warn('missing value for distortion')
        else:
            inst._distortion = Distortion.from_elem(node)

        return inst
