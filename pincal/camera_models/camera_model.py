# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides an abstract base class (abc) for implementing pincal projection models along with the functions
:func:`save` and :func:`load` which can be used to write/read projection models from disk in a human and machine
readable format.

For the typical use case see the :class:`.PinholeProjection` class, which also serves as an example of how to make a
concrete implementation of the :class:`ProjectionModel` abc.

Use
___

To implement a fully functional projection model, subclass :class:`ProjectionModel` and implement

====================================================== =================================================================
Method/Attribute                                       Use
====================================================== =================================================================
:meth:`~ProjectionModel.euclidean_to_keypoint`         projects a camera frame point onto the image, optionally with
                                                       :math:`\partial\mathbf{x}_P/\partial\mathbf{x}_C`
:meth:`~ProjectionModel.keypoint_to_euclidean`         back projects a keypoint to a unit depth camera frame point,
                                                       optionally with :math:`\partial\mathbf{x}_C/\partial\mathbf{x}_P`
:meth:`~ProjectionModel.is_inside_image`               checks whether a keypoint is inside the image bounds
:meth:`~ProjectionModel.get_parameters`                returns the flat vector of projection parameters
:meth:`~ProjectionModel.set_parameters`                overwrites the projection parameters from a flat vector
:meth:`~ProjectionModel.update`                        applies an additive update to the projection parameters
====================================================== =================================================================

The homogeneous forms (:meth:`~ProjectionModel.homogeneous_to_keypoint`,
:meth:`~ProjectionModel.keypoint_to_homogeneous`), the visibility checks, :meth:`~ProjectionModel.copy`,
:meth:`~ProjectionModel.to_elem` and :meth:`~ProjectionModel.from_elem` are implemented here in terms of the above and
generally do not need to be overridden.  If :meth:`~ProjectionModel.to_elem` and :meth:`~ProjectionModel.from_elem`
are not overridden, :attr:`~ProjectionModel.important_attributes` should list the attributes that must be saved/loaded
to completely reconstruct the model.

Homogeneous points
__________________

A homogeneous point :math:`[x, y, z, w]^T` is brought to :math:`w\geq 0` by negating all four components before it is
used.  The sign of :math:`w` carries no other meaning, in particular the point is *not* divided by :math:`w` (the
projection is invariant to the scale of the first three components).
"""

import copy

from abc import ABCMeta, abstractmethod

from enum import Enum, auto

import os

from importlib import import_module

import warnings

from typing import NamedTuple, Optional, List, TypeVar, Type

import numpy as np

# apparently lxml has security vulnerabilities but adding warning to documentation to avoid
# loading unverified files
import lxml.etree as etree  # nosec

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY, NONEARRAY, PATH
from pincal.exceptions import ConfigurationError


ModelT = TypeVar("ModelT", bound="ProjectionModel")


class ProjectionStatus(Enum):
    """
    An enum specifying the detailed outcome of projecting a point onto the image.
    """

    KEYPOINT_VISIBLE = auto()
    """
    The point is in front of the camera and projects inside the image
    """

    KEYPOINT_OUTSIDE_IMAGE_BOX = auto()
    """
    The point is in front of the camera but projects outside of the image
    """

    POINT_BEHIND_CAMERA = auto()
    """
    The point does not have a positive depth.  This takes precedence over the image bounds.
    """


class KeypointProjection(NamedTuple):
    """
    The result of projecting a point onto the image.
    """

    keypoint: DOUBLE_ARRAY
    """
    The pixel location as a length 2 array
    """

    valid: bool
    """
    Whether the point is in front of the camera and projects inside the image
    """

    status: ProjectionStatus
    """
    Why the projection is or is not valid
    """

    jacobian: NONEARRAY = None
    """
    The Jacobian of the keypoint with respect to the input point (2x3 or 2x4) if it was requested
    """


class PointBackProjection(NamedTuple):
    """
    The result of back projecting a keypoint into the camera frame.
    """

    point: DOUBLE_ARRAY
    """
    The camera frame point with unit depth (length 3) or the homogeneous direction (length 4)
    """

    valid: bool
    """
    Whether the input keypoint is inside the image
    """

    jacobian: NONEARRAY = None
    """
    The Jacobian of the point with respect to the keypoint (3x2 or 4x2) if it was requested
    """


def _as_vector(point: ARRAY_LIKE, size: int, name: str) -> DOUBLE_ARRAY:
    """
    Converts the input into a flat float array and checks its length.
    """

    point = np.asarray(point, dtype=np.float64).ravel()

    if point.size != size:
        raise ValueError(f'The {name} must have {size} elements, got {point.size}')

    return point


def _normalize_homogeneous(point: ARRAY_LIKE) -> tuple[DOUBLE_ARRAY, bool]:
    """
    Returns the homogeneous point with a non-negative w and whether it had to be negated.
    """

    point = _as_vector(point, 4, 'homogeneous point')

    if point[3] < 0:
        return -point, True

    return point, False


class ProjectionModel(metaclass=ABCMeta):
    """
    This is the abstract base class for all projection models in pincal.

    A projection model is a mapping from a 3D point expressed in the camera frame to a corresponding 2D keypoint in the
    image, and back from a keypoint to a ray in the camera frame.  The mapping and its inverse never raise on
    geometrically invalid input, instead the validity is reported alongside the result.

    .. note:: Because this is an ABC, you cannot create an instance of ProjectionModel (it will raise a ``TypeError``)
    """

    SERIALIZATION_VERSION: int = 0
    """
    The newest version of the persisted form this class can read.  It is written to the ``version`` attribute of the
    element by :meth:`to_elem`.
    """

    important_attributes: List[str] = []
    """
    A list specifying the attributes that must be saved/loaded for this model to be completely reconstructed.
    """

    @property
    @abstractmethod
    def minimal_dimensions(self) -> int:
        """
        The number of projection parameters (the length of :meth:`get_parameters`)
        """

    @abstractmethod
    def euclidean_to_keypoint(self, point: ARRAY_LIKE, compute_jacobian: bool = False) -> KeypointProjection:
        """
        Projects a camera frame point onto the image.

        :param point: The point in the camera frame as a length 3 array
        :param compute_jacobian: Whether to compute the 2x3 Jacobian of the keypoint with respect to the point
        :return: The keypoint, whether it is valid, the detailed status, and optionally the Jacobian
        """

    @abstractmethod
    def keypoint_to_euclidean(self, keypoint: ARRAY_LIKE, compute_jacobian: bool = False) -> PointBackProjection:
        """
        Back projects a keypoint to a camera frame point with unit depth.

        :param keypoint: The pixel location as a length 2 array
        :param compute_jacobian: Whether to compute the 3x2 Jacobian of the point with respect to the keypoint
        :return: The point, whether the keypoint is inside the image, and optionally the Jacobian
        """

    @abstractmethod
    def euclidean_to_keypoint_intrinsics_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Computes the Jacobian of the keypoint with respect to the projection parameters.

        :param point: The point in the camera frame as a length 3 array
        :return: The 2xN Jacobian with columns ordered as :meth:`get_parameters`
        """

    @abstractmethod
    def euclidean_to_keypoint_distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Computes the Jacobian of the keypoint with respect to the distortion coefficients.

        :param point: The point in the camera frame as a length 3 array
        :return: The 2xK Jacobian
        """

    @abstractmethod
    def is_inside_image(self, keypoint: ARRAY_LIKE) -> bool:
        """
        Checks whether a keypoint lies inside the image bounds.
        """

    @abstractmethod
    def get_parameters(self) -> DOUBLE_ARRAY:
        """
        Returns the projection parameters as a flat vector.
        """

    @abstractmethod
    def set_parameters(self, parameters: ARRAY_LIKE) -> None:
        """
        Overwrites the projection parameters from a flat vector.
        """

    @abstractmethod
    def update(self, delta: ARRAY_LIKE) -> None:
        """
        Applies an additive update to the projection parameters.
        """

    @property
    def state_vector(self) -> DOUBLE_ARRAY:
        """
        The projection parameters as a flat vector (an alias of :meth:`get_parameters`)
        """
        return self.get_parameters()

    def homogeneous_to_keypoint(self, point: ARRAY_LIKE, compute_jacobian: bool = False) -> KeypointProjection:
        """
        Projects a homogeneous camera frame point onto the image.

        The point is negated when :math:`w<0` and the first three components are projected with
        :meth:`euclidean_to_keypoint`.  The Jacobian is the euclidean Jacobian followed by a column of zeros and is
        negated along with the point.

        :param point: The homogeneous point in the camera frame as a length 4 array
        :param compute_jacobian: Whether to compute the 2x4 Jacobian of the keypoint with respect to the point
        :return: The keypoint, whether it is valid, the detailed status, and optionally the Jacobian
        """

        point, flipped = _normalize_homogeneous(point)

        projection = self.euclidean_to_keypoint(point[:3], compute_jacobian=compute_jacobian)

        if not compute_jacobian:
            return projection

        jacobian = np.zeros((2, 4))
        jacobian[:, :3] = -projection.jacobian if flipped else projection.jacobian

        return projection._replace(jacobian=jacobian)

    def keypoint_to_homogeneous(self, keypoint: ARRAY_LIKE, compute_jacobian: bool = False) -> PointBackProjection:
        """
        Back projects a keypoint to a homogeneous direction with :math:`w=0`.

        :param keypoint: The pixel location as a length 2 array
        :param compute_jacobian: Whether to compute the 4x2 Jacobian of the direction with respect to the keypoint
        :return: The direction, whether the keypoint is inside the image, and optionally the Jacobian
        """

        back_projection = self.keypoint_to_euclidean(keypoint, compute_jacobian=compute_jacobian)

        jacobian = None

        if compute_jacobian:
            jacobian = np.zeros((4, 2))
            jacobian[:3] = back_projection.jacobian

        return PointBackProjection(np.append(back_projection.point, 0.0), back_projection.valid, jacobian)

    def homogeneous_to_keypoint_intrinsics_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Computes the Jacobian of the keypoint with respect to the projection parameters for a homogeneous point.

        :param point: The homogeneous point in the camera frame as a length 4 array
        :return: The 2xN Jacobian with columns ordered as :meth:`get_parameters`
        """

        point, _ = _normalize_homogeneous(point)

        return self.euclidean_to_keypoint_intrinsics_jacobian(point[:3])

    def homogeneous_to_keypoint_distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Computes the Jacobian of the keypoint with respect to the distortion coefficients for a homogeneous point.

        :param point: The homogeneous point in the camera frame as a length 4 array
        :return: The 2xK Jacobian
        """

        point, _ = _normalize_homogeneous(point)

        return self.euclidean_to_keypoint_distortion_jacobian(point[:3])

    def is_euclidean_visible(self, point: ARRAY_LIKE) -> bool:
        """
        Checks whether a camera frame point is in front of the camera and projects inside the image.
        """
        return self.euclidean_to_keypoint(point).valid

    def is_homogeneous_visible(self, point: ARRAY_LIKE) -> bool:
        """
        Checks whether a homogeneous camera frame point is in front of the camera and projects inside the image.
        """
        return self.homogeneous_to_keypoint(point).valid

    def project_onto_image(self, points_in_camera_frame: ARRAY_LIKE) -> tuple[DOUBLE_ARRAY, np.ndarray]:
        """
        Projects a set of camera frame points onto the image.

        :param points_in_camera_frame: The points as a 3xn array
        :return: The 2xn keypoints and the length n boolean validity array
        """

        points = np.asarray(points_in_camera_frame, dtype=np.float64).reshape(3, -1)

        projections = [self.euclidean_to_keypoint(point) for point in points.T]

        keypoints = np.array([projection.keypoint for projection in projections]).reshape(-1, 2).T
        valid = np.array([projection.valid for projection in projections], dtype=bool)

        return keypoints, valid

    def pixels_to_unit(self, pixels: ARRAY_LIKE) -> tuple[DOUBLE_ARRAY, np.ndarray]:
        """
        Converts a set of keypoints into unit vectors in the camera frame.

        :param pixels: The keypoints as a 2xn array
        :return: The 3xn unit vectors and the length n boolean array of whether each keypoint was inside the image
        """

        pixels = np.asarray(pixels, dtype=np.float64).reshape(2, -1)

        back_projections = [self.keypoint_to_euclidean(pixel) for pixel in pixels.T]

        points = np.array([back_projection.point for back_projection in back_projections]).reshape(-1, 3).T
        valid = np.array([back_projection.valid for back_projection in back_projections], dtype=bool)

        return points / np.linalg.norm(points, axis=0, keepdims=True), valid

    def copy(self: ModelT) -> ModelT:
        """
        Returns a deep copy of this object, breaking all references with ``self``.

        :return: A copy of self that is a separate object
        """
        return copy.deepcopy(self)

    def to_elem(self, elem: etree._Element) -> etree._Element:
        """
        Stores this model in an :class:`lxml.etree.SubElement` object for storing in a pincal xml file

        This method operates by looping through the attributes in :attr:`important_attributes`, retrieving the value of
        these attributes in self, and then storing them as a sub-element to ``elem``.  If the attribute already exists
        as a sub-element to ``elem`` then it is overwritten.  The serialization version is stored in the ``version``
        attribute of ``elem``.

        The user generally will not use this method and instead will use the module level :func:`save` function.

        :param elem: The :class:`lxml.etree.SubElement` class to store this model in
        :return: The :class:`lxml.etree.SubElement` for this model
        """

        elem.set('version', str(self.SERIALIZATION_VERSION))

        for name in self.important_attributes:

            val = getattr(self, name)

            # see if this attribute already exists in the subElement
            node = elem.find(name)

            if node is None:  # if it doesn't, add it
                node = etree.SubElement(elem, name)

            node.text = repr(val)

        return elem

    @classmethod
    def from_elem(cls: Type[ModelT], elem: etree._Element) -> ModelT:
        """
        This class method is used to construct a new instance of `cls` from an :class:`etree._Element` object

        This method works by first creating a default initialized instance of the class.  It then loops through each
        attribute defined in the :attr:`important_attributes` list and searches the element for it.  If the element
        contains the attribute, then it is set in the instance.  If it does not, a warning is raised and the default is
        kept.

        .. note:: The user will generally not use this method and instead will use the module level :func:`load`
                  function to retrieve a model from a file

        :param elem: The element containing the attribute information for the instance to be created
        :return: An initialized instance of this class with the attributes set according to the `elem` object
        :raises ConfigurationError: if the element was written with a newer serialization version or contains values
                                    that are not numbers
        """

        try:
            version = int(elem.get('version', '0'))
        except ValueError as err:
            raise ConfigurationError(f'Invalid serialization version {elem.get("version")!r}') from err

        if version > cls.SERIALIZATION_VERSION:
            raise ConfigurationError(f'Unsupported serialization version {version} for {cls.__name__} '
                                     f'(newest supported is {cls.SERIALIZATION_VERSION})')

        inst = cls()

        for prop in inst.important_attributes:

            node = elem.find(prop)

            if node is None:  # if we couldn't find the attribute in the subElement raise a warning and move to the next
                warnings.warn('missing value for {0}'.format(prop))
                continue

            try:
                setattr(inst, prop, float(node.text))
            except (TypeError, ValueError) as err:
                raise ConfigurationError(f'The stored value for {prop!r} is not a number') from err

        return inst


def save(file: PATH, name: str, model: ProjectionModel, group: Optional[str] = None):
    """
    This function is used to save a projection model to a pincal xml file.

    The models are stored as plain text xml trees, where each property is a node of the tree.  The root element for
    the models is called `ProjectionModels`.  You can also optionally specify a `group` in order to be able to
    collect similar models together.

    The xml file stores all information necessary for recreating the model when it is loaded from a file.  This
    includes the module that defines the model, as well as the name of the class that the model was an instance of.
    When saving the model to file, this function first looks to see if a model of the same name and group already
    exists in the file.  If it does then that model is overwritten with the new values.  If it does not, then the
    current model is added to the file.

    .. warning::
        There is a security risk when loading XML files (exacerbated here by importing the module named in the file).
        Do not pass untrusted/unverified files to :func:`load`. The files themselves are simple text files that can
        easily be verified by inspecting them in a text editor beforehand.

    :param file:  The path of the file to store the model in
    :param name: The name to use to store the model (i.e. 'left_camera')
    :param model:  The instance of the model to store. Should be a subclass of :class:`ProjectionModel`
    :param group: An optional group to store the model into.
    """

    if os.path.isfile(file):
        # etree parse is technically a security risk but the user is warned to
        # verify files before loading them since they are easy to inspect
        tree = etree.parse(str(file))  # nosec

        root = tree.getroot()

    else:

        root = etree.Element('ProjectionModels')

        tree = etree.ElementTree(root)

    if group is not None:

        group_elem = root.find(group)

        if group_elem is None:
            group_elem = etree.SubElement(root, group)

    else:

        group_elem = root

    model_elem = group_elem.find(name)

    if model_elem is None:
        model_elem = etree.SubElement(group_elem, name)

    model_elem.set('module', type(model).__module__)
    model_elem.set('type', type(model).__name__)

    model.to_elem(model_elem)

    with open(file, 'wb') as out:

        out.write(etree.tostring(tree, pretty_print=True))


def load(file: PATH, name: str, group: Optional[str] = None) -> ProjectionModel:
    """
    This function is used to retrieve a projection model from a pincal xml file.

    This function will return the queried model if it exists, otherwise it raises a LookupError.

    If you saved your model to a specific group, you can optionally specify this group which may make the search
    faster.  If you have two models with the same name but different groups then you must specify group.

    .. warning::
        There is a security risk when loading XML files (exacerbated here by importing the module the model is defined
        in).  Do not pass untrusted/unverified files to this function.

    :param file: The path to the xml file to retrieve the models from.
    :param name: The name of the model to retrieve from the file
    :param group: The group that contains the model in the file
    :return: The model retrieved from the file
    :raises LookupError: when the model can't be found in the file
    :raises ConfigurationError: when the stored type is not a projection model or was stored with a newer version
    """

    # etree parse is technically a security risk but the user is warned to
    # verify files before loading them since they are easy to inspect
    tree = etree.parse(str(file))  # nosec

    root = tree.getroot()

    if group is not None:

        path = group + '/' + name

    else:

        path = './/' + name

    elem = root.find(path)

    if elem is None:
        raise LookupError('The specified projection model could not be found in the file')

    cls = getattr(import_module(elem.get('module')), elem.get('type'), None)

    if not (isinstance(cls, type) and issubclass(cls, ProjectionModel)):
        raise ConfigurationError(f'{elem.get("module")}.{elem.get("type")} is not a projection model')

    return cls.from_elem(elem)
