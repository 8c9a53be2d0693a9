# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


r"""
This module provides the abstract base class for the lens distortion strategies that can be plugged into a
:class:`.PinholeProjection`.

A distortion strategy maps an undistorted point on the normalized image plane (unitless, the camera frame point divided
by its depth) to a distorted point on the same plane, and back.  The projection model then scales/offsets the distorted
point into pixels using the intrinsics.

Use
___

To implement a new distortion model, subclass :class:`Distortion`, list the names of the coefficients in
:attr:`~Distortion.parameter_names` (these are used for the flat :attr:`~Distortion.parameters` vector, for equality,
and for persistence), and implement

=============================================== ========================================================================
Method                                          Use
=============================================== ========================================================================
:meth:`~Distortion.distort`                     apply the distortion to a normalized image plane point
:meth:`~Distortion.distortion_jacobian`         the 2x2 Jacobian of the distorted point with respect to the undistorted
                                                point
:meth:`~Distortion.parameter_jacobian`          the 2xK Jacobian of the distorted point with respect to the K
                                                distortion coefficients
:meth:`~Distortion.get_test_distortion`         a class method returning a representative non-trivial instance
=============================================== ========================================================================

The inverse mapping (:meth:`~Distortion.undistort`) defaults to a Newton iteration on :meth:`~Distortion.distort` which
can be overridden when a closed form exists.
"""

import copy

from abc import ABCMeta, abstractmethod

import warnings

from typing import Tuple, Type, TypeVar

import numpy as np

# apparently lxml has security vulnerabilities but adding warning to documentation to avoid
# loading unverified files
import lxml.etree as etree  # nosec

from pincal._typing import ARRAY_LIKE, DOUBLE_ARRAY, CONFIG
from pincal.exceptions import ConfigurationError


DistortionT = TypeVar("DistortionT", bound="Distortion")


class Distortion(metaclass=ABCMeta):
    """
    This is the abstract base class for all distortion strategies in pincal.

    Instances are small mutable value objects owned by a projection model.  Two instances are equal when they are the
    same type and every coefficient is bitwise identical (see :meth:`is_binary_equal`).

    .. note:: Because this is an ABC, you cannot create an instance of Distortion (it will raise a ``TypeError``)
    """

    parameter_names: Tuple[str, ...] = ()
    """
    The names of the distortion coefficients in the order they appear in :attr:`parameters`
    """

    max_iterations: int = 20
    """
    The maximum number of Newton steps taken by :meth:`undistort`
    """

    convergence_tolerance: float = 1e-15
    """
    The residual norm below which :meth:`undistort` is considered converged
    """

    def __eq__(self, other) -> bool:
        if not isinstance(other, Distortion):
            return NotImplemented

        return self.is_binary_equal(other)

    def __repr__(self) -> str:
        coefficients = ', '.join(f'{name}={getattr(self, name)!r}' for name in self.parameter_names)
        return f'{type(self).__name__}({coefficients})'

    @property
    def minimal_dimensions(self) -> int:
        """
        The number of distortion coefficients (the number of columns of :meth:`parameter_jacobian`)
        """
        return len(self.parameter_names)

    @property
    def parameters(self) -> DOUBLE_ARRAY:
        """
        The distortion coefficients as a flat vector in the order given by :attr:`parameter_names`.
        """
        return np.array([getattr(self, name) for name in self.parameter_names], dtype=np.float64)

    @parameters.setter
    def parameters(self, val: ARRAY_LIKE):
        val = np.asarray(val, dtype=np.float64).ravel()

        if val.size != self.minimal_dimensions:
            raise ValueError(f'{type(self).__name__} expects {self.minimal_dimensions} parameters, got {val.size}')

        for name, value in zip(self.parameter_names, val):
            setattr(self, name, float(value))

    def update(self, delta: ARRAY_LIKE) -> None:
        """
        Applies an additive update to the distortion coefficients.

        :param delta: the update to apply, in the order of :attr:`parameter_names`
        """
        self.parameters = self.parameters + np.asarray(delta, dtype=np.float64).ravel()

    def clear(self) -> None:
        """
        Resets the coefficients to the values that make this distortion the identity mapping.
        """
        self.parameters = np.zeros(self.minimal_dimensions)

    def is_binary_equal(self, other: 'Distortion') -> bool:
        """
        Checks for exact equality of the type and of every coefficient.

        :param other: The distortion to compare to
        :return: ``True`` if the two distortions are identical
        """
        return type(self) is type(other) and np.array_equal(self.parameters, other.parameters)

    def copy(self: DistortionT) -> DistortionT:
        """
        Returns a copy of this distortion that does not share any state with ``self``.
        """
        return copy.deepcopy(self)

    @abstractmethod
    def distort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        """
        Applies the distortion to a normalized image plane point.

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The distorted normalized image plane point as a length 2 array
        """

    @abstractmethod
    def distortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}_d/\partial\mathbf{x}` at an undistorted normalized image plane point.

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2x2 Jacobian matrix
        """

    @abstractmethod
    def parameter_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes the Jacobian of the distorted point with respect to the distortion coefficients.

        :param point: The undistorted normalized image plane point as a length 2 array
        :return: The 2xK Jacobian matrix with columns ordered as :attr:`parameter_names`
        """

    def undistort(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Removes the distortion from a distorted normalized image plane point.

        This is done iteratively with Newton's method

        .. math::
            \mathbf{x}_{n} = \mathbf{x}_{p} + \mathbf{J}^{-1}(\mathbf{x}_{p})\left(\mathbf{x}_d - d(\mathbf{x}_p)\right)

        starting from the distorted point itself, where :math:`d()` is :meth:`distort` and :math:`\mathbf{J}` is
        :meth:`distortion_jacobian`.  The iteration stops once the residual norm is below
        :attr:`convergence_tolerance` or after :attr:`max_iterations` steps.

        :param point: The distorted normalized image plane point as a length 2 array
        :return: The undistorted normalized image plane point as a length 2 array
        """

        distorted = np.array(point, dtype=np.float64).ravel()

        guess = distorted.copy()

        for _ in range(self.max_iterations):

            residual = distorted - self.distort(guess)

            # check for convergence
            if np.linalg.norm(residual) <= self.convergence_tolerance:
                break

            try:
                guess += np.linalg.solve(self.distortion_jacobian(guess), residual)
            except np.linalg.LinAlgError:
                # the mapping folds over at this point so no further progress is possible
                break

        return guess

    def undistortion_jacobian(self, point: ARRAY_LIKE) -> DOUBLE_ARRAY:
        r"""
        Computes :math:`\partial\mathbf{x}/\partial\mathbf{x}_d` at a distorted normalized image plane point.

        This is the inverse of :meth:`distortion_jacobian` evaluated at the undistorted point.

        :param point: The distorted normalized image plane point as a length 2 array
        :return: The 2x2 Jacobian matrix
        """
        return np.linalg.inv(self.distortion_jacobian(self.undistort(point)))

    @classmethod
    @abstractmethod
    def get_test_distortion(cls: Type[DistortionT]) -> DistortionT:
        """
        Returns a representative instance with non-trivial coefficients for testing.
        """

    @classmethod
    def from_config(cls: Type[DistortionT], config: CONFIG) -> DistortionT:
        """
        Builds an instance of this class from a key/value configuration source.

        Every coefficient listed in :attr:`parameter_names` must be present.

        :param config: The mapping containing the coefficients
        :return: The configured distortion
        :raises ConfigurationError: if a coefficient is missing or cannot be converted to a float
        """

        inst = cls()

        for name in cls.parameter_names:
            if name not in config:
                raise ConfigurationError(f'Missing distortion coefficient {name!r} for {cls.__name__}')
            try:
                setattr(inst, name, float(config[name]))
            except (TypeError, ValueError) as err:
                raise ConfigurationError(f'Distortion coefficient {name!r} must be a number') from err

        return inst

    def to_elem(self, elem: etree._Element) -> etree._Element:
        """
        Stores this distortion in an :class:`lxml.etree.SubElement`.

        The class is recorded in the ``module`` and ``type`` attributes of ``elem`` and each coefficient is stored as a
        sub-element named after it.  Existing sub-elements are overwritten.

        :param elem: The element to store the distortion in
        :return: The element for this distortion
        """

        elem.set('module', type(self).__module__)
        elem.set('type', type(self).__name__)

        for name in self.parameter_names:

            node = elem.find(name)

            if node is None:
                node = etree.SubElement(elem, name)

            node.text = repr(float(getattr(self, name)))

        return elem

    @classmethod
    def from_elem(cls, elem: etree._Element) -> 'Distortion':
        """
        Builds a distortion from an element written by :meth:`to_elem`.

        When called on :class:`Distortion` itself the concrete class is looked up from the ``type`` attribute of the
        element.  Missing coefficients raise a warning and keep their neutral value.

        :param elem: The element containing the distortion
        :return: The distortion stored in the element
        :raises ConfigurationError: if the stored type is not a known distortion
        """

        if cls is Distortion:
            from pincal.distortion import DistortionType

            try:
                cls = DistortionType.from_class_name(elem.get('type', '')).distortion_class
            except ValueError as err:
                raise ConfigurationError(f'Unknown distortion type {elem.get("type")!r}') from err

        inst = cls()

        for name in cls.parameter_names:

            node = elem.find(name)

            if node is None:
                warnings.warn('missing value for {0}'.format(name))
                continue

            setattr(inst, name, float(node.text))

        return inst
