# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


"""
This module provides the exceptions raised by pincal.
"""


class ConfigurationError(ValueError):
    """
    Raised when a model cannot be constructed from a configuration source or a persisted file.

    This covers missing/ill-typed keys in a configuration mapping, unknown distortion types, and persisted models
    written with a newer serialization version than the one supported by this version of pincal.
    """
