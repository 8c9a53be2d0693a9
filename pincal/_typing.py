# Copyright 2021 United States Government as represented by the Administrator of the National Aeronautics and Space
# Administration.  No copyright is claimed in the United States under Title 17, U.S. Code. All Other Rights Reserved.


from typing import Union, Any, Mapping
from pathlib import Path

import numpy as np
import numpy.typing as npt

DOUBLE_ARRAY = npt.NDArray[np.float64]
ARRAY_LIKE = npt.ArrayLike

PATH = Union[Path, str]

NONEARRAY = Union[npt.NDArray, None]

CONFIG = Mapping[str, Any]
"""
A nested key/value configuration source (for instance a parsed yaml/json document)
"""
