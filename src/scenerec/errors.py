"""
Exceptions raised by Scene Rec.
"""


class SceneRecError(Exception):
    """Base class for all Scene Rec errors."""


class InputError(SceneRecError):
    """Scene input is malformed or references unknown features."""


class RefinementError(SceneRecError):
    """The global scale system of a subgraph could not be solved."""

    def __init__(self, message, subgraph_id=None):
        super().__init__(message)
        self.subgraph_id = subgraph_id
