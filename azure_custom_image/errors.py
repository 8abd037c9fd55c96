"""Errors raised by the sample before anything reaches Azure."""


class DiskLayoutError(ValueError):
    """A requested disk layout cannot be satisfied"""


class DuplicateLunError(DiskLayoutError):
    """Two data disks were requested on the same LUN"""

    def __init__(self, lun: int):
        super().__init__(f"Data disk LUN {lun} is used more than once")
        self.lun = lun


class InvalidTransitionError(RuntimeError):
    """A resource was asked to move to a state it cannot reach"""

    def __init__(self, resource: str, current, target):
        super().__init__(
            f"Resource {resource} cannot move from {current.value} to {target.value}"
        )
        self.resource = resource
        self.current = current
        self.target = target
