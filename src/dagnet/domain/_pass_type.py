"""
Pass descriptors.

Every forward and backward traversal is tagged with the kind of pass it
belongs to. Layers consult the tag to special-case behaviour; most notably,
weight updates drop the momentum term during gradient verification so that
the finite-difference comparison sees a clean gradient.
"""

from enum import Enum


class PassType(Enum):
    """
    Enumeration of pass kinds.

    Attributes
    ----------
    TRAIN : PassType
        Regular training pass (forward, backward and update).
    TEST : PassType
        Evaluation pass; typically forward only.
    GRADIENT_CHECK : PassType
        Gradient-verification pass driven by the gradient checker.
    """

    TRAIN = "train"
    TEST = "test"
    GRADIENT_CHECK = "gc"

    @property
    def is_gradient_check(self) -> bool:
        """
        Return whether this pass is a gradient-verification pass.

        Returns
        -------
        bool
            True for ``PassType.GRADIENT_CHECK``.
        """
        return self is PassType.GRADIENT_CHECK
