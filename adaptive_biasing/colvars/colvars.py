import torch
import numpy as np

from typing import Union, Tuple, List
from ..interface.sampling_data import MDInterface, CVData


class CV:
    """Cartesian collective variables of the toy engines, gradients by torch autograd

    Args:
        the_mol: MD object with `get_snapshot()`
        requires_grad: if True, partial derivatives of CVs with respect
                       to the coordinates are computed and saved to self.gradient
    """

    def __init__(self, the_mol: MDInterface, requires_grad: bool = False):
        self.the_mol = the_mol
        self.requires_grad = requires_grad
        self.coords = None
        self.gradient = None
        self.cv = None

    def update_coords(self):
        self.coords = torch.from_numpy(
            np.array(self.the_mol.get_snapshot().coords, dtype=float).ravel()
        )
        self.coords.requires_grad = self.requires_grad

    def _get_gradient(self):
        if self.requires_grad:
            self.gradient = torch.autograd.grad(self.cv, self.coords)[0]
            self.gradient = self.gradient.detach().numpy()

    def _axis(self, dim: int) -> float:
        self.update_coords()
        self.cv = self.coords[dim]
        self._get_gradient()
        return float(self.cv)

    def x(self) -> float:
        """use x axis as cv for numerical examples"""
        return self._axis(0)

    def y(self) -> float:
        """use y axis as cv for numerical examples"""
        return self._axis(1)

    def get_cv(self, cv: str) -> Union[float, Tuple[float, np.ndarray]]:
        """get state of collective variable

        Args:
            cv: type of CV, `x` or `y`

        Returns:
           xi: value of collective variable
           gradient: gradient of collective variable, only if `self.requires_grad`
        """
        if cv.lower() == "x":
            xi = self.x()
        elif cv.lower() == "y":
            xi = self.y()
        else:
            raise ValueError(f" >>> Fatal Error: Unknown collective variable `{cv}`")

        if self.requires_grad:
            return xi, self.gradient
        return xi

    def get_cvs(self, cv_def: List[str]) -> List[CVData]:
        """evaluate CVs for the ABF hooks

        Args:
            cv_def: one CV type per dimension, e.g. ["x", "y"]

        Returns:
            cvs: value and gradient of each CV
        """
        requires_grad = self.requires_grad
        self.requires_grad = True
        cvs = []
        for cv in cv_def:
            xi, grad_xi = self.get_cv(cv)
            cvs.append(CVData(xi, np.copy(grad_xi)))
        self.requires_grad = requires_grad
        return cvs
