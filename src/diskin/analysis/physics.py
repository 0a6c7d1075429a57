"""
Four-vector and Lorentz-frame utilities for DIS kinematics.

Four-vectors are `vector` momentum objects built from (px, py, pz, E).
Frame changes are represented by LorentzTransform, a 4x4 matrix acting
on column vectors ordered (px, py, pz, E), so boosts and rotations
compose by plain matrix multiplication.
"""

import numpy as np
import vector


TWO_PI = 2.0 * np.pi


def four_vector(px, py, pz, E):
    """
    Construct a momentum four-vector from Cartesian components.

    Parameters
    ----------
    px, py, pz : float
        Momentum components [GeV].
    E : float
        Energy [GeV].

    Returns
    -------
    vector.MomentumObject4D
    """
    return vector.obj(px=float(px), py=float(py), pz=float(pz), E=float(E))


def to_array(v):
    """Return the components of a four-vector as a NumPy array (px, py, pz, E)."""
    return np.array([v.px, v.py, v.pz, v.E], dtype=float)


def from_array(components):
    """Inverse of `to_array`."""
    px, py, pz, E = components
    return four_vector(px, py, pz, E)


def phi_0_2pi(phi):
    """
    Map an azimuthal angle into [0, 2*pi).
    """
    phi = float(np.mod(phi, TWO_PI))
    # np.mod can round tiny negative angles up to exactly 2*pi
    if phi >= TWO_PI:
        phi = 0.0
    return phi


def boost_matrix(bx, by, bz):
    """
    Active Lorentz boost with velocity (bx, by, bz), in units of c.

    A particle at rest acquires the velocity (bx, by, bz) when the
    returned matrix is applied to it. A zero velocity gives the identity.
    """
    beta = np.array([bx, by, bz], dtype=float)
    b2 = beta @ beta
    matrix = np.identity(4)
    if b2 <= 0.0:
        return matrix
    gamma = 1.0 / np.sqrt(1.0 - b2)
    matrix[:3, :3] += (gamma - 1.0) * np.outer(beta, beta) / b2
    matrix[:3, 3] = gamma * beta
    matrix[3, :3] = gamma * beta
    matrix[3, 3] = gamma
    return matrix


def _orthogonal(v):
    # Any vector orthogonal to v, picking the components to avoid cancellation
    x, y, z = v
    ax, ay, az = abs(x), abs(y), abs(z)
    if ax < ay:
        return np.array([0.0, z, -y]) if ax < az else np.array([y, -x, 0.0])
    return np.array([-z, 0.0, x]) if ay < az else np.array([y, -x, 0.0])


def rotation_with_z_axis(axis, zx_plane=(1.0, 0.0, 0.0)):
    """
    Rotation matrix whose new z axis points along `axis`.

    The new x axis lies in the plane spanned by `axis` and `zx_plane`.
    The columns of the returned matrix are the new x, y and z axes
    expressed in the old frame, so the matrix *actively* rotates the
    unit z vector onto `axis`. Its transpose (= inverse) re-expresses a
    vector in the new frame, i.e. it rotates `axis` onto +z.

    A zero `axis` gives the identity.
    """
    z_axis = np.asarray(axis, dtype=float)
    zmag = np.linalg.norm(z_axis)
    if zmag == 0.0:
        return np.identity(3)
    z_axis = z_axis / zmag

    x_axis = np.asarray(zx_plane, dtype=float)
    xmag = np.linalg.norm(x_axis)
    if xmag < 1e-6:
        x_axis = _orthogonal(z_axis)
        xmag = 1.0

    y_axis = np.cross(z_axis, x_axis) / xmag
    ymag = np.linalg.norm(y_axis)
    if ymag < 1e-6:
        y_axis = _orthogonal(z_axis)
        y_axis = y_axis / np.linalg.norm(y_axis)
    else:
        y_axis = y_axis / ymag
    x_axis = np.cross(y_axis, z_axis)

    return np.column_stack([x_axis, y_axis, z_axis])


class LorentzTransform:
    """
    A Lorentz transformation acting on (px, py, pz, E) four-vectors.

    `a @ b` is the transform that applies `b` first and then `a`.
    """

    def __init__(self, matrix=None):
        if matrix is None:
            matrix = np.identity(4)
        self.matrix = np.asarray(matrix, dtype=float)

    @classmethod
    def boost(cls, bx, by, bz):
        return cls(boost_matrix(bx, by, bz))

    @classmethod
    def rotation(cls, rotation3):
        matrix = np.identity(4)
        matrix[:3, :3] = rotation3
        return cls(matrix)

    def __matmul__(self, other):
        return LorentzTransform(self.matrix @ other.matrix)

    def inverse(self):
        return LorentzTransform(np.linalg.inv(self.matrix))

    def apply(self, v):
        """Return a new four-vector, `v` expressed after this transform."""
        return from_array(self.matrix @ to_array(v))

    __call__ = apply

    def __repr__(self):
        return f"LorentzTransform({self.matrix!r})"


def build_boost(rest, z_axis=None):
    """
    Build the transform into the rest frame of the four-vector `rest`.

    If `z_axis` is given, the frame is also rotated so that the spatial
    direction of `z_axis` AFTER boosting defines the positive z axis.
    e.g. the proton rest frame with the virtual photon along +z is
    build_boost(proton_lab, photon_lab).

    A zero or degenerate `z_axis` is the caller's problem: no rotation
    is applied when the boosted hint has no spatial component.
    """
    beta = rest.to_beta3()
    to_rest = LorentzTransform.boost(-beta.x, -beta.y, -beta.z)
    if z_axis is not None:
        boosted = to_rest.apply(z_axis)
        axes = rotation_with_z_axis([boosted.px, boosted.py, boosted.pz])
        # Rotating the frame is the inverse of rotating the axes
        to_rest = LorentzTransform.rotation(axes.T) @ to_rest
    return to_rest


def _angle(a, b):
    # Angle between two 3-vectors in [0, pi]; 0 if either is null
    norm2 = (a @ a) * (b @ b)
    if norm2 <= 0.0:
        return 0.0
    cosine = np.clip((a @ b) / np.sqrt(norm2), -1.0, 1.0)
    return float(np.arccos(cosine))


def hermes_phi_h(hadron, lepton, boson):
    """
    Azimuthal angle of a hadron around the virtual photon (HERMES convention).

    phi_h is the angle between the lepton scattering plane (q x l) and the
    hadron production plane (q x h), signed by (q x l) . h and returned in
    [0, 2*pi). All three four-vectors must be in the same frame, typically
    the hadron rest frame. Returns 0 when either plane is undefined.
    """
    q = to_array(boson)[:3]
    l = to_array(lepton)[:3]
    h = to_array(hadron)[:3]
    q_cross_l = np.cross(q, l)
    q_cross_h = np.cross(q, h)
    phi = _angle(q_cross_l, q_cross_h)
    if q_cross_l @ h < 0.0:
        phi = TWO_PI - phi
    return phi_0_2pi(phi)


def invariant_mass(E, px, py, pz):
    """
    Compute invariant mass m = sqrt(E^2 - |p|^2) with c = 1.

    Works on scalars and NumPy arrays; small negative m^2 from numerical
    precision are clipped to zero.
    """
    m2 = np.asarray(E) ** 2 - (np.asarray(px) ** 2 + np.asarray(py) ** 2 + np.asarray(pz) ** 2)
    m2 = np.where(m2 < 0, 0, m2)
    return np.sqrt(m2)
