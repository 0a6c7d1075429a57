"""
Derived kinematic quantities for particles in DIS events.

Two families of quantities are computed here:

* intrinsic quantities (pt, p, theta, phi, rapidity, eta), which depend
  only on a particle's own four-momentum;
* event-dependent quantities (z, Feynman-x, angles and pt with respect
  to the virtual photon, parent PDG code), which need the event's
  identified beams.

Failures in the event-dependent calculation are reported through
`FrameStatus` rather than raised, so a caller can keep processing the
remaining particles of an event.
"""

from collections import namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from diskin.analysis.physics import (
    build_boost,
    hermes_phi_h,
    invariant_mass,
    phi_0_2pi,
)


# Value given to rapidity and pseudorapidity when the log argument is
# zero, negative or infinite.
RAPIDITY_SENTINEL = -19.0

# PDG code meaning "not set".
UNSET_ID = -(2 ** 31)


IntrinsicKinematics = namedtuple(
    "IntrinsicKinematics", ["pt", "p", "theta", "phi", "rapidity", "eta"]
)


def compute_intrinsic(px, py, pz, E):
    """
    Quantities that depend only on a particle's own four-momentum.

    Parameters
    ----------
    px, py, pz, E : float
        Four-momentum components [GeV].

    Returns
    -------
    IntrinsicKinematics
        pt, p [GeV], theta in [0, pi], phi in [0, 2*pi), rapidity and
        pseudorapidity. Rapidity and pseudorapidity are both set to
        RAPIDITY_SENTINEL whenever either log argument is ill-defined.
    """
    pt = float(np.sqrt(px ** 2 + py ** 2))
    p = float(np.sqrt(pt ** 2 + pz ** 2))

    e_plus_pz = E + pz
    e_minus_pz = E - pz
    p_plus_pz = p + pz
    p_minus_pz = p - pz
    if e_minus_pz <= 0.0 or p_minus_pz == 0.0 or p_plus_pz == 0.0 or e_plus_pz <= 0.0:
        rapidity = RAPIDITY_SENTINEL
        eta = RAPIDITY_SENTINEL
    else:
        rapidity = float(0.5 * np.log(e_plus_pz / e_minus_pz))
        eta = float(0.5 * np.log(p_plus_pz / p_minus_pz))

    theta = float(np.arctan2(pt, pz))
    phi = phi_0_2pi(np.arctan2(py, px))
    return IntrinsicKinematics(pt, p, theta, phi, rapidity, eta)


class FrameStatus(Enum):
    """Outcome of an event-dependent calculation."""
    OK = "ok"
    MISSING_BEAM = "missing_beam"
    DIVISION_BY_ZERO = "division_by_zero"


@dataclass
class EventDependentKinematics:
    z: float
    x_feynman: float
    theta_gamma: float
    pt_vs_gamma: float
    phi_prf: float
    parent_pdg: int = UNSET_ID


@dataclass
class FrameComputation:
    status: FrameStatus
    values: Optional[EventDependentKinematics] = None
    message: str = ""

    @property
    def ok(self):
        return self.status is FrameStatus.OK


def bjorken_z(hadron_beam, boson, particle):
    """
    z = (P.p) / (P.q) from Lorentz-invariant dot products.

    Returns None if P.q vanishes.
    """
    denominator = hadron_beam.dot(boson)
    if denominator == 0.0:
        return None
    return float(hadron_beam.dot(particle) / denominator)


def _is_timelike(v):
    return v.E > 0.0 and v.dot(v) > 0.0


def compute_event_dependent(particle, event, beams):
    """
    Quantities of `particle` that need the event's identified beams.

    Parameters
    ----------
    particle : diskin.analysis.particle.Particle
    event : diskin.analysis.particle.Event
        Provides the parent lookup and W^2.
    beams : diskin.analysis.beams.BeamSummary
        Must carry the incident hadron, the incident lepton and the boson.

    Returns
    -------
    FrameComputation
        status OK with the computed values, MISSING_BEAM when a required
        beam is absent, DIVISION_BY_ZERO when P.q or W^2 vanish.
    """
    if beams is None:
        return FrameComputation(FrameStatus.MISSING_BEAM, message="no beams")
    missing = [
        name
        for name in ("incident_hadron", "incident_lepton", "boson")
        if getattr(beams, name) is None
    ]
    if missing:
        return FrameComputation(
            FrameStatus.MISSING_BEAM, message="missing " + ", ".join(missing)
        )

    hadron = beams.incident_hadron.get_4vector()
    lepton = beams.incident_lepton.get_4vector()
    boson = beams.boson.get_4vector()
    track = particle.get_4vector()

    z = bjorken_z(hadron, boson, track)
    if z is None:
        return FrameComputation(FrameStatus.DIVISION_BY_ZERO, message="P.q = 0")
    # Both rest frames below need a massive, positive-energy system
    cm = boson + hadron
    if not (_is_timelike(hadron) and _is_timelike(cm)):
        return FrameComputation(
            FrameStatus.DIVISION_BY_ZERO, message="hadron or boson-hadron system has no rest frame"
        )

    # Hadron rest frame with the virtual photon along +z
    to_hadron_rest = build_boost(hadron, boson)
    track_prf = to_hadron_rest.apply(track)
    theta_gamma = float(track_prf.theta)
    pt_vs_gamma = float(track_prf.pt)
    phi_prf = hermes_phi_h(
        track_prf, to_hadron_rest.apply(lepton), to_hadron_rest.apply(boson)
    )

    # Feynman x = 2 pz / W in the boson-hadron centre-of-mass frame
    w2 = event.resolve_w2(beams)
    if w2 is None or not w2 > 0.0:
        return FrameComputation(FrameStatus.DIVISION_BY_ZERO, message=f"W2 = {w2}")
    to_cm = build_boost(cm, boson)
    x_feynman = float(2.0 * to_cm.apply(track).pz / np.sqrt(w2))

    parent = event.resolve(particle.orig)
    parent_pdg = parent.pdg if parent is not None else UNSET_ID

    values = EventDependentKinematics(
        z=z,
        x_feynman=x_feynman,
        theta_gamma=theta_gamma,
        pt_vs_gamma=pt_vs_gamma,
        phi_prf=phi_prf,
        parent_pdg=parent_pdg,
    )
    return FrameComputation(FrameStatus.OK, values)


@dataclass
class LeptonKinematics:
    """Inclusive DIS variables from the lepton beams."""
    q2: float
    nu: float
    x: float
    y: float
    w2: float


def compute_lepton_kinematics(beams):
    """
    Q^2, nu, x, y and W^2 from the incident and scattered leptons.

    Uses q = l - l' and the incident hadron P:
      Q^2 = -q^2, nu = P.q / M, x = Q^2 / (2 P.q), y = P.q / P.l,
      W^2 = (P + q)^2.

    Returns None if a beam is missing or P.q / P.l vanish.
    """
    if (
        beams is None
        or beams.incident_lepton is None
        or beams.incident_hadron is None
        or beams.scattered_lepton is None
    ):
        return None

    lepton = beams.incident_lepton.get_4vector()
    hadron = beams.incident_hadron.get_4vector()
    q = lepton - beams.scattered_lepton.get_4vector()

    p_dot_q = hadron.dot(q)
    p_dot_l = hadron.dot(lepton)
    mass = float(invariant_mass(hadron.E, hadron.px, hadron.py, hadron.pz))
    if p_dot_q == 0.0 or p_dot_l == 0.0 or mass == 0.0:
        return None

    q2 = float(-q.dot(q))
    return LeptonKinematics(
        q2=q2,
        nu=float(p_dot_q / mass),
        x=float(q2 / (2.0 * p_dot_q)),
        y=float(p_dot_q / p_dot_l),
        w2=float((hadron + q).dot(hadron + q)),
    )
