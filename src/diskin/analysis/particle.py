"""
Particle and event records for Monte Carlo DIS events.

Particles are numbered [1, N] by the generator, while the event stores
them in a list indexed [0, N). `Event.mc_to_storage_index` is the only
place where one is converted into the other.
"""

import logging
import weakref

import numpy as np

from diskin.analysis.kinematics import (
    UNSET_ID,
    FrameStatus,
    compute_event_dependent,
    compute_intrinsic,
)
from diskin.analysis.physics import four_vector

logger = logging.getLogger(__name__)


class DiskinError(Exception):
    """Base class for errors raised by diskin."""


class ParticleFormatError(DiskinError, ValueError):
    """A particle record could not be parsed."""


class EventFormatError(DiskinError, ValueError):
    """An event file could not be parsed."""


# Order of the fields in a particle record
RECORD_FIELDS = (
    "index", "status", "pdg", "orig", "daughter", "ldaughter",
    "px", "py", "pz", "E", "m",
    "xv", "yv", "zv",
)
_N_INT_FIELDS = 6

_EVENT_DEPENDENT_FIELDS = ("z", "x_feynman", "theta_gamma", "pt_vs_gamma", "phi_prf")


class Particle:
    """
    One entry in an event's particle list.

    Intrinsic quantities (pt, p, theta, phi, rapidity, eta) are computed on
    construction and whenever the four-vector is replaced. Event-dependent
    quantities (z, x_feynman, theta_gamma, pt_vs_gamma, phi_prf) are None
    and parent_pdg is UNSET_ID until compute_event_dependent_quantities
    succeeds.
    """

    def __init__(self, index=-1, status=-1, pdg=UNSET_ID, orig=-1, daughter=-1,
                 ldaughter=-1, px=0., py=0., pz=0., E=0., m=0.,
                 xv=0., yv=0., zv=0.):
        self.index = int(index)
        self.status = int(status)
        self.pdg = int(pdg)
        self.orig = int(orig)
        self.daughter = int(daughter)
        self.ldaughter = int(ldaughter)
        self.px = float(px)
        self.py = float(py)
        self.pz = float(pz)
        self.E = float(E)
        self.m = float(m)
        self.xv = float(xv)
        self.yv = float(yv)
        self.zv = float(zv)

        self.z = None
        self.x_feynman = None
        self.theta_gamma = None
        self.pt_vs_gamma = None
        self.phi_prf = None
        self.parent_pdg = UNSET_ID

        self._event_ref = None
        self.compute_derived_quantities()

    @classmethod
    def from_line(cls, line):
        """
        Parse a whitespace-separated record with the fields of RECORD_FIELDS.

        Raises ParticleFormatError if the field count is wrong or a field
        is not a number.
        """
        tokens = line.split()
        if len(tokens) != len(RECORD_FIELDS):
            raise ParticleFormatError(
                f"Bad particle input (expected {len(RECORD_FIELDS)} fields, "
                f"got {len(tokens)}): {line.strip()}"
            )
        try:
            ints = [int(t) for t in tokens[:_N_INT_FIELDS]]
            floats = [float(t) for t in tokens[_N_INT_FIELDS:]]
        except ValueError as e:
            raise ParticleFormatError(f"Bad particle input: {line.strip()}") from e
        return cls(*ints, *floats)

    @classmethod
    def from_4vector(cls, v, **fields):
        """Build a particle from a four-vector plus any other record fields."""
        return cls(px=v.px, py=v.py, pz=v.pz, E=v.E, **fields)

    def format_record(self):
        """The record fields, tab-separated, in RECORD_FIELDS order."""
        return "\t".join(str(getattr(self, name)) for name in RECORD_FIELDS)

    def __repr__(self):
        return (
            f"Particle(index={self.index}, status={self.status}, pdg={self.pdg}, "
            f"orig={self.orig}, E={self.E})"
        )

    # Kinematics

    def compute_derived_quantities(self):
        # Quantities that depend only on the properties already read
        (self.pt, self.p, self.theta, self.phi,
         self.rapidity, self.eta) = compute_intrinsic(self.px, self.py, self.pz, self.E)

    def compute_event_dependent_quantities(self, event, beams):
        """
        Fill z, x_feynman, theta_gamma, pt_vs_gamma, phi_prf and parent_pdg.

        Never raises: on failure the fields keep their previous values and
        the reason is logged.

        Returns
        -------
        FrameStatus
        """
        result = compute_event_dependent(self, event, beams)
        if not result.ok:
            logger.warning(
                "Could not compute event-dependent quantities for particle %d: %s (%s)",
                self.index, result.status.value, result.message,
            )
            return result.status
        for name in _EVENT_DEPENDENT_FIELDS:
            setattr(self, name, getattr(result.values, name))
        self.parent_pdg = result.values.parent_pdg
        return result.status

    def get_4vector(self):
        return four_vector(self.px, self.py, self.pz, self.E)

    def set_4vector(self, v):
        self.E = float(v.E)
        self.px = float(v.px)
        self.py = float(v.py)
        self.pz = float(v.pz)
        self.compute_derived_quantities()

    def get_vertex(self):
        return np.array([self.xv, self.yv, self.zv])

    def set_vertex(self, v):
        self.xv, self.yv, self.zv = (float(c) for c in v)

    def get_4vector_in_hadron_boson_frame(self):
        """
        Rebuild the four-vector in the hadron rest frame with the boson along z.

        Uses pt_vs_gamma, theta_gamma, phi_prf and the mass. Returns None if
        those are not available, or if theta_gamma is 0 or pi (the momentum
        cannot be recovered from pt alone).
        """
        if self.pt_vs_gamma is None or self.theta_gamma is None or self.phi_prf is None:
            return None
        sin_theta = np.sin(self.theta_gamma)
        if sin_theta == 0.0:
            return None
        p = self.pt_vs_gamma / sin_theta
        return four_vector(
            self.pt_vs_gamma * np.cos(self.phi_prf),
            self.pt_vs_gamma * np.sin(self.phi_prf),
            p * np.cos(self.theta_gamma),
            np.sqrt(p ** 2 + self.m ** 2),
        )

    # Navigation

    @property
    def event(self):
        """The owning event, or None if detached or already destroyed."""
        if self._event_ref is None:
            return None
        return self._event_ref()

    def _attach(self, event):
        self._event_ref = weakref.ref(event)

    @property
    def n_children(self):
        if self.daughter < 1:
            return 0
        return max(0, self.ldaughter - self.daughter + 1)

    def get_parent(self):
        event = self.event
        if event is None:
            return None
        return event.resolve(self.orig)

    def get_child(self, offset):
        """
        The `offset`-th child (0-based), or None if there is no such child.
        """
        event = self.event
        if event is None:
            return None
        if self.daughter < 1 or not 0 <= offset < self.n_children:
            return None
        return event.resolve(self.daughter + offset)

    def children(self):
        for offset in range(self.n_children):
            child = self.get_child(offset)
            if child is not None:
                yield child

    def has_child(self, pdg):
        return any(child.pdg == pdg for child in self.children())


class Event:
    """
    An ordered list of particles plus the event-level W^2.

    Particles keep only a weak reference back to the event, so the event
    owns them and navigation stops working once it is gone.
    """

    def __init__(self, particles=(), w2=None, number=None):
        self._particles = []
        self.w2 = w2
        self.number = number
        for particle in particles:
            self.add_particle(particle)

    @classmethod
    def from_lines(cls, lines, w2=None, number=None):
        return cls((Particle.from_line(line) for line in lines), w2=w2, number=number)

    def add_particle(self, particle):
        particle._attach(self)
        self._particles.append(particle)

    def __len__(self):
        return len(self._particles)

    def __iter__(self):
        return iter(self._particles)

    def __getitem__(self, i):
        return self._particles[i]

    @property
    def n_tracks(self):
        return len(self._particles)

    def get_track(self, i):
        """Particle at storage index `i`, in [0, N)."""
        return self._particles[i]

    def mc_to_storage_index(self, mc_index):
        """
        Convert a generator index in [1, N] to a storage index in [0, N).

        Returns None for anything outside [1, N], including the 0 and -1
        used for "no parent" / "no daughter".
        """
        position = mc_index - 1
        if 0 <= position < len(self._particles):
            return position
        return None

    def resolve(self, mc_index):
        """Particle with generator index `mc_index`, or None."""
        position = self.mc_to_storage_index(mc_index)
        if position is None:
            return None
        return self._particles[position]

    def resolve_w2(self, beams=None):
        """
        W^2 of the hadronic system.

        The externally supplied value wins; otherwise (P + q)^2 from the
        incident hadron and boson in `beams`, or None.
        """
        if self.w2 is not None:
            return self.w2
        if beams is None or beams.incident_hadron is None or beams.boson is None:
            return None
        total = beams.incident_hadron.get_4vector() + beams.boson.get_4vector()
        return float(total.dot(total))

    def compute_event_dependent_quantities(self, beams):
        """
        Run the event-dependent calculation for every particle.

        Returns the number of particles for which it succeeded.
        """
        n_ok = 0
        for particle in self._particles:
            if particle.compute_event_dependent_quantities(self, beams) is FrameStatus.OK:
                n_ok += 1
        return n_ok
