"""
Beam identification for DIS events.

Finds the incident lepton, incident hadron, exchanged boson and scattered
lepton in an event's particle list from status and PDG codes. The rules
live in BeamClassifier, which can be subclassed or reconfigured and is
passed to identify_beams.

Identifying the scattered hadron beam is not supported.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from diskin.analysis.particle import Particle

logger = logging.getLogger(__name__)


DEFAULT_LEPTON_PDG = 11
DEFAULT_HADRON_PDGS = (2212, 2112)
DEFAULT_BOSON_PDGS = (22, 23, 24, -24)
# PYTHIA documentation lines (KS=21) and their 201 equivalent
DEFAULT_INITIAL_STATUS = (21, 201)
DEFAULT_FINAL_STATUS = (1,)

SCATTERED_LEPTON_POLICIES = ("lineage", "energy")

# Status given to a boson built from the leptons rather than read from the event
SYNTHETIC_STATUS = 0


@dataclass
class BeamSummary:
    """
    The beam particles of one event.

    The boson is either an entry of the particle list or, when the list
    has none, a Particle built as l - l' that belongs to no event; in the
    latter case boson_is_synthetic is True.
    """
    incident_lepton: Optional[Particle] = None
    incident_hadron: Optional[Particle] = None
    boson: Optional[Particle] = None
    scattered_lepton: Optional[Particle] = None
    boson_is_synthetic: bool = False

    @property
    def found(self):
        return all(p is not None for p in self.as_list())

    def as_list(self):
        """[incident lepton, incident hadron, boson, scattered lepton]"""
        return [
            self.incident_lepton,
            self.incident_hadron,
            self.boson,
            self.scattered_lepton,
        ]


class BeamClassifier:
    """
    Rules deciding which particles play which beam role.

    Parameters
    ----------
    lepton_pdg : int
        PDG code of the lepton beam.
    hadron_pdgs : iterable of int
        PDG codes accepted for the hadron beam.
    boson_pdgs : iterable of int
        PDG codes accepted for an explicit exchanged boson.
    initial_status : iterable of int
        Status codes of beam / initial-state entries.
    final_status : iterable of int
        Status codes of final-state particles.
    scattered_lepton_policy : {"lineage", "energy"}
        "lineage" prefers final-state leptons whose ancestry leads back to
        the incident lepton and falls back to the most energetic one;
        "energy" always takes the most energetic one.
    """

    def __init__(self, lepton_pdg=DEFAULT_LEPTON_PDG, hadron_pdgs=DEFAULT_HADRON_PDGS,
                 boson_pdgs=DEFAULT_BOSON_PDGS, initial_status=DEFAULT_INITIAL_STATUS,
                 final_status=DEFAULT_FINAL_STATUS, scattered_lepton_policy="lineage"):
        if scattered_lepton_policy not in SCATTERED_LEPTON_POLICIES:
            raise ValueError(
                f"Unknown scattered lepton policy {scattered_lepton_policy!r}, "
                f"expected one of {SCATTERED_LEPTON_POLICIES}"
            )
        self.lepton_pdg = int(lepton_pdg)
        self.hadron_pdgs = frozenset(int(c) for c in hadron_pdgs) - {self.lepton_pdg}
        self.boson_pdgs = frozenset(int(c) for c in boson_pdgs)
        self.initial_status = frozenset(int(s) for s in initial_status)
        self.final_status = frozenset(int(s) for s in final_status)
        self.scattered_lepton_policy = scattered_lepton_policy

    @classmethod
    def from_config(cls, config):
        """
        Build a classifier from the `beams` section of the YAML config.
        Missing keys take the defaults.
        """
        config = config or {}
        return cls(
            lepton_pdg=config.get("lepton_pdg", DEFAULT_LEPTON_PDG),
            hadron_pdgs=config.get("hadron_pdgs", DEFAULT_HADRON_PDGS),
            boson_pdgs=config.get("boson_pdgs", DEFAULT_BOSON_PDGS),
            initial_status=config.get("initial_status", DEFAULT_INITIAL_STATUS),
            final_status=config.get("final_status", DEFAULT_FINAL_STATUS),
            scattered_lepton_policy=config.get("scattered_lepton_policy", "lineage"),
        )

    def skip(self, particle):
        """True for internal bookkeeping codes (|pdg| < 10) that are not particles."""
        return abs(particle.pdg) < 10

    def is_incident_lepton(self, particle):
        return particle.pdg == self.lepton_pdg and particle.status in self.initial_status

    def is_incident_hadron(self, particle):
        return particle.pdg in self.hadron_pdgs and particle.status in self.initial_status

    def is_boson(self, particle):
        return particle.pdg in self.boson_pdgs and particle.status not in self.final_status

    def is_hadron(self, particle):
        """
        True for meson and baryon codes. Quarks, leptons, gauge bosons,
        generator-internal codes (< 100), diquarks and nuclei are not hadrons.
        """
        code = abs(particle.pdg)
        if code < 100 or code >= 1_000_000_000:
            return False
        # Diquarks have no third quark digit (e.g. 2203)
        return (code // 10) % 10 != 0

    def is_scattered_lepton(self, particle):
        """Candidate check only; choose_scattered_lepton picks among candidates."""
        return particle.pdg == self.lepton_pdg and particle.status in self.final_status

    def descends_from(self, particle, ancestor):
        """
        True if `particle` was produced by `ancestor`, directly or through a
        chain of intermediate entries of the lepton species.
        """
        event = particle.event
        if event is None:
            return False
        current = particle
        # Bounded by the event size so a corrupt record cannot loop forever
        for _ in range(len(event)):
            parent = current.get_parent()
            if parent is None:
                return False
            if parent is ancestor:
                return True
            if parent.pdg != self.lepton_pdg:
                return False
            current = parent
        return False

    def choose_scattered_lepton(self, candidates, incident_lepton):
        if not candidates:
            return None
        if self.scattered_lepton_policy == "lineage" and incident_lepton is not None:
            traced = [c for c in candidates if self.descends_from(c, incident_lepton)]
            if traced:
                return max(traced, key=lambda c: c.E)
            logger.debug("No final-state lepton traced to the beam; using highest energy")
        return max(candidates, key=lambda c: c.E)


def identify_beams(event, classifier=None):
    """
    Identify the beam particles of `event`.

    The first matching entry wins for the incident lepton, incident hadron
    and explicit boson. If the event has no boson entry, one is built from
    q = l - l' when both leptons are found.

    Returns
    -------
    BeamSummary
        summary.found is True only if all four roles are filled.
    """
    if classifier is None:
        classifier = BeamClassifier()

    beams = BeamSummary()
    candidates = []
    for particle in event:
        if classifier.skip(particle):
            continue
        if beams.incident_lepton is None and classifier.is_incident_lepton(particle):
            beams.incident_lepton = particle
        elif beams.incident_hadron is None and classifier.is_incident_hadron(particle):
            beams.incident_hadron = particle
        elif beams.boson is None and classifier.is_boson(particle):
            beams.boson = particle
        elif classifier.is_scattered_lepton(particle):
            candidates.append(particle)

    beams.scattered_lepton = classifier.choose_scattered_lepton(
        candidates, beams.incident_lepton
    )

    if (
        beams.boson is None
        and beams.incident_lepton is not None
        and beams.scattered_lepton is not None
    ):
        q = beams.incident_lepton.get_4vector() - beams.scattered_lepton.get_4vector()
        q2 = q.dot(q)
        # Signed mass, negative for a spacelike boson
        mass = float(np.copysign(np.sqrt(abs(q2)), q2))
        beams.boson = Particle.from_4vector(q, status=SYNTHETIC_STATUS, pdg=22, m=mass)
        beams.boson_is_synthetic = True

    if not beams.found:
        logger.debug(
            "Beams not found in event %s: %s",
            getattr(event, "number", None),
            ["found" if p is not None else "missing" for p in beams.as_list()],
        )
    return beams


def identify_beam_particles(event, classifier=None):
    """
    Identify the beams and return them as a list.

    Returns
    -------
    (bool, list)
        Whether all beams were found, and [incident lepton, incident hadron,
        boson, scattered lepton] with None for anything not found.
    """
    beams = identify_beams(event, classifier)
    return beams.found, beams.as_list()
