import sys
import os

# Absolute path to project root
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_PATH = os.path.join(PROJECT_ROOT, "src")

# Prepend src so the checkout is importable without installing
sys.path.insert(0, SRC_PATH)

import numpy as np
import pytest

from diskin.analysis.particle import Event, Particle


PROTON_MASS = 0.938272
ELECTRON_MASS = 0.000511
PION_MASS = 0.13957


def _energy(px, py, pz, m):
    return float(np.sqrt(px**2 + py**2 + pz**2 + m**2))


def dis_particles(with_boson=True):
    """
    A minimal e p -> e' pi X event, numbered like a PYTHIA record.

    1 incident electron, 2 incident proton, 3 virtual photon (optional),
    then the scattered electron and a final-state pion.
    """
    e_out_E = float(np.sqrt(68.0))
    particles = [
        Particle(1, 21, 11, 0, 3, 4, 0.0, 0.0, -10.0, 10.0, ELECTRON_MASS),
        Particle(2, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0,
                 _energy(0.0, 0.0, 100.0, PROTON_MASS), PROTON_MASS),
    ]
    if with_boson:
        particles.append(
            Particle(3, 21, 22, 1, 0, 0, -2.0, 0.0, -2.0, 10.0 - e_out_E, -2.219)
        )
    n = len(particles)
    particles.append(Particle(n + 1, 1, 11, 1, 0, 0, 2.0, 0.0, -8.0, e_out_E, ELECTRON_MASS))
    particles.append(
        Particle(n + 2, 1, 211, 2, 0, 0, -1.0, 0.5, 20.0,
                 _energy(-1.0, 0.5, 20.0, PION_MASS), PION_MASS)
    )
    return particles


@pytest.fixture
def dis_event():
    return Event(dis_particles(with_boson=True), number=1)


@pytest.fixture
def dis_event_no_boson():
    return Event(dis_particles(with_boson=False), number=2)


@pytest.fixture
def dis_event_file(tmp_path):
    """Two copies of the DIS event in the ASCII event file layout, no W^2 column."""
    lines = [" PYTHIA EVENT FILE\n", " ============================================\n"]
    for number in (1, 2):
        lines.append(f" 0 {number} 1 99\n")
        lines.append(" ============================================\n")
        lines.extend(p.format_record() + "\n" for p in dis_particles(with_boson=True))
        lines.append(" =============== Event finished ===============\n")
    path = tmp_path / "dis_events.txt"
    path.write_text("".join(lines))
    return path
